import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """配置根日志器；重复调用只调整级别，不重复添加 handler"""
    root = logging.getLogger()
    root.setLevel(level.upper())

    if any(getattr(h, "_shelfswap", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._shelfswap = True
    root.addHandler(handler)

    # 请求日志由中间件统一输出
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

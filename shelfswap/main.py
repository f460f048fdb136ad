import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError

from shelfswap.adapters.identity import build_identity_verifier
from shelfswap.adapters.mailer import build_email_sender
from shelfswap.adapters.storage import LocalStorage, build_storage
from shelfswap.config import Settings
from shelfswap.database import build_engine, build_sessionmaker, init_db
from shelfswap.errors import ServiceError, UnauthorizedError
from shelfswap.logging_config import setup_logging
from shelfswap.routers import auth, books, catalog, contact, uploads, users, webhooks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期：启动时建表，退出时释放连接池"""
    await init_db(app.state.engine)
    logger.info(f"{app.state.settings.APP_NAME} started")
    yield
    await app.state.engine.dispose()
    logger.info(f"{app.state.settings.APP_NAME} stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="ShelfSwap 后端 API - 用户之间的图书交换平台",
        lifespan=lifespan,
    )

    # 连接池与外部能力在启动时确定一次，挂在 app.state 上注入
    app.state.settings = settings
    app.state.engine = build_engine(settings.database_url)
    app.state.session_factory = build_sessionmaker(app.state.engine)
    app.state.email_sender = build_email_sender(settings)
    app.state.storage = build_storage(settings)
    app.state.identity_verifier = build_identity_verifier(settings)

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_origin_regex=settings.CORS_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        if request.url.scheme == "https" or request.headers.get("X-Forwarded-Proto") == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        client = request.client.host if request.client else "-"
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms {client}"
        )
        return response

    # 统一异常处理
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "code": exc.code},
            headers=headers,
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning(f"Constraint violation on {request.method} {request.url.path}: {exc.orig}")
        return JSONResponse(status_code=409, content={"detail": "Conflict", "code": "CONFLICT"})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500, content={"detail": "Internal server error", "code": "INTERNAL_ERROR"}
        )

    # 注册路由
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(books.router)
    app.include_router(catalog.router)
    app.include_router(uploads.router)
    app.include_router(contact.router)
    app.include_router(webhooks.router)

    # 本地存储时直接对外提供上传目录
    if isinstance(app.state.storage, LocalStorage):
        app.mount(
            "/uploads",
            StaticFiles(directory=app.state.storage.upload_dir, check_dir=False),
            name="uploads",
        )

    @app.get("/health", tags=["系统"])
    async def health_check():
        """健康检查接口"""
        return {
            "status": "ok",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    return app


app = create_app()

"""业务异常定义

每个异常携带 HTTP 状态码与机器可读的 code，
由 main.py 统一渲染为 {"detail": ..., "code": ...}。
"""


class ServiceError(Exception):
    """业务异常基类"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ServiceError):
    status_code = 409
    code = "CONFLICT"


class InvalidInputError(ServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ExpiredTokenError(InvalidInputError):
    code = "TOKEN_EXPIRED"


class UnauthorizedError(ServiceError):
    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(ServiceError):
    status_code = 403
    code = "FORBIDDEN"


class GoneError(ServiceError):
    status_code = 410
    code = "GONE"


class DownstreamError(ServiceError):
    """存储或第三方服务失败"""

    status_code = 500
    code = "INTERNAL_ERROR"

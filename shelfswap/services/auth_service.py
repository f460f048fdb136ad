import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.adapters.base import ExternalIdentity
from shelfswap.config import Settings
from shelfswap.errors import ConflictError, UnauthorizedError
from shelfswap.models.user import EXTERNAL_PASSWORD_MARKER, User
from shelfswap.services import user_service
from shelfswap.utils.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


async def register_user(
    db: AsyncSession, email: str, password: str, username: str | None = None
) -> User:
    """注册新用户，返回 User 实例。邮箱重复时抛 ConflictError。"""
    existing = await user_service.get_user_by_email(db, email)
    if existing:
        raise ConflictError("Email already registered")

    return await user_service.create_user(
        db,
        email=email,
        password_hash=hash_password(password),
        username=username,
    )


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    """验证邮箱+密码，返回 User。外部托管账号不能用密码登录。"""
    user = await user_service.get_user_by_email(db, email)
    if (
        not user
        or user.is_externally_managed
        or not verify_password(password, user.password_hash)
    ):
        raise UnauthorizedError("Invalid email or password")
    return user


def build_token(settings: Settings, user: User) -> dict:
    """生成 Token 及过期信息"""
    return {
        "access_token": create_access_token(
            str(user.id),
            settings.JWT_SECRET_KEY,
            settings.JWT_ALGORITHM,
            settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
            email=user.email,
            username=user.username or "",
        ),
        "token_type": "bearer",
        "expires_in": settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }


async def resolve_user(db: AsyncSession, identity: ExternalIdentity) -> User:
    """把已校验的身份映射为本地用户"""
    if identity.provider == "local":
        user = None
        if identity.subject.isdigit():
            user = await user_service.get_user_by_id(db, int(identity.subject))
        if user is None or user.email != identity.email:
            raise UnauthorizedError("Invalid authentication credentials")
        return user
    return await sync_external_identity(db, identity)


async def sync_external_identity(db: AsyncSession, identity: ExternalIdentity) -> User:
    """
    外部身份同步（每个带有效外部凭据的请求都会执行）：
    - 本地无此邮箱 → 以占位密码新建用户
    - 已存在 → 补写外部身份 ID；用户名与外部不一致时覆盖
    同步写入失败只记日志，不影响本次认证。
    """
    user = await user_service.get_user_by_email(db, identity.email)

    if user is None:
        try:
            return await user_service.create_user(
                db,
                email=identity.email,
                password_hash=EXTERNAL_PASSWORD_MARKER,
                username=identity.username or None,
                avatar_path=identity.avatar_url or None,
                external_identity=identity.subject,
            )
        except ConflictError:
            # 并发请求可能已经建好了同一个用户
            user = await user_service.get_user_by_email(db, identity.email)
            if user is None:
                raise
            return user

    changed = False
    if not user.external_identity:
        user.external_identity = identity.subject
        changed = True
    if (user.username or "") != identity.username:
        user.username = identity.username or None
        changed = True

    if changed:
        user_id = user.id
        try:
            await db.flush()
        except SQLAlchemyError as exc:
            logger.warning(f"Identity sync for user {user_id} failed: {exc}")
            await db.rollback()
            user = await user_service.require_user(db, user_id)
    return user

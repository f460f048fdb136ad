"""密码重置 - Token 状态：issued → consumed | expired，两种结局都会删除 Token"""

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.adapters.base import EmailDeliveryError, EmailSender
from shelfswap.errors import ExpiredTokenError, InvalidInputError
from shelfswap.models.password_reset import PasswordReset
from shelfswap.services import user_service
from shelfswap.utils.security import generate_reset_token, hash_password
from shelfswap.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

GENERIC_RESET_MESSAGE = "If an account exists, a reset email has been sent."


async def save_reset_token(db: AsyncSession, token: str, user_id: int, ttl_minutes: int) -> PasswordReset:
    reset = PasswordReset(token=token, user_id=user_id, expiry=utcnow() + timedelta(minutes=ttl_minutes))
    db.add(reset)
    await db.flush()
    return reset


async def get_reset_token(db: AsyncSession, token: str) -> PasswordReset | None:
    result = await db.execute(select(PasswordReset).where(PasswordReset.token == token))
    return result.scalar_one_or_none()


async def delete_reset_token(db: AsyncSession, reset: PasswordReset) -> None:
    await db.delete(reset)
    await db.flush()


async def issue_reset_token(
    db: AsyncSession,
    email: str,
    email_sender: EmailSender,
    ttl_minutes: int = 60,
) -> str | None:
    """
    为邮箱对应的账号签发重置 Token 并发信。
    邮箱不存在时什么都不做（调用方统一返回同一句提示，避免枚举账号）。
    """
    user = await user_service.get_user_by_email(db, email)
    if user is None:
        logger.info("Password reset requested for unknown email")
        return None

    token = generate_reset_token()
    await save_reset_token(db, token, user.id, ttl_minutes)

    try:
        await email_sender.send_password_reset(user.email, token)
    except EmailDeliveryError as exc:
        logger.warning(f"Password reset email for user {user.id} not sent: {exc.detail}")
    return token


async def consume_reset_token(db: AsyncSession, token: str, new_password: str) -> int:
    """用 Token 重置密码，返回用户 ID；Token 无效或过期抛异常"""
    reset = await get_reset_token(db, token)
    if reset is None:
        raise InvalidInputError("Invalid or expired token")

    if utcnow() > reset.expiry:
        await delete_reset_token(db, reset)
        # 先提交删除，随后抛出的异常触发的回滚不会把 Token 复活
        await db.commit()
        raise ExpiredTokenError("Token expired")

    user_id = reset.user_id
    await user_service.update_password(db, user_id, hash_password(new_password))
    await delete_reset_token(db, reset)
    return user_id

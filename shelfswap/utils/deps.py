from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.adapters.base import EmailSender, IdentityVerifier, ObjectStorage
from shelfswap.config import Settings
from shelfswap.database import get_db
from shelfswap.errors import UnauthorizedError
from shelfswap.models.user import User
from shelfswap.services.auth_service import resolve_user
from shelfswap.services.book_service import BookStore, SqlBookStore

SESSION_COOKIE = "__session"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def get_storage(request: Request) -> ObjectStorage:
    return request.app.state.storage


def get_identity_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.identity_verifier


def get_book_store(db: AsyncSession = Depends(get_db)) -> BookStore:
    return SqlBookStore(db)


def extract_token(request: Request) -> str:
    """Authorization: Bearer 优先，其次 __session Cookie"""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    return request.cookies.get(SESSION_COOKIE, "").strip()


async def _resolve(request: Request, db: AsyncSession) -> User | None:
    token = extract_token(request)
    if not token:
        return None
    try:
        identity = await get_identity_verifier(request).verify(token)
        request.state.identity = identity
        return await resolve_user(db, identity)
    except UnauthorizedError:
        return None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """鉴权依赖：校验凭据 → 同步/查询本地用户 → 返回 User 实例"""
    user = await _resolve(request, db)
    if user is None:
        raise UnauthorizedError("Unauthorized")
    return user


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """可选鉴权：无凭据或凭据无效时返回 None"""
    return await _resolve(request, db)

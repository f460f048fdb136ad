from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.errors import ConflictError, NotFoundError
from shelfswap.models.book import Book, BookRequest
from shelfswap.models.password_reset import PasswordReset
from shelfswap.models.user import User


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """根据邮箱查找用户"""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """根据 ID 查找用户"""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_external_identity(db: AsyncSession, external_id: str) -> User | None:
    """根据外部身份 ID 查找用户"""
    result = await db.execute(select(User).where(User.external_identity == external_id))
    return result.scalar_one_or_none()


async def require_user(db: AsyncSession, user_id: int) -> User:
    user = await get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def create_user(
    db: AsyncSession,
    email: str,
    password_hash: str,
    username: str | None = None,
    avatar_path: str | None = None,
    external_identity: str | None = None,
) -> User:
    """新建用户；邮箱或外部身份重复时抛 ConflictError"""
    user = User(
        email=email,
        password_hash=password_hash,
        username=username,
        avatar_path=avatar_path,
        external_identity=external_identity,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("Account already exists") from exc
    await db.refresh(user)
    return user


async def update_user(
    db: AsyncSession,
    user: User,
    username: str | None,
    bio: str | None,
    location: str | None,
    avatar_path: str | None,
    external_identity: str | None,
) -> User:
    """整体覆盖可编辑的资料字段"""
    user.username = username
    user.bio = bio
    user.location = location
    user.avatar_path = avatar_path
    user.external_identity = external_identity
    await db.flush()
    await db.refresh(user)
    return user


async def update_password(db: AsyncSession, user_id: int, password_hash: str) -> None:
    user = await require_user(db, user_id)
    user.password_hash = password_hash
    await db.flush()


async def get_members(db: AsyncSession, search: str = "") -> list[User]:
    """全部用户，可按用户名子串过滤，新注册的在前"""
    stmt = select(User)
    if search:
        stmt = stmt.where(func.lower(User.username).contains(search.lower(), autoescape=True))
    stmt = stmt.order_by(User.created_at.desc(), User.id.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def delete_user_by_external_identity(db: AsyncSession, external_id: str) -> int:
    """
    删除外部身份对应的本地用户，级联清理：
    其名下书籍、这些书收到的请求、该用户发出的请求、重置 Token。
    返回被删除用户的 ID。
    """
    user = await get_user_by_external_identity(db, external_id)
    if user is None:
        raise NotFoundError("User not found")
    user_id = user.id

    owned_books = select(Book.id).where(Book.user_id == user_id)
    await db.execute(
        delete(BookRequest).where(
            or_(BookRequest.requester_id == user_id, BookRequest.book_id.in_(owned_books))
        ).execution_options(synchronize_session=False)
    )
    await db.execute(delete(Book).where(Book.user_id == user_id))
    await db.execute(delete(PasswordReset).where(PasswordReset.user_id == user_id))
    await db.execute(delete(User).where(User.id == user_id))
    await db.flush()
    return user_id

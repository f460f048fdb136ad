"""换书请求 - 每个 (book, requester) 至多一条记录"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, exists, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.adapters.base import EmailSender
from shelfswap.errors import DownstreamError, InvalidInputError, NotFoundError
from shelfswap.models.book import Book, BookRequest
from shelfswap.models.user import User
from shelfswap.services import user_service
from shelfswap.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass
class WishlistItem:
    id: int
    book_id: int
    requester_id: int
    created_at: datetime
    book_title: str
    book_author: str
    book_image: str | None


@dataclass
class BookRequestStats:
    book_id: int
    title: str
    author: str
    image_path: str | None
    request_count: int


def _insert_ignore(db: AsyncSession):
    """按方言生成 INSERT ... ON CONFLICT DO NOTHING"""
    dialect = db.bind.dialect.name if db.bind is not None else ""
    if dialect == "postgresql":
        return postgresql.insert(BookRequest).on_conflict_do_nothing(
            index_elements=["book_id", "requester_id"]
        )
    if dialect == "sqlite":
        return sqlite.insert(BookRequest).on_conflict_do_nothing(
            index_elements=["book_id", "requester_id"]
        )
    return insert(BookRequest)


async def has_requested(db: AsyncSession, requester_id: int, book_id: int) -> bool:
    result = await db.execute(
        select(
            exists().where(
                BookRequest.requester_id == requester_id,
                BookRequest.book_id == book_id,
            )
        )
    )
    return bool(result.scalar())


async def add_request(db: AsyncSession, book_id: int, requester_id: int) -> bool:
    """记录请求；重复请求静默忽略。返回是否新写入了一条记录。"""
    if await has_requested(db, requester_id, book_id):
        return False
    await db.execute(
        _insert_ignore(db).values(book_id=book_id, requester_id=requester_id, created_at=utcnow())
    )
    await db.flush()
    return True


async def get_requests_by_user_id(db: AsyncSession, user_id: int) -> list[WishlistItem]:
    """用户发出的请求（心愿单），新的在前"""
    result = await db.execute(
        select(BookRequest, Book.title, Book.author, Book.image_path)
        .join(Book, BookRequest.book_id == Book.id)
        .where(BookRequest.requester_id == user_id)
        .order_by(BookRequest.created_at.desc(), BookRequest.id.desc())
    )
    return [
        WishlistItem(
            id=req.id,
            book_id=req.book_id,
            requester_id=req.requester_id,
            created_at=req.created_at,
            book_title=title,
            book_author=author,
            book_image=image,
        )
        for req, title, author, image in result.all()
    ]


async def get_top_requested_books(db: AsyncSession, limit: int = 5) -> list[BookRequestStats]:
    """按请求数降序排列的热门书籍；没有请求的书不出现"""
    request_count = func.count(BookRequest.id).label("request_count")
    result = await db.execute(
        select(Book.id, Book.title, Book.author, Book.image_path, request_count)
        .join(BookRequest, Book.id == BookRequest.book_id)
        .group_by(Book.id, Book.title, Book.author, Book.image_path)
        .order_by(request_count.desc(), Book.id.asc())
        .limit(limit)
    )
    return [
        BookRequestStats(
            book_id=book_id,
            title=title,
            author=author,
            image_path=image_path,
            request_count=count,
        )
        for book_id, title, author, image_path, count in result.all()
    ]


async def delete_request(db: AsyncSession, requester_id: int, book_id: int) -> None:
    """撤回请求；不存在时什么也不做"""
    await db.execute(
        delete(BookRequest).where(
            BookRequest.requester_id == requester_id,
            BookRequest.book_id == book_id,
        )
    )
    await db.flush()


async def request_book(
    db: AsyncSession,
    book_id: int,
    requester: User,
    email_sender: EmailSender,
) -> bool:
    """
    发起换书请求：
    1. 书不存在 → 404；请求自己的书 → 400
    2. 在当前事务里写入请求记录
    3. 通知书主；发信失败则抛异常，由 get_db 回滚，不留下请求记录
    重复请求直接返回 False，不重复写入也不重复发信。
    """
    book = (await db.execute(select(Book).where(Book.id == book_id))).scalar_one_or_none()
    if book is None:
        raise NotFoundError("Book not found")

    if book.user_id == requester.id:
        raise InvalidInputError("Cannot request your own book")

    owner = await user_service.get_user_by_id(db, book.user_id) if book.user_id else None
    if owner is None:
        raise DownstreamError("Owner not found")

    created = await add_request(db, book.id, requester.id)
    if not created:
        return False

    try:
        await email_sender.send_request_notification(
            owner.email, owner.username or "there", book.title, requester.email
        )
    except DownstreamError as exc:
        logger.error(f"Request notification for book {book.id} failed, discarding request")
        raise DownstreamError("Failed to send email notification") from exc
    return True

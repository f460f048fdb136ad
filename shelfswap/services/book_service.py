"""书目服务 - 书籍发布、检索、分类统计

BookStore 定义书目存取接口，SqlBookStore 为数据库实现，
MemoryBookStore（见 memory_book_store.py）为测试用内存实现。
所有修改操作都在存储层内部校验归属，调用方无需事先检查。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy import delete, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.errors import ForbiddenError, NotFoundError
from shelfswap.models.book import Book, BookRequest
from shelfswap.models.user import User

SORT_NEWEST = "newest"
SORT_OLDEST = "oldest"

EDITABLE_FIELDS = ("title", "author", "description", "genre", "image_path")


@dataclass
class BookFilter:
    query: str = ""
    genre: str = ""
    sort: str = SORT_NEWEST
    limit: int = 0
    offset: int = 0


@dataclass
class BookRecord:
    id: int
    title: str
    author: str
    description: str | None = None
    genre: str | None = None
    image_path: str | None = None
    created_at: datetime | None = None
    user_id: int | None = None
    # 以下为展示用的书主快照，未登录访问时由路由层清空
    user_email: str | None = None
    user_username: str | None = None
    user_avatar_path: str | None = None
    is_requested: bool = False

    def redacted(self) -> "BookRecord":
        return replace(self, user_email=None, user_username=None, user_avatar_path=None)


@dataclass
class GenreStats:
    genre: str
    book_count: int


@dataclass
class CatalogStats:
    total_books: int = 0
    active_users: int = 0
    total_genres: int = 0


@dataclass
class BookDraft:
    title: str
    author: str
    description: str = ""
    genre: str = ""
    image_path: str = ""
    user_id: int | None = None


class BookStore(ABC):

    @abstractmethod
    async def add(self, draft: BookDraft) -> BookRecord:
        """新增书籍，返回带 id 与 created_at 的记录"""
        ...

    @abstractmethod
    async def get_all(self, book_filter: BookFilter) -> list[BookRecord]:
        ...

    @abstractmethod
    async def get_by_id(self, book_id: int) -> BookRecord:
        """不存在时抛 NotFoundError"""
        ...

    @abstractmethod
    async def get_by_user_id(self, user_id: int) -> list[BookRecord]:
        """某用户发布的全部书籍，新的在前"""
        ...

    @abstractmethod
    async def update(self, book_id: int, fields: dict, requesting_user_id: int) -> BookRecord:
        """仅书主可改；不存在 404，非书主 403"""
        ...

    @abstractmethod
    async def delete(self, book_id: int, requesting_user_id: int) -> None:
        """仅书主可删；不存在 404，非书主 403"""
        ...

    @abstractmethod
    async def get_genres(self) -> list[str]:
        ...

    @abstractmethod
    async def get_popular_genres(self) -> list[GenreStats]:
        ...

    @abstractmethod
    async def get_stats(self) -> CatalogStats:
        ...


def check_owner(book_user_id: int | None, requesting_user_id: int) -> None:
    if book_user_id != requesting_user_id:
        raise ForbiddenError("Forbidden")


class SqlBookStore(BookStore):

    def __init__(self, db: AsyncSession):
        self.db = db

    def _listing_query(self):
        return select(
            Book,
            User.email,
            User.username,
            User.avatar_path,
        ).outerjoin(User, Book.user_id == User.id)

    @staticmethod
    def _to_record(book: Book, email=None, username=None, avatar_path=None) -> BookRecord:
        return BookRecord(
            id=book.id,
            title=book.title,
            author=book.author,
            description=book.description,
            genre=book.genre,
            image_path=book.image_path,
            created_at=book.created_at,
            user_id=book.user_id,
            user_email=email,
            user_username=username,
            user_avatar_path=avatar_path,
        )

    async def _get_model(self, book_id: int) -> Book:
        book = (await self.db.execute(select(Book).where(Book.id == book_id))).scalar_one_or_none()
        if not book:
            raise NotFoundError("Book not found")
        return book

    async def add(self, draft: BookDraft) -> BookRecord:
        book = Book(
            title=draft.title,
            author=draft.author,
            description=draft.description,
            genre=draft.genre,
            image_path=draft.image_path,
            user_id=draft.user_id,
        )
        self.db.add(book)
        await self.db.flush()
        await self.db.refresh(book)
        return self._to_record(book)

    async def get_all(self, book_filter: BookFilter) -> list[BookRecord]:
        stmt = self._listing_query()

        if book_filter.query:
            q = book_filter.query.lower()
            stmt = stmt.where(
                or_(
                    func.lower(Book.title).contains(q, autoescape=True),
                    func.lower(Book.author).contains(q, autoescape=True),
                )
            )
        if book_filter.genre:
            stmt = stmt.where(Book.genre == book_filter.genre)

        if book_filter.sort == SORT_OLDEST:
            stmt = stmt.order_by(Book.created_at.asc(), Book.id.asc())
        else:
            stmt = stmt.order_by(Book.created_at.desc(), Book.id.desc())

        if book_filter.limit > 0:
            stmt = stmt.limit(book_filter.limit)
        if book_filter.offset > 0:
            stmt = stmt.offset(book_filter.offset)

        result = await self.db.execute(stmt)
        return [self._to_record(*row) for row in result.all()]

    async def get_by_id(self, book_id: int) -> BookRecord:
        row = (await self.db.execute(self._listing_query().where(Book.id == book_id))).first()
        if row is None:
            raise NotFoundError("Book not found")
        return self._to_record(*row)

    async def get_by_user_id(self, user_id: int) -> list[BookRecord]:
        result = await self.db.execute(
            select(Book)
            .where(Book.user_id == user_id)
            .order_by(Book.created_at.desc(), Book.id.desc())
        )
        return [self._to_record(b) for b in result.scalars().all()]

    async def update(self, book_id: int, fields: dict, requesting_user_id: int) -> BookRecord:
        book = await self._get_model(book_id)
        check_owner(book.user_id, requesting_user_id)

        for name in EDITABLE_FIELDS:
            if name in fields:
                setattr(book, name, fields[name])
        await self.db.flush()
        return await self.get_by_id(book_id)

    async def delete(self, book_id: int, requesting_user_id: int) -> None:
        book = await self._get_model(book_id)
        check_owner(book.user_id, requesting_user_id)

        # 先清掉该书的请求记录，再删书
        await self.db.execute(delete(BookRequest).where(BookRequest.book_id == book_id))
        await self.db.execute(delete(Book).where(Book.id == book_id))
        await self.db.flush()

    async def get_genres(self) -> list[str]:
        result = await self.db.execute(
            select(Book.genre)
            .distinct()
            .where(Book.genre.is_not(None), Book.genre != "")
            .order_by(Book.genre.asc())
        )
        return list(result.scalars().all())

    async def get_popular_genres(self) -> list[GenreStats]:
        book_count = func.count(Book.id).label("book_count")
        result = await self.db.execute(
            select(Book.genre, book_count)
            .where(Book.genre.is_not(None), Book.genre != "")
            .group_by(Book.genre)
            .order_by(book_count.desc(), Book.genre.asc())
        )
        return [GenreStats(genre=g, book_count=c) for g, c in result.all()]

    async def get_stats(self) -> CatalogStats:
        total_books, active_users = (
            await self.db.execute(select(func.count(Book.id), func.count(distinct(Book.user_id))))
        ).one()
        total_genres = (
            await self.db.execute(
                select(func.count(distinct(Book.genre))).where(
                    Book.genre.is_not(None), Book.genre != ""
                )
            )
        ).scalar_one()
        return CatalogStats(
            total_books=total_books or 0,
            active_users=active_users or 0,
            total_genres=total_genres or 0,
        )

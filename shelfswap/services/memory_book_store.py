"""内存版书目存储 - 本地测试用，所有读写都持同一把锁"""

import asyncio
from dataclasses import replace

from shelfswap.errors import NotFoundError
from shelfswap.utils.timeutil import utcnow

from .book_service import (
    EDITABLE_FIELDS,
    SORT_OLDEST,
    BookDraft,
    BookFilter,
    BookRecord,
    BookStore,
    CatalogStats,
    GenreStats,
    check_owner,
)


class MemoryBookStore(BookStore):

    def __init__(self):
        self._lock = asyncio.Lock()
        self._books: list[BookRecord] = []
        self._next_id = 1

    def _find(self, book_id: int) -> int:
        for i, book in enumerate(self._books):
            if book.id == book_id:
                return i
        raise NotFoundError("Book not found")

    @staticmethod
    def _newest_first(books: list[BookRecord]) -> list[BookRecord]:
        return sorted(books, key=lambda b: (b.created_at, b.id), reverse=True)

    async def add(self, draft: BookDraft) -> BookRecord:
        async with self._lock:
            book = BookRecord(
                id=self._next_id,
                title=draft.title,
                author=draft.author,
                description=draft.description,
                genre=draft.genre,
                image_path=draft.image_path,
                created_at=utcnow(),
                user_id=draft.user_id,
            )
            self._next_id += 1
            self._books.append(book)
            return replace(book)

    async def get_all(self, book_filter: BookFilter) -> list[BookRecord]:
        async with self._lock:
            q = book_filter.query.lower()
            matched = [
                b for b in self._books
                if (not q or q in b.title.lower() or q in b.author.lower())
                and (not book_filter.genre or b.genre == book_filter.genre)
            ]

            matched = self._newest_first(matched)
            if book_filter.sort == SORT_OLDEST:
                matched.reverse()

            start = max(book_filter.offset, 0)
            end = start + book_filter.limit if book_filter.limit > 0 else None
            return [replace(b) for b in matched[start:end]]

    async def get_by_id(self, book_id: int) -> BookRecord:
        async with self._lock:
            return replace(self._books[self._find(book_id)])

    async def get_by_user_id(self, user_id: int) -> list[BookRecord]:
        async with self._lock:
            owned = [b for b in self._books if b.user_id == user_id]
            return [replace(b) for b in self._newest_first(owned)]

    async def update(self, book_id: int, fields: dict, requesting_user_id: int) -> BookRecord:
        async with self._lock:
            i = self._find(book_id)
            check_owner(self._books[i].user_id, requesting_user_id)
            changes = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
            self._books[i] = replace(self._books[i], **changes)
            return replace(self._books[i])

    async def delete(self, book_id: int, requesting_user_id: int) -> None:
        async with self._lock:
            i = self._find(book_id)
            check_owner(self._books[i].user_id, requesting_user_id)
            del self._books[i]

    async def get_genres(self) -> list[str]:
        async with self._lock:
            return sorted({b.genre for b in self._books if b.genre})

    async def get_popular_genres(self) -> list[GenreStats]:
        async with self._lock:
            counts: dict[str, int] = {}
            for b in self._books:
                if b.genre:
                    counts[b.genre] = counts.get(b.genre, 0) + 1
        stats = [GenreStats(genre=g, book_count=c) for g, c in counts.items()]
        return sorted(stats, key=lambda s: (-s.book_count, s.genre))

    async def get_stats(self) -> CatalogStats:
        async with self._lock:
            return CatalogStats(
                total_books=len(self._books),
                active_users=len({b.user_id for b in self._books if b.user_id is not None}),
                total_genres=len({b.genre for b in self._books if b.genre}),
            )

from datetime import datetime

from sqlalchemy import Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shelfswap.database import Base
from shelfswap.utils.timeutil import utcnow


class Book(Base):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    genre: Mapped[str | None] = mapped_column(String(100), index=True)
    image_path: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    # 历史数据可能没有 owner
    user_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), index=True)

    # 关联
    owner = relationship("User", back_populates="books")
    requests = relationship("BookRequest", back_populates="book", cascade="all, delete-orphan")


class BookRequest(Base):
    __tablename__ = "book_requests"
    __table_args__ = (
        UniqueConstraint("book_id", "requester_id", name="uq_book_requests_book_requester"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(Integer, ForeignKey("books.id"), nullable=False)
    requester_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # 关联
    book = relationship("Book", back_populates="requests")
    requester = relationship("User")

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.adapters.base import EmailSender
from shelfswap.database import get_db
from shelfswap.models.user import User
from shelfswap.schemas.book import BookCreateRequest, BookResponse, BookUpdateRequest
from shelfswap.schemas.request import MessageResponse, TopRequestedBookResponse
from shelfswap.services import request_service
from shelfswap.services.book_service import BookDraft, BookFilter, BookStore
from shelfswap.utils.deps import (
    get_book_store,
    get_current_user,
    get_email_sender,
    get_optional_user,
)

router = APIRouter(prefix="/books", tags=["书籍"])

DEFAULT_PAGE_SIZE = 9


@router.get("", response_model=list[BookResponse], summary="浏览/搜索书籍")
async def list_books(
    q: str = Query("", max_length=200, description="按书名或作者模糊搜索"),
    genre: str = Query("", max_length=100),
    sort: str = Query("newest", pattern=r"^(newest|oldest)$"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    offset: int = Query(0, ge=0),
    store: BookStore = Depends(get_book_store),
    viewer: User | None = Depends(get_optional_user),
):
    """未登录用户看不到书主的邮箱、用户名和头像"""
    books = await store.get_all(
        BookFilter(query=q.strip(), genre=genre.strip(), sort=sort, limit=limit, offset=offset)
    )
    if viewer is None:
        books = [b.redacted() for b in books]
    return [BookResponse.model_validate(b) for b in books]


@router.post("", response_model=BookResponse, status_code=201, summary="发布书籍")
async def create_book(
    body: BookCreateRequest,
    current_user: User = Depends(get_current_user),
    store: BookStore = Depends(get_book_store),
):
    book = await store.add(BookDraft(**body.model_dump(), user_id=current_user.id))
    return BookResponse.model_validate(book)


@router.get(
    "/top-requested",
    response_model=list[TopRequestedBookResponse],
    summary="最受欢迎的书籍",
)
async def top_requested_books(
    limit: int = Query(5, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    books = await request_service.get_top_requested_books(db, limit)
    return [TopRequestedBookResponse.model_validate(b) for b in books]


@router.get("/{book_id}", response_model=BookResponse, summary="书籍详情")
async def get_book(
    book_id: int,
    store: BookStore = Depends(get_book_store),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """登录用户额外返回 is_requested（自己是否已申请过）"""
    book = await store.get_by_id(book_id)
    if viewer is None:
        book = book.redacted()
    else:
        book.is_requested = await request_service.has_requested(db, viewer.id, book.id)
    return BookResponse.model_validate(book)


@router.put("/{book_id}", response_model=BookResponse, summary="修改书籍")
async def update_book(
    book_id: int,
    body: BookUpdateRequest,
    current_user: User = Depends(get_current_user),
    store: BookStore = Depends(get_book_store),
):
    """仅书主可修改"""
    book = await store.update(book_id, body.model_dump(), current_user.id)
    return BookResponse.model_validate(book)


@router.delete("/{book_id}", status_code=204, summary="删除书籍")
async def delete_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    store: BookStore = Depends(get_book_store),
):
    """仅书主可删除"""
    await store.delete(book_id, current_user.id)
    return Response(status_code=204)


@router.post("/{book_id}/request", response_model=MessageResponse, summary="申请换书")
async def request_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    """通知书主；重复申请不会重复记录"""
    await request_service.request_book(db, book_id, current_user, email_sender)
    return MessageResponse(message="Request sent successfully.")


@router.delete("/{book_id}/request", status_code=204, summary="撤回换书申请")
async def withdraw_request(
    book_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await request_service.delete_request(db, current_user.id, book_id)
    return Response(status_code=204)

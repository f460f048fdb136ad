from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.adapters.base import ObjectStorage
from shelfswap.config import Settings
from shelfswap.database import get_db
from shelfswap.models.user import User
from shelfswap.schemas.auth import MemberResponse, UserResponse
from shelfswap.schemas.book import BookResponse
from shelfswap.schemas.request import WishlistItemResponse
from shelfswap.services import request_service, user_service
from shelfswap.services.book_service import BookStore
from shelfswap.utils.deps import get_book_store, get_current_user, get_settings, get_storage
from shelfswap.utils.uploads import read_image_upload

router = APIRouter(tags=["用户"])


@router.get("/me", response_model=UserResponse, summary="获取当前用户")
async def get_me(request: Request, current_user: User = Depends(get_current_user)):
    """根据凭据返回当前登录用户信息，身份提供方有头像时以其为准"""
    response = UserResponse.model_validate(current_user)
    identity = getattr(request.state, "identity", None)
    if identity is not None and identity.avatar_url:
        response = response.model_copy(update={"avatar_path": identity.avatar_url})
    return response


@router.put("/me", response_model=UserResponse, summary="更新个人资料")
async def update_me(
    username: str = Form(""),
    bio: str = Form(""),
    location: str = Form(""),
    remove_avatar: str = Form(""),
    avatar: UploadFile | None = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """
    multipart 表单：
    - username 为空时保留原值
    - bio、location 直接覆盖
    - remove_avatar=true 清除头像，否则有上传文件时替换头像
    """
    avatar_path = current_user.avatar_path
    if remove_avatar.lower() == "true":
        avatar_path = None
    elif avatar is not None and avatar.filename:
        content = await read_image_upload(avatar, settings.MAX_UPLOAD_BYTES)
        avatar_path = await storage.upload(avatar.filename, content, avatar.content_type)

    user = await user_service.update_user(
        db,
        current_user,
        username=username.strip() or current_user.username,
        bio=bio,
        location=location,
        avatar_path=avatar_path,
        external_identity=current_user.external_identity,
    )
    return UserResponse.model_validate(user)


@router.get("/my-books", response_model=list[BookResponse], summary="我发布的书")
async def my_books(
    current_user: User = Depends(get_current_user),
    store: BookStore = Depends(get_book_store),
):
    books = await store.get_by_user_id(current_user.id)
    return [BookResponse.model_validate(b) for b in books]


@router.get("/wishlist", response_model=list[WishlistItemResponse], summary="我的换书申请")
async def wishlist(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items = await request_service.get_requests_by_user_id(db, current_user.id)
    return [WishlistItemResponse.model_validate(i) for i in items]


@router.get("/members", response_model=list[MemberResponse], summary="成员列表")
async def members(
    q: str = Query("", max_length=100, description="按用户名模糊搜索"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    users = await user_service.get_members(db, q.strip())
    return [MemberResponse.model_validate(u) for u in users]

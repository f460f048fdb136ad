from fastapi import APIRouter, Depends, File, UploadFile

from shelfswap.adapters.base import ObjectStorage
from shelfswap.config import Settings
from shelfswap.models.user import User
from shelfswap.schemas.book import UploadResponse
from shelfswap.utils.deps import get_current_user, get_settings, get_storage
from shelfswap.utils.uploads import read_image_upload

router = APIRouter(tags=["上传"])


@router.post("/upload", response_model=UploadResponse, summary="上传书籍封面")
async def upload_image(
    image: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """返回的 image_path 可直接用于创建/修改书籍"""
    content = await read_image_upload(image, settings.MAX_UPLOAD_BYTES)
    image_path = await storage.upload(image.filename, content, image.content_type)
    return UploadResponse(image_path=image_path)

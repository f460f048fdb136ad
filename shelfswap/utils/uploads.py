from pathlib import Path

from fastapi import UploadFile

from shelfswap.errors import InvalidInputError

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}


async def read_image_upload(upload: UploadFile, max_bytes: int) -> bytes:
    """读取上传图片并校验扩展名与大小"""
    if not upload.filename:
        raise InvalidInputError("Invalid file")

    ext = Path(upload.filename).suffix.lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise InvalidInputError("Unsupported image format. Use jpg, jpeg, png, webp, or gif.")

    content = await upload.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise InvalidInputError("File too large")
    if not content:
        raise InvalidInputError("Invalid file")
    return content

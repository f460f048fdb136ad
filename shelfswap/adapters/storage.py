"""对象存储实现：本地目录 / Supabase Storage"""

import asyncio
import logging
import uuid
from pathlib import Path

import httpx

from shelfswap.config import Settings

from .base import ObjectStorage, StorageError

logger = logging.getLogger(__name__)


def _object_name(filename: str) -> str:
    return f"{uuid.uuid4().hex}{Path(filename).suffix.lower()}"


class LocalStorage(ObjectStorage):
    """写入本地目录，由 /uploads 静态路由对外提供"""

    def __init__(self, upload_dir: Path, url_prefix: str = "/uploads"):
        self.upload_dir = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        name = _object_name(filename)
        try:
            await asyncio.to_thread(self._write, name, content)
        except OSError as exc:
            logger.error(f"Failed to write upload {name}: {exc}")
            raise StorageError("Failed to save file") from exc
        return f"{self.url_prefix}/{name}"

    def _write(self, name: str, content: bytes) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        (self.upload_dir / name).write_bytes(content)


class SupabaseStorage(ObjectStorage):

    def __init__(
        self,
        project_url: str,
        secret_key: str,
        bucket: str,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.project_url = project_url.rstrip("/")
        self.secret_key = secret_key
        self.bucket = bucket
        self.timeout = timeout
        self.transport = transport

    def public_url(self, object_path: str) -> str:
        return f"{self.project_url}/storage/v1/object/public/{self.bucket}/{object_path}"

    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        object_path = _object_name(filename)
        upload_url = f"{self.project_url}/storage/v1/object/{self.bucket}/{object_path}"
        headers = {
            "apikey": self.secret_key,
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": content_type or "application/octet-stream",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(upload_url, content=content, headers=headers)
            except httpx.HTTPError as exc:
                logger.error(f"Error communicating with Supabase: {exc}")
                raise StorageError("Storage service unavailable") from exc

        if response.status_code not in (200, 201):
            logger.error(f"Failed to upload file to Supabase: {response.text}")
            raise StorageError("Failed to upload file to storage")

        return self.public_url(object_path)


def build_storage(settings: Settings) -> ObjectStorage:
    if settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY:
        logger.info("Using Supabase storage service")
        return SupabaseStorage(
            settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY, settings.STORAGE_BUCKET
        )
    logger.warning(
        "Using local storage service (set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY for cloud storage)"
    )
    return LocalStorage(settings.UPLOAD_DIR)

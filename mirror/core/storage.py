"""
Where saved look images end up. S3 when FF_USE_S3 is on, local disk otherwise.

Keys are partitioned by day and device:
    looks/2025/03/14/{device_id}/{12 hex}.jpg
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

LOCAL_ROOT = "./local_storage"


def look_key(device_id: str, folder: str = "looks", ext: str = ".jpg", now: Optional[datetime] = None) -> str:
    day = (now or datetime.now(timezone.utc)).strftime("%Y/%m/%d")
    safe_device = "".join(c for c in device_id if c.isalnum() or c in "-_") or "anonymous"
    return f"{folder}/{day}/{safe_device}/{uuid.uuid4().hex[:12]}{ext}"


class ImageStore(ABC):
    @abstractmethod
    async def put_image(self, data: bytes, device_id: str, folder: str = "looks") -> str:
        """Store a JPEG. Returns a URL (S3) or path (local)."""


class S3ImageStore(ImageStore):
    def __init__(self):
        self._client = None

    @property
    def client(self):
        if self._client is None:
            import boto3

            settings = get_settings()
            credentials = {}
            if settings.aws_access_key_id:
                credentials = {
                    "aws_access_key_id": settings.aws_access_key_id,
                    "aws_secret_access_key": settings.aws_secret_access_key,
                }
            self._client = boto3.client("s3", region_name=settings.aws_region, **credentials)
        return self._client

    async def put_image(self, data: bytes, device_id: str, folder: str = "looks") -> str:
        settings = get_settings()
        key = look_key(device_id, folder)
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=settings.s3_bucket_name,
            Key=key,
            Body=data,
            ContentType="image/jpeg",
            CacheControl="public, max-age=31536000, immutable",
        )
        logger.info("Look image stored in s3://%s/%s", settings.s3_bucket_name, key)
        return f"https://{settings.s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/{key}"


class LocalImageStore(ImageStore):
    def __init__(self, root: str = LOCAL_ROOT):
        self.root = Path(root)

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def put_image(self, data: bytes, device_id: str, folder: str = "looks") -> str:
        path = self.root / look_key(device_id, folder)
        await asyncio.to_thread(self._write, path, data)
        logger.info("Look image stored at %s", path)
        return str(path)


def get_image_store() -> ImageStore:
    if get_flags().use_s3:
        return S3ImageStore()
    return LocalImageStore()

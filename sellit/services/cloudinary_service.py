# sellit/services/cloudinary_service.py
"""
Cloudinary image storage for product and variant images.

- Валидация (MIME, размер) до отправки в хранилище.
- Пакет файлов загружается параллельно (asyncio.gather); любая ошибка
  прерывает весь запрос. Уже загруженные файлы пакета не удаляются.
- FastAPI dependency get_image_uploader() подменяется в тестах.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Sequence

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from sellit.core.config import settings
from sellit.core.exceptions import BadRequestError, ExternalServiceError
from sellit.core.logging import get_logger

logger = get_logger(__name__)


class CloudinaryService:
    """Service for Cloudinary image management"""

    def __init__(
        self,
        *,
        max_size_bytes: Optional[int] = None,
        allowed_mime_types: Optional[Sequence[str]] = None,
    ):
        cloudinary.config(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            secure=True,
        )
        self.max_size_bytes = max_size_bytes or settings.UPLOAD_MAX_SIZE_BYTES
        self.allowed_mime_types = set(allowed_mime_types or settings.UPLOAD_ALLOWED_MIME_TYPES)

    # ------------------------------------------------------------------ validation
    async def read_validated(self, file: UploadFile) -> bytes:
        content_type = (file.content_type or "").lower()
        if content_type not in self.allowed_mime_types:
            raise BadRequestError(
                f"Unsupported image type: {content_type or 'unknown'}",
                "INVALID_IMAGE_TYPE",
                extra={"filename": file.filename},
            )
        contents = await file.read()
        if not contents:
            raise BadRequestError("Empty image file", "EMPTY_IMAGE", extra={"filename": file.filename})
        if len(contents) > self.max_size_bytes:
            raise BadRequestError(
                f"Image exceeds {self.max_size_bytes} bytes",
                "IMAGE_TOO_LARGE",
                extra={"filename": file.filename},
            )
        return contents

    # ------------------------------------------------------------------ upload
    def _upload_options(self, folder: str) -> dict[str, Any]:
        return {
            "folder": folder,
            "resource_type": "image",
            "format": "webp",
            "transformation": [
                {"width": 1600, "height": 1600, "crop": "limit"},
                {"quality": "auto:good", "fetch_format": "auto"},
            ],
        }

    async def upload_image(self, file: UploadFile, folder: str = "sellit") -> str:
        """Upload one image; returns its secure URL."""
        contents = await self.read_validated(file)
        try:
            result = await run_in_threadpool(
                cloudinary.uploader.upload, contents, **self._upload_options(folder)
            )
        except Exception as e:
            logger.error("Cloudinary upload error", filename=file.filename, error=str(e))
            raise ExternalServiceError("Image upload failed", "UPLOAD_FAILED") from e

        url = result.get("secure_url") or result.get("url")
        if not url:
            raise ExternalServiceError("Image upload returned no URL", "UPLOAD_FAILED")
        logger.info("Image uploaded to Cloudinary", public_id=result.get("public_id"))
        return url

    async def upload_many(self, files: Sequence[UploadFile], folder: str = "sellit") -> list[str]:
        """Upload concurrently, preserving input order."""
        if not files:
            return []
        return list(await asyncio.gather(*(self.upload_image(f, folder) for f in files)))


_service: Optional[CloudinaryService] = None


def get_image_uploader() -> CloudinaryService:
    global _service
    if _service is None:
        _service = CloudinaryService()
    return _service


__all__ = ["CloudinaryService", "get_image_uploader"]

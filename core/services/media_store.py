"""
Media store collaborator: turns an uploaded image payload into a public URL.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

import core.config as config
from core.errors import DependencyFailure

logger = config.logger

MEDIA_UPLOAD_TIMEOUT_SECONDS = config.MEDIA_UPLOAD_TIMEOUT_SECONDS
MEDIA_UPLOAD_ATTEMPTS = config.MEDIA_UPLOAD_ATTEMPTS
MEDIA_UPLOAD_RETRY_DELAY_SECONDS = config.MEDIA_UPLOAD_RETRY_DELAY_SECONDS


class MediaUploadError(RuntimeError):
    """Raised when a single upload attempt fails."""


class MediaUploader:
    async def upload(self, data: str) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class DisabledUploader(MediaUploader):
    async def upload(self, data: str) -> str:
        raise MediaUploadError("media provider disabled")


class CloudinaryUploader(MediaUploader):
    """Unsigned uploads to a Cloudinary-style ``/image/upload`` endpoint."""

    def __init__(
        self,
        cloud_name: Optional[str],
        upload_preset: Optional[str],
        *,
        timeout_seconds: float = MEDIA_UPLOAD_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._cloud_name = cloud_name
        self._upload_preset = upload_preset
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
        )

    @property
    def upload_url(self) -> str:
        return f"https://api.cloudinary.com/v1_1/{self._cloud_name}/image/upload"

    async def upload(self, data: str) -> str:
        if not self._cloud_name:
            raise MediaUploadError("cloud name not configured")
        form = {"file": data}
        if self._upload_preset:
            form["upload_preset"] = self._upload_preset
        try:
            response = await self._client.post(self.upload_url, data=form)
        except httpx.RequestError as exc:
            raise MediaUploadError(f"request error: {exc}") from exc
        if response.status_code >= 400:
            raise MediaUploadError(f"status {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise MediaUploadError("upload response is not JSON") from exc
        secure_url = body.get("secure_url") if isinstance(body, dict) else None
        if not secure_url:
            raise MediaUploadError("upload response missing secure_url")
        return secure_url

    async def aclose(self) -> None:
        await self._client.aclose()
        logger.info("Media HTTP client closed")


def build_uploader_from_config() -> MediaUploader:
    if config.MEDIA_PROVIDER == "none":
        return DisabledUploader()
    return CloudinaryUploader(config.CLOUDINARY_CLOUD_NAME, config.CLOUDINARY_UPLOAD_PRESET)


async def upload_image_with_retry(
    data: str,
    uploader: MediaUploader,
    *,
    attempts: Optional[int] = None,
    delay_seconds: Optional[float] = None,
) -> str:
    """Upload with a bounded number of attempts and a fixed delay between them."""
    max_attempts = max(1, attempts if attempts is not None else MEDIA_UPLOAD_ATTEMPTS)
    delay = MEDIA_UPLOAD_RETRY_DELAY_SECONDS if delay_seconds is None else delay_seconds
    last_error: Optional[str] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await uploader.upload(data)
        except MediaUploadError as exc:
            last_error = str(exc)
            logger.warning(
                "media_upload_failed",
                extra={"attempt": attempt, "max_attempts": max_attempts, "error": last_error},
            )
            if attempt < max_attempts:
                await asyncio.sleep(delay)
    raise DependencyFailure("Failed to upload image", code="upload_failed", data={"error": last_error})

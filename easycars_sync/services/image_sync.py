"""ImageSyncer - download EasyCars vehicle photos and re-host them.

Downloads across the whole process share one semaphore (IMAGE_SYNC_MAX_CONCURRENCY
in flight), so a stock sync with many vehicles cannot flood the network.
Duplicate photos inside one call are dropped by MD5 of the downloaded bytes.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import weakref
from typing import List, Optional, Protocol, Sequence, Set

import httpx

from easycars_sync.config import get_settings

logger = logging.getLogger(__name__)

_DOWNLOAD_TIMEOUT = httpx.Timeout(30.0, connect=10.0)

# One semaphore per running event loop; Celery tasks each run in a fresh loop.
_semaphores: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = weakref.WeakKeyDictionary()


def _get_download_semaphore() -> asyncio.Semaphore:
    loop = asyncio.get_running_loop()
    semaphore = _semaphores.get(loop)
    if semaphore is None:
        semaphore = asyncio.Semaphore(max(1, get_settings().IMAGE_SYNC_MAX_CONCURRENCY))
        _semaphores[loop] = semaphore
    return semaphore


class ImageUploader(Protocol):
    async def upload(self, content: bytes, filename: str, folder: str) -> str:
        """Store the image and return its public URL."""
        ...


class HttpImageUploader:
    """Uploads to the media service at IMAGE_UPLOAD_URL (multipart ``file`` + ``folder``)."""

    def __init__(self, upload_url: str, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.upload_url = upload_url
        self._http_client = http_client

    async def upload(self, content: bytes, filename: str, folder: str) -> str:
        client = self._http_client or httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT)
        try:
            response = await client.post(
                self.upload_url,
                data={"folder": folder, "public_id": filename.rsplit(".", 1)[0]},
                files={"file": (filename, content, "image/jpeg")},
            )
            response.raise_for_status()
            data = response.json()
        finally:
            if self._http_client is None:
                await client.aclose()
        url = data.get("secure_url") or data.get("url")
        if not url:
            raise ValueError("Upload service response did not include a URL")
        return url


class ImageSyncer:
    def __init__(
        self,
        uploader: Optional[ImageUploader],
        http_client: Optional[httpx.AsyncClient] = None,
        enabled: Optional[bool] = None,
        folder: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.uploader = uploader
        self._http_client = http_client
        self.enabled = settings.EASYCAR_IMAGE_SYNC_ENABLED if enabled is None else enabled
        self.folder = folder or settings.IMAGE_UPLOAD_FOLDER

    async def download_and_store(self, urls: Sequence[str], vehicle_id: int) -> List[str]:
        """Re-host every distinct image; failed or duplicate URLs are skipped."""
        urls = [u.strip() for u in urls if u and u.strip()]
        if not urls:
            return []
        if not self.enabled:
            logger.info("Image sync disabled, skipping %s image(s) for vehicle %s", len(urls), vehicle_id)
            return []
        if self.uploader is None:
            logger.warning("No image uploader configured, skipping %s image(s) for vehicle %s", len(urls), vehicle_id)
            return []

        seen_hashes: Set[str] = set()
        if self._http_client is not None:
            stored = await self._store_all(self._http_client, urls, vehicle_id, seen_hashes)
        else:
            async with httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
                stored = await self._store_all(client, urls, vehicle_id, seen_hashes)

        logger.info("Stored %s/%s image(s) for vehicle %s", len(stored), len(urls), vehicle_id)
        return stored

    async def _store_all(
        self,
        client: httpx.AsyncClient,
        urls: List[str],
        vehicle_id: int,
        seen_hashes: Set[str],
    ) -> List[str]:
        results = await asyncio.gather(
            *(self._store_one(client, url, index, vehicle_id, seen_hashes) for index, url in enumerate(urls))
        )
        return [url for url in results if url]

    async def _store_one(
        self,
        client: httpx.AsyncClient,
        url: str,
        index: int,
        vehicle_id: int,
        seen_hashes: Set[str],
    ) -> Optional[str]:
        async with _get_download_semaphore():
            try:
                response = await client.get(url)
            except httpx.HTTPError as exc:
                logger.warning("Image download failed for vehicle %s (%s): %s", vehicle_id, url, exc)
                return None
            if not response.is_success:
                logger.warning(
                    "Image download returned HTTP %s for vehicle %s (%s)",
                    response.status_code, vehicle_id, url,
                )
                return None

            content = response.content
            digest = hashlib.md5(content).hexdigest()
            # no await between check and add, so concurrent downloads cannot both pass
            if digest in seen_hashes:
                logger.debug("Duplicate image skipped for vehicle %s (%s)", vehicle_id, url)
                return None
            seen_hashes.add(digest)

            filename = f"vehicle_{vehicle_id}_{index}_{digest[:8]}.jpg"
            try:
                return await self.uploader.upload(content, filename, self.folder)
            except Exception as exc:
                logger.warning("Image upload failed for vehicle %s (%s): %s", vehicle_id, filename, exc)
                return None


def build_image_syncer() -> ImageSyncer:
    settings = get_settings()
    uploader = HttpImageUploader(settings.IMAGE_UPLOAD_URL) if settings.IMAGE_UPLOAD_URL else None
    return ImageSyncer(uploader)

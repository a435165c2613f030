"""Fetch identity photos and signature rasters for embedding.

Every fetch has its own failure boundary and timeout: a broken or slow
image only ever turns into "no image" for that slot.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

import httpx

from visa_docs.audit import DegradationLog
from visa_docs.errors import ImageUnavailable, StoreError
from visa_docs.record_store import ObjectStore
from visa_docs.settings import Settings
from visa_docs.storage_refs import ExternalRef, KnownRef, StorageRef, Unresolvable, parse_storage_ref

logger = logging.getLogger("visa_docs")


class ImageFormat(str, Enum):
    PNG = "PNG"
    JPEG = "JPEG"
    PDF = "PDF"


@dataclass(frozen=True)
class LoadedImage:
    data: bytes
    format: ImageFormat
    reference: str

    @property
    def embeddable(self) -> bool:
        return self.format is not ImageFormat.PDF


def infer_format(content_type: Optional[str], path: str = "") -> ImageFormat:
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if not mime or mime == "application/octet-stream":
        lowered = path.lower().split("?", 1)[0]
        if lowered.endswith(".png"):
            mime = "image/png"
        elif lowered.endswith(".pdf"):
            mime = "application/pdf"
        else:
            mime = "image/jpeg"
    if "png" in mime:
        return ImageFormat.PNG
    if "pdf" in mime:
        return ImageFormat.PDF
    return ImageFormat.JPEG


class ImageLoader:
    def __init__(
        self,
        object_store: ObjectStore,
        http_client: httpx.AsyncClient,
        *,
        settings: Settings,
        degradations: DegradationLog,
    ):
        self._object_store = object_store
        self._http = http_client
        self._settings = settings
        self._degradations = degradations
        self._timeout = settings.image_fetch_timeout_seconds

    def parse(self, reference: Optional[str]) -> StorageRef:
        return parse_storage_ref(
            reference,
            documents_bucket=self._settings.documents_bucket,
            signatures_bucket=self._settings.signatures_bucket,
            extra_buckets=(self._settings.contracts_bucket,),
        )

    async def _get_url(self, url: str) -> tuple[bytes, str]:
        try:
            response = await self._http.get(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise ImageUnavailable("Image request failed", detail=f"{url}: {exc!r}") from exc
        if response.status_code != 200:
            raise ImageUnavailable(
                f"Image request returned {response.status_code}", detail=url
            )
        return response.content, response.headers.get("content-type", "")

    async def _fetch(self, storage_ref: StorageRef) -> tuple[bytes, str, str]:
        if isinstance(storage_ref, Unresolvable):
            raise ImageUnavailable("Unresolvable image reference", detail=storage_ref.reason)
        if isinstance(storage_ref, ExternalRef):
            data, content_type = await self._get_url(storage_ref.url)
            return data, content_type, storage_ref.url

        try:
            data, content_type = await self._object_store.download(storage_ref.bucket, storage_ref.path)
            return data, content_type, storage_ref.path
        except StoreError as exc:
            if storage_ref.source_url is None:
                raise ImageUnavailable(exc.message, detail=exc.detail) from exc
            logger.warning(
                "Storage download failed for %s/%s, retrying public URL: %s",
                storage_ref.bucket,
                storage_ref.path,
                exc,
            )
        data, content_type = await self._get_url(storage_ref.source_url)
        return data, content_type, storage_ref.path

    async def load(self, reference: Optional[str]) -> Optional[LoadedImage]:
        """Bytes and format for one reference, or None on any failure."""
        if not reference:
            return None
        storage_ref = self.parse(reference)
        try:
            data, content_type, path = await asyncio.wait_for(
                self._fetch(storage_ref), timeout=self._timeout
            )
            if not data:
                raise ImageUnavailable("Image is empty", detail=reference)
        except asyncio.TimeoutError:
            self._degradations.record(
                ImageUnavailable(f"Image fetch timed out after {self._timeout}s", detail=reference)
            )
            return None
        except ImageUnavailable as exc:
            self._degradations.record(exc)
            return None
        except Exception as exc:
            logger.exception("Unexpected error loading image ref=%s", reference)
            self._degradations.record(ImageUnavailable("Image could not be loaded", detail=repr(exc)))
            return None

        image = LoadedImage(data=data, format=infer_format(content_type, path), reference=reference)
        logger.info("Loaded image ref=%s format=%s bytes=%s", reference, image.format.value, len(data))
        return image

    async def load_many(
        self, references: Mapping[str, Optional[str]]
    ) -> dict[str, Optional[LoadedImage]]:
        """Load all slots concurrently; the result keeps the input slot keys."""
        slots = [slot for slot, reference in references.items() if reference]
        results = await asyncio.gather(*(self.load(references[slot]) for slot in slots))
        return dict(zip(slots, results))

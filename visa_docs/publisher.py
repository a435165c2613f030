"""Upload rendered documents and link them back to the order."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from visa_docs.audit import DegradationLog
from visa_docs.errors import OrderUpdateFailed, StoreError, UploadFailed
from visa_docs.models import DocumentKind, Order
from visa_docs.record_store import ObjectStore, RecordStore

logger = logging.getLogger("visa_docs")

PDF_CONTENT_TYPE = "application/pdf"

# kind -> (storage prefix, filename prefix, order column)
PUBLISH_TARGETS = {
    DocumentKind.CONTRACT: ("visa-contracts", "", "contract_pdf_url"),
    DocumentKind.ANNEX: ("visa-annexes", "annex_i_", "annex_pdf_url"),
}

_NON_SLUG_RE = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class PublishedDocument:
    bucket: str
    file_path: str
    public_url: str
    order_updated: bool


def slugify_name(name: str) -> str:
    """``José Álvarez`` -> ``jose_alvarez``; one ``_`` per dropped character."""
    decomposed = unicodedata.normalize("NFD", (name or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_SLUG_RE.sub("_", stripped)


def build_file_path(kind: DocumentKind, order: Order, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    prefix, file_prefix, _column = PUBLISH_TARGETS[kind]
    date_str = now.astimezone(timezone.utc).strftime("%Y-%m-%d")
    timestamp_ms = int(now.timestamp() * 1000)
    file_name = (
        f"{file_prefix}{slugify_name(order.client_name)}_{order.order_number}_{date_str}_{timestamp_ms}.pdf"
    )
    return f"{prefix}/{file_name}"


async def publish(
    *,
    kind: DocumentKind,
    order: Order,
    pdf_bytes: bytes,
    record_store: RecordStore,
    object_store: ObjectStore,
    bucket: str,
    degradations: DegradationLog,
    now: Optional[datetime] = None,
) -> PublishedDocument:
    """Upload, resolve the public URL and record it on the order.

    Upload failure is terminal. A failed order update is only recorded: the
    file already exists and its URL is still returned to the caller.
    """
    file_path = build_file_path(kind, order, now)
    try:
        await object_store.upload(bucket, file_path, pdf_bytes, content_type=PDF_CONTENT_TYPE, upsert=True)
    except StoreError as exc:
        logger.error("Upload failed bucket=%s path=%s: %s", bucket, file_path, exc)
        raise UploadFailed("Failed to upload PDF", detail=exc.detail or exc.message) from exc

    public_url = object_store.public_url(bucket, file_path)
    logger.info("Uploaded %s PDF order=%s path=%s bytes=%s", kind.value, order.order_number, file_path, len(pdf_bytes))

    column = PUBLISH_TARGETS[kind][2]
    order_updated = True
    try:
        await record_store.update_order(order.id, {column: public_url})
    except StoreError as exc:
        order_updated = False
        degradations.record(
            OrderUpdateFailed(f"Could not store {column} on order", detail=exc.detail or exc.message)
        )

    return PublishedDocument(
        bucket=bucket,
        file_path=file_path,
        public_url=public_url,
        order_updated=order_updated,
    )

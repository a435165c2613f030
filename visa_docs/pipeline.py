"""One document generation run: load, resolve, compose, render, publish."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import httpx

from visa_docs.audit import DegradationLog
from visa_docs.documents import (
    SLOT_BACK,
    SLOT_FRONT,
    SLOT_SELFIE,
    SLOT_SIGNATURE,
    DocumentInputs,
    build_annex_document,
    build_contract_document,
)
from visa_docs.errors import StoreError
from visa_docs.identity import resolve_identity
from visa_docs.image_loader import ImageLoader
from visa_docs.layout import LayoutConfig
from visa_docs.models import DocumentKind, GenerateDocumentResponse
from visa_docs.pdf_service import build_layout_config, render_document_to_pdf
from visa_docs.publisher import publish
from visa_docs.record_store import ObjectStore, RecordStore, load_order_bundle, open_supabase_backends
from visa_docs.settings import Settings, load_settings
from visa_docs.templates import resolve_annex_terms, resolve_contract_terms

logger = logging.getLogger("visa_docs")

BUILDERS = {
    DocumentKind.CONTRACT: build_contract_document,
    DocumentKind.ANNEX: build_annex_document,
}
TERMS_RESOLVERS = {
    DocumentKind.CONTRACT: resolve_contract_terms,
    DocumentKind.ANNEX: resolve_annex_terms,
}


@dataclass
class GenerationReport:
    order_id: str
    kind: DocumentKind
    pdf_url: str
    file_path: str
    page_count: int
    template_source: str
    identity_source: Optional[str] = None
    order_updated: bool = True
    degradations: list[dict[str, str]] = field(default_factory=list)

    def to_response(self) -> GenerateDocumentResponse:
        return GenerateDocumentResponse(success=True, pdf_url=self.pdf_url, file_path=self.file_path)


@dataclass(frozen=True)
class Backends:
    record_store: RecordStore
    object_store: ObjectStore
    http_client: httpx.AsyncClient


@asynccontextmanager
async def open_backends(settings: Settings) -> AsyncIterator[Backends]:
    """Managed-backend stores plus a plain client for external image URLs."""
    if not settings.backend_configured:
        raise StoreError("Record store is not configured", detail="SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY")
    image_timeout = httpx.Timeout(settings.image_fetch_timeout_seconds, connect=5.0)
    async with open_supabase_backends(settings) as (record_store, object_store):
        async with httpx.AsyncClient(timeout=image_timeout) as http_client:
            yield Backends(record_store, object_store, http_client)


async def generate_document(
    order_id: str,
    kind: DocumentKind,
    *,
    record_store: RecordStore,
    object_store: ObjectStore,
    http_client: httpx.AsyncClient,
    settings: Settings,
    layout_config: Optional[LayoutConfig] = None,
    now: Optional[datetime] = None,
) -> GenerationReport:
    """Build and publish one document; only terminal errors escape."""
    now = now or datetime.now(timezone.utc)
    degradations = DegradationLog(order_id=order_id, document=kind.value)
    logger.info("Generating %s PDF order_id=%s", kind.value, order_id)

    bundle = await load_order_bundle(record_store, order_id)
    order = bundle.order
    terms = await TERMS_RESOLVERS[kind](record_store, order.product_slug, degradations)
    identity = await resolve_identity(record_store, order, degradations)

    loader = ImageLoader(object_store, http_client, settings=settings, degradations=degradations)
    images = await loader.load_many(
        {
            SLOT_FRONT: identity.files.front,
            SLOT_BACK: identity.files.back,
            SLOT_SELFIE: identity.files.selfie,
            SLOT_SIGNATURE: identity.signature_ref,
        }
    )

    inputs = DocumentInputs(
        bundle=bundle,
        terms=terms,
        identity=identity,
        images=images,
        company_name=settings.company_name,
        generated_at=now,
        timezone_name=settings.document_timezone,
    )
    config = layout_config or build_layout_config()
    document = await asyncio.to_thread(BUILDERS[kind], inputs, config)
    pdf_bytes = await asyncio.to_thread(render_document_to_pdf, document)
    logger.info(
        "Rendered %s PDF order=%s pages=%s bytes=%s", kind.value, order.order_number, len(document.pages), len(pdf_bytes)
    )

    published = await publish(
        kind=kind,
        order=order,
        pdf_bytes=pdf_bytes,
        record_store=record_store,
        object_store=object_store,
        bucket=settings.contracts_bucket,
        degradations=degradations,
        now=now,
    )

    if degradations:
        logger.warning(
            "%s PDF for order=%s generated with %s degradation(s): %s",
            kind.value,
            order.order_number,
            len(degradations),
            ", ".join(degradations.kinds),
        )

    return GenerationReport(
        order_id=order_id,
        kind=kind,
        pdf_url=published.public_url,
        file_path=published.file_path,
        page_count=len(document.pages),
        template_source=terms.source,
        identity_source=identity.predecessor.order_number if identity.predecessor else None,
        order_updated=published.order_updated,
        degradations=list(degradations.events),
    )


async def run_generation(order_id: str, kind: DocumentKind, settings: Optional[Settings] = None) -> GenerationReport:
    settings = settings or load_settings()
    async with open_backends(settings) as backends:
        return await generate_document(
            order_id,
            kind,
            record_store=backends.record_store,
            object_store=backends.object_store,
            http_client=backends.http_client,
            settings=settings,
        )

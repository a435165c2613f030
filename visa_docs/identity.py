"""Which service request's identity files and whose signature an order uses.

Annex-family orders (``*-scholarship``, ``*-i20-control``) inherit both from
the client's most recent paid ``*-selection-process`` order. Anything that
cannot be inherited degrades to the order's own records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from visa_docs.audit import DegradationLog
from visa_docs.errors import IdentityPredecessorNotFound, StoreError
from visa_docs.models import IdentityFileType, Order
from visa_docs.record_store import RecordStore

logger = logging.getLogger("visa_docs")

ANNEX_FAMILY_SUFFIXES = ("-scholarship", "-i20-control")
SELECTION_PROCESS_SUFFIX = "-selection-process"
PREDECESSOR_PAYMENT_STATUSES = ("completed", "manual_pending")


@dataclass(frozen=True)
class IdentityFiles:
    front: Optional[str] = None
    back: Optional[str] = None
    selfie: Optional[str] = None


@dataclass(frozen=True)
class IdentityResolution:
    service_request_id: Optional[str]
    files: IdentityFiles
    signature_ref: Optional[str]
    predecessor: Optional[Order] = None

    @property
    def inherited(self) -> bool:
        return self.predecessor is not None


def is_annex_family(product_slug: Optional[str]) -> bool:
    return bool(product_slug) and product_slug.endswith(ANNEX_FAMILY_SUFFIXES)


def predecessor_slug(product_slug: Optional[str]) -> Optional[str]:
    """``cos-scholarship`` -> ``cos-selection-process``; None outside the annex family."""
    if not is_annex_family(product_slug):
        return None
    for suffix in ANNEX_FAMILY_SUFFIXES:
        if product_slug.endswith(suffix):
            return product_slug[: -len(suffix)] + SELECTION_PROCESS_SUFFIX
    return None


async def find_predecessor_order(store: RecordStore, order: Order) -> Optional[Order]:
    """Most recent completed/manual-pending selection-process order by the same email.

    Returns None when the order is outside the annex family, has no client
    email, or no such order exists. Store failures propagate as StoreError.
    """
    slug = predecessor_slug(order.product_slug)
    if slug is None or not order.client_email:
        return None
    predecessor = await store.find_latest_order(
        client_email=order.client_email,
        product_slug=slug,
        payment_statuses=PREDECESSOR_PAYMENT_STATUSES,
    )
    if predecessor is not None and predecessor.id == order.id:
        return None
    return predecessor


async def collect_identity_files(
    store: RecordStore, service_request_id: Optional[str]
) -> IdentityFiles:
    if not service_request_id:
        return IdentityFiles()
    slots: dict[str, Optional[str]] = {}
    for identity_file in await store.list_identity_files(service_request_id):
        if not identity_file.file_path:
            continue
        # newest file of each type wins
        slots.setdefault(identity_file.file_type, identity_file.file_path)
    return IdentityFiles(
        front=slots.get(IdentityFileType.DOCUMENT_FRONT.value),
        back=slots.get(IdentityFileType.DOCUMENT_BACK.value),
        selfie=slots.get(IdentityFileType.SELFIE_DOC.value),
    )


async def resolve_identity(
    store: RecordStore, order: Order, degradations: DegradationLog
) -> IdentityResolution:
    predecessor: Optional[Order] = None
    if is_annex_family(order.product_slug):
        try:
            predecessor = await find_predecessor_order(store, order)
        except StoreError as exc:
            logger.error("Predecessor lookup failed order=%s: %s", order.order_number, exc)
        if predecessor is None:
            degradations.record(
                IdentityPredecessorNotFound(
                    "No qualifying selection-process order; using own service request",
                    detail=f"slug={predecessor_slug(order.product_slug)} email={order.client_email}",
                )
            )
        else:
            logger.info(
                "Inheriting identity from predecessor order=%s service_request_id=%s",
                predecessor.order_number,
                predecessor.service_request_id,
            )

    service_request_id = (
        predecessor.service_request_id if predecessor is not None else order.service_request_id
    )
    try:
        files = await collect_identity_files(store, service_request_id)
    except StoreError as exc:
        logger.error("Identity files lookup failed service_request_id=%s: %s", service_request_id, exc)
        files = IdentityFiles()

    # legacy order columns predate the identity_files table
    owner = predecessor if predecessor is not None else order
    files = IdentityFiles(
        front=files.front or owner.contract_document_url,
        back=files.back,
        selfie=files.selfie or owner.contract_selfie_url,
    )
    logger.info(
        "Identity files service_request_id=%s front=%s back=%s selfie=%s",
        service_request_id,
        "found" if files.front else "missing",
        "found" if files.back else "missing",
        "found" if files.selfie else "missing",
    )

    signature_ref = order.signature_image_url
    if not signature_ref and predecessor is not None:
        signature_ref = predecessor.signature_image_url

    return IdentityResolution(
        service_request_id=service_request_id,
        files=files,
        signature_ref=signature_ref or None,
        predecessor=predecessor,
    )

"""In-memory record and object stores.

Used by the test suite and for local dry runs without a managed backend.
Behaviour mirrors the PostgREST/storage implementations closely enough for
the pipeline: newest-first ordering, null-scoped templates, upsert uploads.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Sequence, Union

from visa_docs.errors import StoreError
from visa_docs.models import ContractTemplate, IdentityFile, Order, Product, TemplateType

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _created_key(record: Union[Order, IdentityFile]) -> datetime:
    created = record.created_at or _EPOCH
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


class InMemoryRecordStore:
    def __init__(
        self,
        *,
        orders: Sequence[Order] = (),
        products: Sequence[Product] = (),
        templates: Sequence[ContractTemplate] = (),
        identity_files: Sequence[IdentityFile] = (),
    ):
        self.orders: dict[str, Order] = {order.id: order for order in orders}
        self.products: dict[str, Product] = {product.slug: product for product in products}
        self.templates: list[ContractTemplate] = list(templates)
        self.identity_files: list[IdentityFile] = list(identity_files)
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.fail_updates = False

    async def get_order(self, order_id: str) -> Optional[Order]:
        return self.orders.get(order_id)

    async def get_product(self, slug: str) -> Optional[Product]:
        return self.products.get(slug)

    async def get_active_template(
        self, template_type: TemplateType, product_slug: Optional[str]
    ) -> Optional[ContractTemplate]:
        for template in reversed(self.templates):
            if (
                template.template_type == template_type
                and template.is_active
                and template.product_slug == product_slug
            ):
                return template
        return None

    async def find_latest_order(
        self, *, client_email: str, product_slug: str, payment_statuses: Sequence[str]
    ) -> Optional[Order]:
        matches = [
            order
            for order in self.orders.values()
            if order.client_email == client_email
            and order.product_slug == product_slug
            and order.payment_status in payment_statuses
        ]
        if not matches:
            return None
        return max(matches, key=_created_key)

    async def list_identity_files(self, service_request_id: str) -> list[IdentityFile]:
        files = [f for f in self.identity_files if f.service_request_id == service_request_id]
        return sorted(files, key=_created_key, reverse=True)

    async def update_order(self, order_id: str, fields: dict[str, Any]) -> None:
        if self.fail_updates:
            raise StoreError("Order update rejected", detail=order_id)
        self.updates.append((order_id, dict(fields)))
        order = self.orders.get(order_id)
        if order is not None:
            self.orders[order_id] = order.model_copy(update=fields)


class InMemoryObjectStore:
    def __init__(self, base_url: str = "https://storage.local"):
        self.base_url = base_url.rstrip("/")
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.fail_uploads = False

    def put(self, bucket: str, path: str, data: bytes, content_type: str = "image/png") -> None:
        self.objects[(bucket, path)] = (data, content_type)

    async def download(self, bucket: str, path: str) -> tuple[bytes, str]:
        entry = self.objects.get((bucket, path))
        if entry is None:
            raise StoreError(f"Download of {bucket}/{path} returned 404", detail="Object not found")
        return entry

    async def upload(
        self, bucket: str, path: str, data: bytes, *, content_type: str, upsert: bool = True
    ) -> None:
        if self.fail_uploads:
            raise StoreError(f"Upload of {bucket}/{path} returned 500", detail="storage offline")
        if not upsert and (bucket, path) in self.objects:
            raise StoreError(f"Upload of {bucket}/{path} returned 409", detail="Duplicate")
        self.objects[(bucket, path)] = (bytes(data), content_type)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"

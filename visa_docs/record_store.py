"""Record and object store access for the managed backend.

The relational side talks PostgREST under ``/rest/v1``; the object side
talks the storage API under ``/storage/v1/object``. Both authenticate with
the service-role key. Everything else in the package depends only on the
``RecordStore`` / ``ObjectStore`` protocols, so tests can swap in the
in-memory backends from ``fake_backends``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Protocol, Sequence
from urllib.parse import quote

import httpx

from visa_docs.errors import OrderNotFound, StoreError
from visa_docs.models import ContractTemplate, IdentityFile, Order, Product, TemplateType
from visa_docs.settings import Settings

logger = logging.getLogger("visa_docs")

ORDERS_TABLE = "visa_orders"
PRODUCTS_TABLE = "visa_products"
TEMPLATES_TABLE = "contract_templates"
IDENTITY_FILES_TABLE = "identity_files"


class RecordStore(Protocol):
    async def get_order(self, order_id: str) -> Optional[Order]: ...

    async def get_product(self, slug: str) -> Optional[Product]: ...

    async def get_active_template(
        self, template_type: TemplateType, product_slug: Optional[str]
    ) -> Optional[ContractTemplate]: ...

    async def find_latest_order(
        self, *, client_email: str, product_slug: str, payment_statuses: Sequence[str]
    ) -> Optional[Order]: ...

    async def list_identity_files(self, service_request_id: str) -> list[IdentityFile]: ...

    async def update_order(self, order_id: str, fields: dict[str, Any]) -> None: ...


class ObjectStore(Protocol):
    async def download(self, bucket: str, path: str) -> tuple[bytes, str]: ...

    async def upload(
        self, bucket: str, path: str, data: bytes, *, content_type: str, upsert: bool = True
    ) -> None: ...

    def public_url(self, bucket: str, path: str) -> str: ...


def _auth_headers(service_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {service_key}",
        "apikey": service_key,
    }


class SupabaseRecordStore:
    def __init__(self, client: httpx.AsyncClient, *, base_url: str, service_key: str):
        self._client = client
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._headers = _auth_headers(service_key)

    async def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        query = {"select": "*", **params}
        try:
            response = await self._client.get(
                f"{self._rest_url}/{table}", params=query, headers=self._headers
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"Record store request failed for {table}", detail=repr(exc)) from exc
        if response.status_code != 200:
            raise StoreError(
                f"Record store returned {response.status_code} for {table}",
                detail=response.text[:500],
            )
        try:
            rows = response.json()
        except ValueError as exc:
            raise StoreError(f"Record store returned invalid JSON for {table}", detail=response.text[:500]) from exc
        return rows if isinstance(rows, list) else []

    async def _first(self, table: str, params: dict[str, str]) -> Optional[dict[str, Any]]:
        rows = await self._select(table, {**params, "limit": "1"})
        return rows[0] if rows else None

    async def get_order(self, order_id: str) -> Optional[Order]:
        row = await self._first(ORDERS_TABLE, {"id": f"eq.{order_id}"})
        return Order.model_validate(row) if row else None

    async def get_product(self, slug: str) -> Optional[Product]:
        row = await self._first(PRODUCTS_TABLE, {"slug": f"eq.{slug}"})
        return Product.model_validate(row) if row else None

    async def get_active_template(
        self, template_type: TemplateType, product_slug: Optional[str]
    ) -> Optional[ContractTemplate]:
        params = {
            "template_type": f"eq.{template_type.value}",
            "is_active": "eq.true",
            "product_slug": f"eq.{product_slug}" if product_slug else "is.null",
            "order": "created_at.desc",
        }
        row = await self._first(TEMPLATES_TABLE, params)
        return ContractTemplate.model_validate(row) if row else None

    async def find_latest_order(
        self, *, client_email: str, product_slug: str, payment_statuses: Sequence[str]
    ) -> Optional[Order]:
        params = {
            "client_email": f"eq.{client_email}",
            "product_slug": f"eq.{product_slug}",
            "payment_status": f"in.({','.join(payment_statuses)})",
            "order": "created_at.desc",
        }
        row = await self._first(ORDERS_TABLE, params)
        return Order.model_validate(row) if row else None

    async def list_identity_files(self, service_request_id: str) -> list[IdentityFile]:
        rows = await self._select(
            IDENTITY_FILES_TABLE, {"service_request_id": f"eq.{service_request_id}", "order": "created_at.desc"}
        )
        return [IdentityFile.model_validate(row) for row in rows]

    async def update_order(self, order_id: str, fields: dict[str, Any]) -> None:
        headers = {**self._headers, "Prefer": "return=minimal"}
        try:
            response = await self._client.patch(
                f"{self._rest_url}/{ORDERS_TABLE}",
                params={"id": f"eq.{order_id}"},
                json=fields,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise StoreError("Order update request failed", detail=repr(exc)) from exc
        if response.status_code not in (200, 204):
            raise StoreError(
                f"Order update returned {response.status_code}", detail=response.text[:500]
            )


class SupabaseObjectStore:
    def __init__(self, client: httpx.AsyncClient, *, base_url: str, service_key: str):
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._headers = _auth_headers(service_key)

    def _object_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/{bucket}/{quote(path.lstrip('/'))}"

    async def download(self, bucket: str, path: str) -> tuple[bytes, str]:
        try:
            response = await self._client.get(self._object_url(bucket, path), headers=self._headers)
        except httpx.HTTPError as exc:
            raise StoreError(f"Download failed for {bucket}/{path}", detail=repr(exc)) from exc
        if response.status_code != 200:
            raise StoreError(
                f"Download of {bucket}/{path} returned {response.status_code}",
                detail=response.text[:200],
            )
        return response.content, response.headers.get("content-type", "")

    async def upload(
        self, bucket: str, path: str, data: bytes, *, content_type: str, upsert: bool = True
    ) -> None:
        headers = {
            **self._headers,
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
        }
        try:
            response = await self._client.post(
                self._object_url(bucket, path), content=data, headers=headers
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"Upload failed for {bucket}/{path}", detail=repr(exc)) from exc
        if response.status_code not in (200, 201):
            raise StoreError(
                f"Upload of {bucket}/{path} returned {response.status_code}",
                detail=response.text[:500],
            )

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{bucket}/{quote(path.lstrip('/'))}"


@asynccontextmanager
async def open_supabase_backends(
    settings: Settings,
) -> AsyncIterator[tuple[SupabaseRecordStore, SupabaseObjectStore]]:
    """Yield a record store and object store sharing one HTTP client."""
    timeout = httpx.Timeout(settings.store_timeout_seconds, connect=10.0)
    async with httpx.AsyncClient(timeout=timeout) as client:
        yield (
            SupabaseRecordStore(
                client, base_url=settings.supabase_url, service_key=settings.service_role_key
            ),
            SupabaseObjectStore(
                client, base_url=settings.supabase_url, service_key=settings.service_role_key
            ),
        )


# ------------------------------------------------------------------------------
# Record Loader
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class OrderBundle:
    order: Order
    product: Optional[Product]

    @property
    def service_name(self) -> str:
        if self.product is not None and self.product.name:
            return self.product.name
        return self.order.product_slug


async def load_order_bundle(store: RecordStore, order_id: str) -> OrderBundle:
    """Fetch the order and its product; a missing order is terminal."""
    order = await store.get_order(order_id)
    if order is None:
        raise OrderNotFound("Order not found", detail=order_id)

    product: Optional[Product] = None
    if order.product_slug:
        try:
            product = await store.get_product(order.product_slug)
        except StoreError as exc:
            logger.error("Product lookup failed slug=%s: %s", order.product_slug, exc)
        if product is None:
            logger.warning(
                "Product not found slug=%s; printing raw slug as service name",
                order.product_slug,
            )
    return OrderBundle(order=order, product=product)

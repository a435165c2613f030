from __future__ import annotations

import asyncio
import json
import unittest
from decimal import Decimal

import httpx

from visa_docs.errors import OrderNotFound, StoreError
from visa_docs.fake_backends import InMemoryRecordStore
from visa_docs.models import Order, Product, TemplateType
from visa_docs.record_store import SupabaseObjectStore, SupabaseRecordStore, load_order_bundle

BASE_URL = "https://proj.supabase.co"


def _run_with(handler, scenario):
    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            records = SupabaseRecordStore(client, base_url=BASE_URL, service_key="service-key")
            objects = SupabaseObjectStore(client, base_url=BASE_URL, service_key="service-key")
            return await scenario(records, objects)

    return asyncio.run(runner())


class TestSupabaseRecordStore(unittest.TestCase):
    def test_get_order_sends_postgrest_filters_and_auth(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json=[{"id": 42, "order_number": "ORD-1", "total_price_usd": "99.5", "payment_metadata": None}]
            )

        order = _run_with(handler, lambda records, _objects: records.get_order("42"))

        self.assertEqual(order.id, "42")
        self.assertEqual(order.total_price_usd, Decimal("99.5"))
        self.assertEqual(order.payment_metadata, {})
        request = seen[0]
        self.assertEqual(request.url.path, "/rest/v1/visa_orders")
        self.assertEqual(request.url.params["id"], "eq.42")
        self.assertEqual(request.url.params["limit"], "1")
        self.assertEqual(request.headers["apikey"], "service-key")
        self.assertEqual(request.headers["authorization"], "Bearer service-key")

    def test_global_template_lookup_uses_is_null(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        result = _run_with(
            handler, lambda records, _objects: records.get_active_template(TemplateType.CHARGEBACK_ANNEX, None)
        )

        self.assertIsNone(result)
        params = seen[0].url.params
        self.assertEqual(params["product_slug"], "is.null")
        self.assertEqual(params["is_active"], "eq.true")
        self.assertEqual(params["order"], "created_at.desc")

    def test_predecessor_query_filters_statuses(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        _run_with(
            handler,
            lambda records, _objects: records.find_latest_order(
                client_email="a@x.com",
                product_slug="cos-selection-process",
                payment_statuses=("completed", "manual_pending"),
            ),
        )
        params = seen[0].url.params
        self.assertEqual(params["payment_status"], "in.(completed,manual_pending)")
        self.assertEqual(params["client_email"], "eq.a@x.com")

    def test_error_status_raises_store_error(self) -> None:
        with self.assertRaises(StoreError):
            _run_with(lambda request: httpx.Response(503, text="down"), lambda records, _o: records.get_order("1"))

    def test_non_json_body_raises_store_error(self) -> None:
        with self.assertRaises(StoreError):
            _run_with(
                lambda request: httpx.Response(200, text="<html>gateway</html>"),
                lambda records, _o: records.get_active_template(TemplateType.VISA_SERVICE, "b1-visa"),
            )

    def test_identity_files_are_listed_newest_first(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        _run_with(handler, lambda records, _o: records.list_identity_files("SR-1"))
        params = seen[0].url.params
        self.assertEqual(params["service_request_id"], "eq.SR-1")
        self.assertEqual(params["order"], "created_at.desc")

    def test_update_order_patches_with_minimal_return(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        _run_with(handler, lambda records, _o: records.update_order("o-1", {"contract_pdf_url": "https://x/y.pdf"}))
        request = seen[0]
        self.assertEqual(request.method, "PATCH")
        self.assertEqual(request.headers["prefer"], "return=minimal")
        self.assertEqual(json.loads(request.content), {"contract_pdf_url": "https://x/y.pdf"})


class TestSupabaseObjectStore(unittest.TestCase):
    def test_upload_sets_upsert_and_content_type(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "contracts/visa-contracts/a.pdf"})

        _run_with(
            handler,
            lambda _r, objects: objects.upload(
                "contracts", "visa-contracts/a.pdf", b"%PDF", content_type="application/pdf"
            ),
        )
        request = seen[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/storage/v1/object/contracts/visa-contracts/a.pdf")
        self.assertEqual(request.headers["x-upsert"], "true")
        self.assertEqual(request.headers["content-type"], "application/pdf")

    def test_download_failure_raises_store_error(self) -> None:
        with self.assertRaises(StoreError):
            _run_with(lambda request: httpx.Response(404), lambda _r, objects: objects.download("b", "p.png"))

    def test_public_url(self) -> None:
        objects = SupabaseObjectStore(httpx.AsyncClient(), base_url=BASE_URL + "/", service_key="k")
        self.assertEqual(
            objects.public_url("contracts", "visa-annexes/annex i.pdf"),
            f"{BASE_URL}/storage/v1/object/public/contracts/visa-annexes/annex%20i.pdf",
        )


class TestLoadOrderBundle(unittest.TestCase):
    def test_missing_order_is_terminal(self) -> None:
        with self.assertRaises(OrderNotFound) as ctx:
            asyncio.run(load_order_bundle(InMemoryRecordStore(), "o-404"))
        self.assertEqual(ctx.exception.status_code, 404)

    def test_missing_product_prints_slug(self) -> None:
        store = InMemoryRecordStore(orders=[Order(id="o-1", product_slug="eb2-niw")])
        bundle = asyncio.run(load_order_bundle(store, "o-1"))
        self.assertIsNone(bundle.product)
        self.assertEqual(bundle.service_name, "eb2-niw")

    def test_product_name_is_service_name(self) -> None:
        store = InMemoryRecordStore(
            orders=[Order(id="o-1", product_slug="eb2-niw")],
            products=[Product(slug="eb2-niw", name="EB-2 NIW Petition")],
        )
        self.assertEqual(asyncio.run(load_order_bundle(store, "o-1")).service_name, "EB-2 NIW Petition")


if __name__ == "__main__":
    unittest.main()

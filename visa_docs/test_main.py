from __future__ import annotations

import unittest
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import httpx
from fastapi.testclient import TestClient

from visa_docs import main, pipeline
from visa_docs.fake_backends import InMemoryObjectStore, InMemoryRecordStore
from visa_docs.models import Order
from visa_docs.settings import Settings


def _fake_backends(records, objects):
    @asynccontextmanager
    async def _open(_settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        async with httpx.AsyncClient(transport=transport) as client:
            yield pipeline.Backends(records, objects, client)

    return _open


class TestGenerateEndpoints(unittest.TestCase):
    def setUp(self) -> None:
        self.records = InMemoryRecordStore(
            orders=[
                Order.model_validate(
                    {
                        "id": "o-2",
                        "order_number": "ORD-2024-0002",
                        "product_slug": "b1-visa",
                        "client_name": "John Doe",
                        "client_email": "john@example.com",
                        "payment_method": "zelle",
                        "total_price_usd": "150.00",
                    }
                )
            ]
        )
        self.objects = InMemoryObjectStore(base_url="https://proj.supabase.co")
        backends_patch = patch.object(pipeline, "open_backends", _fake_backends(self.records, self.objects))
        backends_patch.start()
        self.addCleanup(backends_patch.stop)
        self.client = TestClient(main.app)

    def test_missing_order_id_is_rejected(self) -> None:
        for body in ({}, {"order_id": "   "}, {"order_id": None}):
            response = self.client.post("/generate-visa-contract-pdf", json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {"success": False, "error": "order_id is required"})

        response = self.client.post("/generate-annex-pdf")
        self.assertEqual(response.status_code, 400)

    def test_unknown_order_is_404(self) -> None:
        response = self.client.post("/generate-visa-contract-pdf", json={"order_id": "nope"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"success": False, "error": "Order not found"})

    def test_contract_success(self) -> None:
        response = self.client.post("/generate-visa-contract-pdf", json={"order_id": "o-2"})
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertTrue(payload["file_path"].startswith("visa-contracts/john_doe_ORD-2024-0002_"))
        self.assertEqual(
            payload["pdf_url"],
            f"https://proj.supabase.co/storage/v1/object/public/contracts/{payload['file_path']}",
        )
        self.assertIn(("contracts", payload["file_path"]), self.objects.objects)

    def test_annex_success(self) -> None:
        response = self.client.post("/generate-annex-pdf", json={"order_id": "o-2"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertTrue(response.json()["file_path"].startswith("visa-annexes/annex_i_john_doe_"))
        self.assertEqual(self.records.orders["o-2"].annex_pdf_url, response.json()["pdf_url"])

    def test_upload_failure_is_500(self) -> None:
        self.objects.fail_uploads = True
        response = self.client.post("/generate-annex-pdf", json={"order_id": "o-2"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"success": False, "error": "Failed to upload PDF"})

    def test_unexpected_error_is_500(self) -> None:
        with patch.object(pipeline, "run_generation", AsyncMock(side_effect=RuntimeError("boom"))):
            response = self.client.post("/generate-visa-contract-pdf", json={"order_id": "o-2"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"success": False, "error": "boom"})


class TestUnconfiguredBackend(unittest.TestCase):
    def test_missing_credentials_is_500(self) -> None:
        with patch.object(main, "load_settings", return_value=Settings()):
            response = TestClient(main.app).post("/generate-visa-contract-pdf", json={"order_id": "o-2"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "Record store is not configured")


class TestHealth(unittest.TestCase):
    def test_health_reports_fonts(self) -> None:
        response = TestClient(main.app).get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "ok")
        self.assertIn("regular", payload["pdf_fonts"])


if __name__ == "__main__":
    unittest.main()

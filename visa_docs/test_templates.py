from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock

from visa_docs.audit import DegradationLog
from visa_docs.errors import StoreError
from visa_docs.fake_backends import InMemoryRecordStore
from visa_docs.models import ContractTemplate, TemplateType
from visa_docs.templates import (
    DEFAULT_ANNEX_TEXT,
    DEFAULT_CONTRACT_TERMS,
    resolve_annex_terms,
    resolve_contract_terms,
)


def _template(template_type, slug, content, active=True) -> ContractTemplate:
    return ContractTemplate(template_type=template_type, product_slug=slug, content=content, is_active=active)


class TestContractTerms(unittest.TestCase):
    def test_product_template_is_normalized(self) -> None:
        store = InMemoryRecordStore(
            templates=[_template(TemplateType.VISA_SERVICE, "b1-visa", "<p>Custom <b>terms</b></p>")]
        )
        log = DegradationLog(order_id="o", document="contract")
        resolved = asyncio.run(resolve_contract_terms(store, "b1-visa", log))
        self.assertEqual(resolved.text, "Custom terms")
        self.assertEqual(resolved.source, "product")
        self.assertEqual(len(log), 0)

    def test_contract_never_uses_global_template(self) -> None:
        store = InMemoryRecordStore(templates=[_template(TemplateType.VISA_SERVICE, None, "<p>Global</p>")])
        log = DegradationLog(order_id="o", document="contract")
        resolved = asyncio.run(resolve_contract_terms(store, "b1-visa", log))
        self.assertEqual(resolved.text, DEFAULT_CONTRACT_TERMS)
        self.assertEqual(log.kinds, ["TemplateMissing"])

    def test_inactive_template_is_ignored(self) -> None:
        store = InMemoryRecordStore(
            templates=[_template(TemplateType.VISA_SERVICE, "b1-visa", "<p>Old</p>", active=False)]
        )
        log = DegradationLog(order_id="o", document="contract")
        resolved = asyncio.run(resolve_contract_terms(store, "b1-visa", log))
        self.assertEqual(resolved.source, "default")


class TestAnnexTerms(unittest.TestCase):
    def test_product_then_global_then_default(self) -> None:
        store = InMemoryRecordStore(
            templates=[
                _template(TemplateType.CHARGEBACK_ANNEX, None, "<p>Global annex</p>"),
                _template(TemplateType.CHARGEBACK_ANNEX, "cos-scholarship", "<p>Scholarship annex</p>"),
            ]
        )
        log = DegradationLog(order_id="o", document="annex")
        product = asyncio.run(resolve_annex_terms(store, "cos-scholarship", log))
        self.assertEqual((product.text, product.source), ("Scholarship annex", "product"))

        fallback = asyncio.run(resolve_annex_terms(store, "f1-i20-control", log))
        self.assertEqual((fallback.text, fallback.source), ("Global annex", "global"))
        self.assertEqual(log.kinds, ["TemplateMissing"])

    def test_store_failure_degrades_to_default_text(self) -> None:
        store = InMemoryRecordStore()
        store.get_active_template = AsyncMock(side_effect=StoreError("Record store returned 503"))
        log = DegradationLog(order_id="o", document="annex")
        resolved = asyncio.run(resolve_annex_terms(store, "cos-scholarship", log))
        self.assertEqual(resolved.text, DEFAULT_ANNEX_TEXT)
        self.assertEqual(log.kinds, ["TemplateMissing", "TemplateMissing"])


if __name__ == "__main__":
    unittest.main()

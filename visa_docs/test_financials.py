from __future__ import annotations

import unittest
from decimal import Decimal

from visa_docs.financials import (
    derive_display_amount,
    payment_detail_fields,
    payment_method_label,
)
from visa_docs.models import Order


def _order(**overrides) -> Order:
    data = {
        "id": "1",
        "order_number": "ORD-2024-0001",
        "client_name": "Ana Souza",
        "client_email": "a@x.com",
        "total_price_usd": "150.00",
    }
    data.update(overrides)
    return Order.model_validate(data)


class TestDisplayAmount(unittest.TestCase):
    def test_zelle_prints_base_total(self) -> None:
        amount = derive_display_amount(_order(payment_method="zelle"))
        self.assertEqual(str(amount), "US$ 150.00")

    def test_card_ignores_local_currency_metadata(self) -> None:
        order = _order(payment_method="stripe_card", payment_metadata={"final_amount": "812.40", "total_brl": 900})
        amount = derive_display_amount(order)
        self.assertEqual(amount.currency_symbol, "US$")
        self.assertEqual(amount.amount, Decimal("150.00"))

    def test_parcelow_prefers_total_brl(self) -> None:
        order = _order(payment_method="parcelow", payment_metadata={"total_brl": "987.65", "base_brl": "800"})
        self.assertEqual(str(derive_display_amount(order)), "R$ 987.65")

    def test_parcelow_falls_back_to_base_brl_then_total(self) -> None:
        base_only = _order(payment_method="parcelow", payment_metadata={"total_brl": 0, "base_brl": "800.5"})
        self.assertEqual(str(derive_display_amount(base_only)), "R$ 800.50")
        neither = _order(payment_method="parcelow", payment_metadata={"total_brl": "abc"})
        self.assertEqual(str(derive_display_amount(neither)), "R$ 150.00")

    def test_pix_uses_final_amount_when_positive(self) -> None:
        paid = _order(payment_method="stripe_pix", payment_metadata={"final_amount": 812.4})
        self.assertEqual(str(derive_display_amount(paid)), "R$ 812.40")
        missing = _order(payment_method="stripe_pix", payment_metadata={"final_amount": -1})
        self.assertEqual(str(derive_display_amount(missing)), "R$ 150.00")

    def test_unknown_method_and_null_total(self) -> None:
        amount = derive_display_amount(_order(payment_method="wire", total_price_usd=None))
        self.assertEqual(str(amount), "US$ 0.00")


class TestPaymentLabels(unittest.TestCase):
    def test_known_and_unknown_labels(self) -> None:
        self.assertEqual(payment_method_label("stripe_card"), "STRIPE CARD")
        self.assertEqual(payment_method_label("parcelow"), "PARCELOW")
        self.assertEqual(payment_method_label("bank_wire"), "BANK WIRE")
        self.assertIsNone(payment_method_label(None))

    def test_detail_fields_only_for_present_metadata(self) -> None:
        order = _order(
            payment_method="parcelow",
            payment_metadata={"installments": 6, "cpf": "123.456.789-00", "parcelow_order_id": ""},
        )
        self.assertEqual(
            payment_detail_fields(order),
            [("Installments", "6"), ("Tax ID (CPF)", "123.456.789-00")],
        )

    def test_detail_fields_empty_for_unknown_method(self) -> None:
        self.assertEqual(payment_detail_fields(_order(payment_method="wire", payment_metadata={"cpf": "1"})), [])


if __name__ == "__main__":
    unittest.main()

"""Amount, currency and payment details as the client actually authorized them.

``total_price_usd`` is the base listing price on every rail; the rails that
charge in local currency carry the authorized figure in ``payment_metadata``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional

from visa_docs.models import Order

BASE_CURRENCY_SYMBOL = "US$"
LOCAL_CURRENCY_SYMBOL = "R$"
_CENTS = Decimal("0.01")


class PaymentRail(str, Enum):
    CARD = "stripe_card"
    PIX = "stripe_pix"
    INSTALLMENTS = "parcelow"
    PEER_TRANSFER = "zelle"
    MANUAL = "manual"


PAYMENT_METHOD_LABELS = {
    PaymentRail.CARD: "STRIPE CARD",
    PaymentRail.PIX: "STRIPE PIX",
    PaymentRail.INSTALLMENTS: "PARCELOW",
    PaymentRail.PEER_TRANSFER: "ZELLE",
    PaymentRail.MANUAL: "MANUAL",
}

# (metadata key, printed label) per rail, printed only when present
PAYMENT_DETAIL_FIELDS: dict[PaymentRail, tuple[tuple[str, str], ...]] = {
    PaymentRail.CARD: (
        ("card_name", "Cardholder Name"),
        ("card_last4", "Card (last 4)"),
    ),
    PaymentRail.PIX: (
        ("final_amount", "Amount Paid (BRL)"),
        ("exchange_rate", "Exchange Rate"),
    ),
    PaymentRail.INSTALLMENTS: (
        ("installments", "Installments"),
        ("cpf", "Tax ID (CPF)"),
        ("parcelow_order_id", "Parcelow Order"),
    ),
    PaymentRail.PEER_TRANSFER: (
        ("confirmation_code", "Confirmation Code"),
    ),
    PaymentRail.MANUAL: (
        ("approved_by", "Approved By"),
        ("reference", "Reference"),
    ),
}


@dataclass(frozen=True)
class DisplayAmount:
    amount: Decimal
    currency_symbol: str

    def __str__(self) -> str:
        return f"{self.currency_symbol} {self.amount.quantize(_CENTS, rounding=ROUND_HALF_UP)}"


def payment_rail(payment_method: Optional[str]) -> Optional[PaymentRail]:
    try:
        return PaymentRail((payment_method or "").strip().lower())
    except ValueError:
        return None


def _positive_amount(metadata: Mapping[str, Any], key: str) -> Optional[Decimal]:
    raw = metadata.get(key)
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def derive_display_amount(order: Order) -> DisplayAmount:
    """Amount and currency symbol to print for the order's payment rail."""
    base_total = order.total_price_usd
    metadata = order.payment_metadata or {}
    rail = payment_rail(order.payment_method)

    if rail is PaymentRail.PIX:
        amount = _positive_amount(metadata, "final_amount") or base_total
        return DisplayAmount(amount, LOCAL_CURRENCY_SYMBOL)

    if rail is PaymentRail.INSTALLMENTS:
        amount = (
            _positive_amount(metadata, "total_brl")
            or _positive_amount(metadata, "base_brl")
            or base_total
        )
        return DisplayAmount(amount, LOCAL_CURRENCY_SYMBOL)

    # card, peer transfer, manual and unknown rails print the base total
    return DisplayAmount(base_total, BASE_CURRENCY_SYMBOL)


def payment_method_label(payment_method: Optional[str]) -> Optional[str]:
    if not payment_method:
        return None
    rail = payment_rail(payment_method)
    if rail is not None:
        return PAYMENT_METHOD_LABELS[rail]
    return payment_method.replace("_", " ").upper()


def payment_detail_fields(order: Order) -> list[tuple[str, str]]:
    """Rail-specific (label, value) pairs found in the payment metadata."""
    rail = payment_rail(order.payment_method)
    if rail is None:
        return []
    metadata = order.payment_metadata or {}
    fields: list[tuple[str, str]] = []
    for key, label in PAYMENT_DETAIL_FIELDS[rail]:
        value = metadata.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            fields.append((label, text))
    return fields

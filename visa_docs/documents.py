"""Section order and content of the visa service contract and Annex I."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional

import pytz

from visa_docs import layout
from visa_docs.financials import derive_display_amount, payment_detail_fields, payment_method_label
from visa_docs.identity import IdentityResolution
from visa_docs.image_loader import LoadedImage
from visa_docs.layout import Document, LayoutConfig, LayoutCursor
from visa_docs.record_store import OrderBundle
from visa_docs.templates import ResolvedTemplate

logger = logging.getLogger("visa_docs")

PDF_DOCUMENT_TEXT = "(PDF document - see storage)"
LEGAL_NOTICE = "This document has legal validity and serves as proof of acceptance"

# image slots shared with the pipeline's concurrent loader
SLOT_FRONT = "document_front"
SLOT_BACK = "document_back"
SLOT_SELFIE = "selfie"
SLOT_SIGNATURE = "signature"

DOCUMENT_IMAGE_BOX = (80.0, 50.0)
SELFIE_IMAGE_BOX = (60.0, 60.0)
SIGNATURE_IMAGE_BOX = (45.0, 20.0)


@dataclass(frozen=True)
class DocumentInputs:
    bundle: OrderBundle
    terms: ResolvedTemplate
    identity: IdentityResolution
    images: Mapping[str, Optional[LoadedImage]] = field(default_factory=dict)
    company_name: str = "MIGMA INC."
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    timezone_name: str = "UTC"


def document_timezone(name: str) -> pytz.BaseTzInfo:
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown DOCUMENT_TIMEZONE=%s; using UTC", name)
        return pytz.utc


def _localize(value: datetime, timezone_name: str) -> datetime:
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(document_timezone(timezone_name))


def format_timestamp(value: datetime, timezone_name: str = "UTC") -> str:
    """``03/05/2024, 02:30:00 PM`` in the document timezone."""
    return _localize(value, timezone_name).strftime("%m/%d/%Y, %I:%M:%S %p")


def format_long_date(value: datetime, timezone_name: str = "UTC") -> str:
    local = _localize(value, timezone_name)
    return f"{local.strftime('%B')} {local.day}, {local.year}."


def footer_lines(inputs: DocumentInputs) -> list[str]:
    return [
        f"Generated on {format_timestamp(inputs.generated_at, inputs.timezone_name)}",
        LEGAL_NOTICE,
    ]


# ------------------------------------------------------------------------------
# Shared sections
# ------------------------------------------------------------------------------
def _payment_details(document: Document, cursor: LayoutCursor, inputs: DocumentInputs) -> LayoutCursor:
    fields = payment_detail_fields(inputs.bundle.order)
    if not fields:
        return cursor
    cursor = layout.ensure_space(document, cursor, 40)
    cursor = layout.heading(document, cursor, "PAYMENT DETAILS")
    for label, value in fields:
        cursor = layout.labeled_field(document, cursor, f"{label}:", value)
    return cursor.down(7)


def _terms(document: Document, cursor: LayoutCursor, title: str, terms: ResolvedTemplate) -> LayoutCursor:
    cursor = layout.ensure_space(document, cursor, 60)
    cursor = layout.heading(document, cursor, title)
    cursor = layout.wrapped_paragraph(document, cursor, terms.text)
    return cursor.down(20)


def _identity_image(
    document: Document,
    cursor: LayoutCursor,
    label: str,
    reference: Optional[str],
    loaded: Optional[LoadedImage],
    box: tuple[float, float],
    *,
    align: str = "left",
) -> LayoutCursor:
    """Label plus image, placeholder when the reference exists but gave no usable image."""
    if not reference:
        return cursor
    cursor = layout.ensure_space(document, cursor, 80)
    cursor = layout.heading(document, cursor, label, size=document.config.field_size, gap=10)
    if loaded is None:
        return layout.placeholder(document, cursor, layout.IMAGE_UNAVAILABLE_TEXT)
    if not loaded.embeddable:
        return layout.placeholder(document, cursor, PDF_DOCUMENT_TEXT)
    max_width, max_height = box
    return layout.image(
        document, cursor, loaded.data, max_width=max_width, max_height=max_height, align=align
    )


def _typed_signature(document: Document, cursor: LayoutCursor, client_name: str) -> LayoutCursor:
    config = document.config
    cursor = layout.ensure_space(document, cursor, 20)
    prefix = "Signature:"
    document.add(cursor, layout.TextOp(config.margin, cursor.y, prefix, config.font_regular, config.body_size))
    name = client_name or "-"
    name_x = config.margin + layout.text_width(prefix + " ", config.font_regular, config.body_size) + 5
    document.add(cursor, layout.TextOp(name_x, cursor.y, name, config.font_bold, config.body_size))
    name_width = layout.text_width(name, config.font_bold, config.body_size)
    document.add(cursor, layout.LineOp(name_x, cursor.y + 2, name_x + name_width, cursor.y + 2))
    return cursor.down(15)


def _signature_block(
    document: Document, cursor: LayoutCursor, inputs: DocumentInputs, *, include_selfie: bool = True
) -> LayoutCursor:
    config = document.config
    order = inputs.bundle.order
    files = inputs.identity.files
    cursor = layout.ensure_space(document, cursor, 120)

    signed_on = order.contract_signed_at or order.created_at or inputs.generated_at
    cursor = layout.text_line(
        document, cursor, f"Date: {format_long_date(signed_on, inputs.timezone_name)}", gap=15
    )

    if include_selfie and files.selfie:
        selfie = inputs.images.get(SLOT_SELFIE)
        if selfie is None:
            cursor = layout.placeholder(document, cursor, layout.IMAGE_UNAVAILABLE_TEXT)
        elif not selfie.embeddable:
            cursor = layout.placeholder(document, cursor, PDF_DOCUMENT_TEXT)
        else:
            width, height = SELFIE_IMAGE_BOX
            cursor = layout.image(
                document, cursor, selfie.data, max_width=width, max_height=height, align="center"
            )

    third = config.content_width / 3
    cursor = layout.rule(document, cursor, x1=config.margin + third, x2=config.margin + 2 * third, gap=12)
    cursor = layout.heading(document, cursor, "CLIENT", size=config.subtitle_size, gap=10)

    signature = inputs.images.get(SLOT_SIGNATURE) if inputs.identity.signature_ref else None
    if signature is not None and signature.embeddable:
        cursor = layout.text_line(document, cursor, "Signature:", gap=8)
        width, height = SIGNATURE_IMAGE_BOX
        cursor = layout.image(document, cursor, signature.data, max_width=width, max_height=height)
        cursor = layout.rule(document, cursor, x2=config.margin + width, gap=6)
        cursor = layout.wrapped_paragraph(document, cursor, order.client_name or "-")
        return cursor.down(10)

    if inputs.identity.signature_ref:
        logger.info("Signature image unavailable order=%s; printing typed name", order.order_number)
    return _typed_signature(document, cursor, order.client_name)


def _technical_information(document: Document, cursor: LayoutCursor, inputs: DocumentInputs) -> LayoutCursor:
    order = inputs.bundle.order
    size = document.config.body_size
    cursor = layout.ensure_space(document, cursor, 60)
    cursor = layout.heading(document, cursor, "TECHNICAL INFORMATION")

    def field_row(current: LayoutCursor, label: str, value: str) -> LayoutCursor:
        return layout.labeled_field(document, current, label, value, size=size, value_offset=60)

    if order.contract_signed_at:
        cursor = field_row(cursor, "Contract Signed At:", format_timestamp(order.contract_signed_at, inputs.timezone_name))
    if order.created_at:
        cursor = field_row(cursor, "Order Created At:", format_timestamp(order.created_at, inputs.timezone_name))
    if order.ip_address:
        cursor = field_row(cursor, "IP Address:", order.ip_address)
    if (order.payment_status or "").lower() == "completed":
        cursor = field_row(cursor, "Payment Status:", order.payment_status.upper())
    if inputs.identity.inherited:
        cursor = field_row(
            cursor, "Identity Source:", f"Order {inputs.identity.predecessor.order_number}"
        )
    return cursor


def _order_amount_fields(document: Document, cursor: LayoutCursor, inputs: DocumentInputs) -> LayoutCursor:
    order = inputs.bundle.order
    cursor = layout.labeled_field(document, cursor, "Total Amount:", str(derive_display_amount(order)))
    method = payment_method_label(order.payment_method)
    if method:
        cursor = layout.labeled_field(document, cursor, "Payment Method:", method)
    return cursor


# ------------------------------------------------------------------------------
# Visa service contract
# ------------------------------------------------------------------------------
def build_contract_document(inputs: DocumentInputs, config: LayoutConfig) -> Document:
    order = inputs.bundle.order
    files = inputs.identity.files
    document = Document(config=config, title=f"Visa Service Contract {order.order_number}")
    cursor = document.start()

    cursor = layout.centered_text(document, cursor, "VISA SERVICE CONTRACT", size=config.title_size, bold=True, gap=10)
    cursor = layout.centered_text(document, cursor, inputs.company_name, size=config.subtitle_size, gap=8)
    cursor = layout.rule(document, cursor, gap=15)

    cursor = layout.ensure_space(document, cursor, 50)
    cursor = layout.heading(document, cursor, "ORDER INFORMATION")
    cursor = layout.labeled_field(document, cursor, "Order Number:", order.order_number)
    cursor = layout.labeled_field(document, cursor, "Service:", inputs.bundle.service_name)
    cursor = _order_amount_fields(document, cursor, inputs)
    if order.seller_id:
        cursor = layout.labeled_field(document, cursor, "Seller ID:", order.seller_id)
    cursor = cursor.down(7)

    cursor = layout.ensure_space(document, cursor, 80)
    cursor = layout.heading(document, cursor, "CLIENT INFORMATION")
    client_rows = [
        ("Full Name:", order.client_name),
        ("Email:", order.client_email),
        ("WhatsApp:", order.client_whatsapp),
        ("Country:", order.client_country),
        ("Nationality:", order.client_nationality),
    ]
    for label, value in client_rows:
        if value:
            cursor = layout.labeled_field(document, cursor, label, value, value_offset=40)
    if order.extra_units > 0:
        unit_label = order.extra_unit_label or "Extra Units"
        cursor = layout.labeled_field(document, cursor, f"{unit_label}:", str(order.extra_units))
    cursor = cursor.down(7)

    cursor = _payment_details(document, cursor, inputs)
    cursor = _terms(document, cursor, "TERMS AND CONDITIONS", inputs.terms)

    if files.front or files.back:
        cursor = layout.ensure_space(document, cursor, 100)
        cursor = layout.heading(document, cursor, "IDENTITY DOCUMENTS")
        cursor = _identity_image(
            document, cursor, "Document Front:", files.front, inputs.images.get(SLOT_FRONT), DOCUMENT_IMAGE_BOX
        )
        cursor = _identity_image(
            document, cursor, "Document Back:", files.back, inputs.images.get(SLOT_BACK), DOCUMENT_IMAGE_BOX
        )
        cursor = cursor.down(10)

    cursor = _signature_block(document, cursor, inputs)
    _technical_information(document, cursor, inputs)

    layout.stamp_footer(document, footer_lines(inputs))
    return document


# ------------------------------------------------------------------------------
# Annex I
# ------------------------------------------------------------------------------
def build_annex_document(inputs: DocumentInputs, config: LayoutConfig) -> Document:
    order = inputs.bundle.order
    files = inputs.identity.files
    document = Document(config=config, title=f"Annex I {order.order_number}")
    cursor = document.start()

    cursor = layout.centered_text(document, cursor, "ANNEX I", size=config.title_size, bold=True, gap=8)
    cursor = layout.centered_text(
        document, cursor, "PAYMENT AUTHORIZATION & NON-DISPUTE AGREEMENT", size=config.section_size, bold=True, gap=15
    )
    cursor = layout.centered_text(document, cursor, inputs.company_name, size=config.subtitle_size, gap=12)
    cursor = layout.rule(document, cursor, gap=10)

    cursor = layout.ensure_space(document, cursor, 50)
    cursor = layout.heading(document, cursor, "ORDER INFORMATION")
    cursor = layout.labeled_field(document, cursor, "Order Number:", order.order_number)
    cursor = layout.labeled_field(document, cursor, "Service:", inputs.bundle.service_name)
    cursor = _order_amount_fields(document, cursor, inputs)
    cursor = layout.labeled_field(document, cursor, "Client Name:", order.client_name)
    cursor = layout.labeled_field(document, cursor, "Client Email:", order.client_email)
    cursor = cursor.down(7)

    cursor = _payment_details(document, cursor, inputs)
    cursor = _terms(document, cursor, "ANNEX I TERMS", inputs.terms)

    if files.selfie or files.front or files.back:
        cursor = layout.ensure_space(document, cursor, 100)
        cursor = layout.heading(document, cursor, "IDENTITY DOCUMENTS", gap=15)
        cursor = _identity_image(
            document,
            cursor,
            "Selfie with Document:",
            files.selfie,
            inputs.images.get(SLOT_SELFIE),
            SELFIE_IMAGE_BOX,
        )
        cursor = _identity_image(
            document, cursor, "Document Front:", files.front, inputs.images.get(SLOT_FRONT), DOCUMENT_IMAGE_BOX
        )
        cursor = _identity_image(
            document, cursor, "Document Back:", files.back, inputs.images.get(SLOT_BACK), DOCUMENT_IMAGE_BOX
        )
        cursor = cursor.down(10)

    # the selfie already appears above; only date and signature here
    cursor = _signature_block(document, cursor, inputs, include_selfie=False)
    _technical_information(document, cursor, inputs)

    layout.stamp_footer(document, footer_lines(inputs))
    return document


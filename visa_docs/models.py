"""Record and wire schemas shared by the pipeline modules."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentKind(str, Enum):
    CONTRACT = "contract"
    ANNEX = "annex"


class TemplateType(str, Enum):
    VISA_SERVICE = "visa_service"
    CHARGEBACK_ANNEX = "chargeback_annex"


class IdentityFileType(str, Enum):
    DOCUMENT_FRONT = "document_front"
    DOCUMENT_BACK = "document_back"
    SELFIE_DOC = "selfie_doc"


def _to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        return Decimal(str(value).strip() or "0")
    except (InvalidOperation, ValueError):
        return Decimal("0")


class Order(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    order_number: str = ""
    product_slug: str = ""
    client_name: str = ""
    client_email: str = ""
    client_whatsapp: Optional[str] = None
    client_country: Optional[str] = None
    client_nationality: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    total_price_usd: Decimal = Decimal("0")
    payment_metadata: dict[str, Any] = Field(default_factory=dict)
    service_request_id: Optional[str] = None
    signature_image_url: Optional[str] = None
    contract_signed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    seller_id: Optional[str] = None
    extra_units: int = 0
    extra_unit_label: Optional[str] = None
    contract_document_url: Optional[str] = None
    contract_selfie_url: Optional[str] = None
    contract_pdf_url: Optional[str] = None
    annex_pdf_url: Optional[str] = None

    @field_validator("id", "service_request_id", "seller_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("total_price_usd", mode="before")
    @classmethod
    def _parse_total(cls, value: Any) -> Decimal:
        return _to_decimal(value)

    @field_validator("payment_metadata", mode="before")
    @classmethod
    def _metadata_dict(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("extra_units", mode="before")
    @classmethod
    def _extra_units(cls, value: Any) -> int:
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0

    @field_validator(
        "order_number", "product_slug", "client_name", "client_email", mode="before"
    )
    @classmethod
    def _blank_if_null(cls, value: Any) -> str:
        return "" if value is None else str(value)


class Product(BaseModel):
    model_config = ConfigDict(extra="ignore")

    slug: str
    name: Optional[str] = None


class ContractTemplate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    template_type: TemplateType
    product_slug: Optional[str] = None
    content: str = ""
    is_active: bool = True
    name: Optional[str] = None


class IdentityFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    service_request_id: Optional[str] = None
    file_type: str
    file_path: Optional[str] = None
    created_at: Optional[datetime] = None


# ------------------------------------------------------------------------------
# HTTP wire schemas
# ------------------------------------------------------------------------------
class GenerateDocumentRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    order_id: Optional[str] = None

    @field_validator("order_id", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class GenerateDocumentResponse(BaseModel):
    success: bool
    pdf_url: Optional[str] = None
    file_path: Optional[str] = None
    error: Optional[str] = None

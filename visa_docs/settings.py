"""Environment-driven runtime settings for the document service."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

MODULE_DIR = Path(__file__).resolve().parent
REPO_ROOT = MODULE_DIR.parent

# Existing process env wins over both .env files.
load_dotenv(dotenv_path=MODULE_DIR / ".env", override=False)
load_dotenv(dotenv_path=REPO_ROOT / ".env", override=False)


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    try:
        value = float(raw) if raw is not None and raw.strip() else default
    except (TypeError, ValueError):
        value = default
    return value if value > 0 else default


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    supabase_url: str = ""
    service_role_key: str = ""
    contracts_bucket: str = "contracts"
    documents_bucket: str = "visa-documents"
    signatures_bucket: str = "visa-signatures"
    image_fetch_timeout_seconds: float = 15.0
    store_timeout_seconds: float = 30.0
    document_timezone: str = "UTC"
    company_name: str = "MIGMA INC."
    pdf_font_path: str = ""

    @property
    def backend_configured(self) -> bool:
        return bool(self.supabase_url and self.service_role_key)

    @property
    def known_buckets(self) -> tuple[str, ...]:
        return (self.documents_bucket, self.signatures_bucket)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL", "").strip().rstrip("/"),
        service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip(),
        contracts_bucket=os.getenv("CONTRACTS_BUCKET", "contracts").strip() or "contracts",
        documents_bucket=os.getenv("DOCUMENTS_BUCKET", "visa-documents").strip() or "visa-documents",
        signatures_bucket=os.getenv("SIGNATURES_BUCKET", "visa-signatures").strip() or "visa-signatures",
        image_fetch_timeout_seconds=_env_float("IMAGE_FETCH_TIMEOUT_SECONDS", 15.0),
        store_timeout_seconds=_env_float("STORE_TIMEOUT_SECONDS", 30.0),
        document_timezone=os.getenv("DOCUMENT_TIMEZONE", "UTC").strip() or "UTC",
        company_name=os.getenv("COMPANY_NAME", "MIGMA INC.").strip() or "MIGMA INC.",
        pdf_font_path=os.getenv("PDF_FONT_PATH", "").strip(),
    )

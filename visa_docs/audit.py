"""Structured audit trail for silent degradations during generation."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from visa_docs.errors import DocumentGenerationError

logger = logging.getLogger("visa_docs")
audit_logger = logging.getLogger("document_audit")


def utc_iso_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def canonical_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)


class DegradationLog:
    """Collects non-terminal errors for one generation request."""

    def __init__(self, *, order_id: str, document: str):
        self.order_id = order_id
        self.document = document
        self.events: list[dict[str, str]] = []

    def record(self, error: DocumentGenerationError) -> dict[str, str]:
        event = {
            "order_id": self.order_id,
            "document": self.document,
            "kind": error.kind,
            "message": error.message,
            "detail": error.detail or "",
            "timestamp_utc": utc_iso_now(),
        }
        self.events.append(event)
        audit_logger.info(canonical_json(event))
        return event

    @property
    def kinds(self) -> list[str]:
        return [event["kind"] for event in self.events]

    def __len__(self) -> int:
        return len(self.events)

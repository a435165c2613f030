"""Error taxonomy for document generation.

Only terminal errors abort a request. The non-terminal kinds are raised at
the lowest layer that can detect them and caught by the layer that knows
how to degrade (default text, placeholder line, own service request, ...).
"""

from __future__ import annotations

from typing import Optional


class DocumentGenerationError(Exception):
    terminal = False
    status_code = 500

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    @property
    def kind(self) -> str:
        return type(self).__name__


class OrderNotFound(DocumentGenerationError):
    terminal = True
    status_code = 404


class UploadFailed(DocumentGenerationError):
    terminal = True
    status_code = 500


class StoreError(DocumentGenerationError):
    """Transport or protocol failure talking to the record/object store."""

    terminal = True
    status_code = 500


class TemplateMissing(DocumentGenerationError):
    pass


class ImageUnavailable(DocumentGenerationError):
    pass


class IdentityPredecessorNotFound(DocumentGenerationError):
    pass


class OrderUpdateFailed(DocumentGenerationError):
    pass

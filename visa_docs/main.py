#!/usr/bin/env python3
"""Visa document service (FastAPI).

- Visa service contract PDF
- Annex I (payment authorization & non-dispute) PDF
- PDF rendering: ReportLab, storage: managed backend REST/storage API
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

# Support both `uvicorn visa_docs.main:app` (repo root) and
# `uvicorn main:app` (package directory) execution contexts.
if __package__ is None or __package__ == "":
    sys.path.append(str(Path(__file__).resolve().parent.parent))

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from visa_docs import pdf_service, pipeline
from visa_docs.errors import DocumentGenerationError
from visa_docs.models import DocumentKind, GenerateDocumentRequest, GenerateDocumentResponse
from visa_docs.pdf_service import init_fonts
from visa_docs.settings import load_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s - %(message)s",
)

logger = logging.getLogger("visa_docs")

ORDER_ID_REQUIRED = "order_id is required"

init_fonts()

app = FastAPI(title="Visa Document Service")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, message: str) -> JSONResponse:
    body = GenerateDocumentResponse(success=False, error=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(RequestValidationError)
async def _invalid_body(_request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Rejected request body: %s", exc.errors())
    return _error_response(400, ORDER_ID_REQUIRED)


async def _generate(kind: DocumentKind, payload: Optional[GenerateDocumentRequest]) -> JSONResponse:
    order_id = payload.order_id if payload is not None else None
    if not order_id:
        return _error_response(400, ORDER_ID_REQUIRED)

    try:
        report = await pipeline.run_generation(order_id, kind, load_settings())
    except DocumentGenerationError as e:
        logger.error("%s PDF generation failed order_id=%s: %s (%s)", kind.value, order_id, e.message, e.detail or "-")
        return _error_response(e.status_code, e.message)
    except Exception as e:
        logger.exception("Unexpected error generating %s PDF order_id=%s", kind.value, order_id)
        return _error_response(500, str(e) or "Internal server error")

    logger.info("%s PDF generated successfully: %s", kind.value, report.pdf_url)
    return JSONResponse(status_code=200, content=report.to_response().model_dump(exclude_none=True))


# ------------------------------------------------------------------------------
# API endpoints: Health Check
# ------------------------------------------------------------------------------
@app.get("/health")
def health():
    settings = load_settings()
    return {
        "status": "ok",
        "backend_configured": settings.backend_configured,
        "contracts_bucket": settings.contracts_bucket,
        "document_timezone": settings.document_timezone,
        "pdf_fonts": pdf_service.font_diagnostics(),
    }


# ------------------------------------------------------------------------------
# API endpoints: Document generation
# ------------------------------------------------------------------------------
@app.post("/generate-visa-contract-pdf")
async def generate_visa_contract_pdf(payload: Optional[GenerateDocumentRequest] = Body(None)):
    """Generate the visa service contract PDF for an order."""
    return await _generate(DocumentKind.CONTRACT, payload)


@app.post("/generate-annex-pdf")
async def generate_annex_pdf(payload: Optional[GenerateDocumentRequest] = Body(None)):
    """Generate the Annex I payment authorization PDF for an order."""
    return await _generate(DocumentKind.ANNEX, payload)


if __name__ == "__main__":
    import uvicorn
    init_fonts()
    uvicorn.run(app, host="0.0.0.0", port=8000)

"""Legal-text template resolution for contracts and Annex I."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from visa_docs.audit import DegradationLog
from visa_docs.errors import StoreError, TemplateMissing
from visa_docs.html_text import html_to_text
from visa_docs.models import ContractTemplate, TemplateType
from visa_docs.record_store import RecordStore

logger = logging.getLogger("visa_docs")

DEFAULT_CONTRACT_TERMS = """By signing this contract, the client agrees to the following terms:

1. The client confirms that all information provided is accurate and truthful.
2. The client understands that providing false information may result in cancellation of services and legal action.
3. The client agrees to pay the total amount specified in this contract.
4. The company will provide visa consultation services as described in the service package.
5. The client acknowledges that visa approval is subject to immigration authorities and the company cannot guarantee approval.
6. Refunds are subject to the company's refund policy as outlined in the service terms.
7. The client agrees to provide all necessary documentation in a timely manner.
8. This contract is legally binding and enforceable.

The client has electronically signed this contract by uploading a selfie with their identity document, confirming their identity and acceptance of these terms."""

DEFAULT_ANNEX_TEXT = """ANNEX I - PAYMENT AUTHORIZATION & NON-DISPUTE AGREEMENT

This Annex is an integral part of the Educational Services Agreement entered into between the COMPANY and the CLIENT.

1. CLIENT IDENTIFICATION

The individual identified at the end of this Agreement ("CLIENT").

2. PAYMENT AUTHORIZATION

The CLIENT expressly declares that:

a) All payments made to the COMPANY are voluntary, informed, and authorized;
b) The CLIENT is fully aware of the service contracted, its nature, scope, and limitations;
c) Payments may be processed through international or intermediary platforms.

3. NATURE OF SERVICES & NO CHARGEBACK BASIS

The CLIENT acknowledges that:

a) The services are personalized, intellectual, and initiated immediately upon payment;
b) The COMPANY provides educational mentorship and academic guidance, not legal services;
c) Once services commence, payments are non-refundable, except as expressly stated in the main Agreement.

4. NON-DISPUTE COMMITMENT

The CLIENT agrees that they will not initiate chargebacks, payment disputes, or claims based on:

- alleged lack of recognition of the transaction;
- dissatisfaction with outcomes dependent on third parties;
- processing times of institutions or authorities;
- misunderstanding of service scope already clarified in the Agreement.

5. PRIOR INTERNAL RESOLUTION

Before initiating any bank or platform dispute, the CLIENT agrees to first contact the COMPANY through official support channels for resolution.

6. EVIDENCE AUTHORIZATION

In case of a payment dispute, the CLIENT authorizes the COMPANY to use the following as evidence:

- electronic signature
- selfie holding identification document
- IP address, date, and time logs
- signed Agreement and Annex
- communication records related to service delivery

7. INTERNATIONAL PROCESSING CONSENT

The CLIENT acknowledges that charges may appear under different corporate or platform descriptors due to international payment processing.

8. FINAL DECLARATION

The CLIENT declares that they have read, understood, and voluntarily accepted this Payment Authorization and Non-Dispute Agreement."""


@dataclass(frozen=True)
class ResolvedTemplate:
    text: str
    source: str  # "product", "global" or "default"


async def _fetch_template(
    store: RecordStore, template_type: TemplateType, product_slug: Optional[str]
) -> ContractTemplate:
    scope = product_slug or "global"
    try:
        template = await store.get_active_template(template_type, product_slug)
    except StoreError as exc:
        raise TemplateMissing(
            f"{template_type.value} template lookup failed ({scope})", detail=exc.message
        ) from exc
    if template is None or not template.content.strip():
        raise TemplateMissing(f"No active {template_type.value} template ({scope})")
    return template


async def resolve_contract_terms(
    store: RecordStore, product_slug: str, degradations: DegradationLog
) -> ResolvedTemplate:
    """Product-scoped contract template, else the embedded default terms."""
    if product_slug:
        try:
            template = await _fetch_template(store, TemplateType.VISA_SERVICE, product_slug)
            logger.info("Using product contract template slug=%s", product_slug)
            return ResolvedTemplate(text=html_to_text(template.content), source="product")
        except TemplateMissing as exc:
            degradations.record(exc)
    logger.info("Using default contract terms slug=%s", product_slug or "-")
    return ResolvedTemplate(text=DEFAULT_CONTRACT_TERMS, source="default")


async def resolve_annex_terms(
    store: RecordStore, product_slug: str, degradations: DegradationLog
) -> ResolvedTemplate:
    """Product-scoped annex template, then global, then the embedded Annex I text."""
    scopes: list[tuple[Optional[str], str]] = []
    if product_slug:
        scopes.append((product_slug, "product"))
    scopes.append((None, "global"))

    for scope_slug, source in scopes:
        try:
            template = await _fetch_template(store, TemplateType.CHARGEBACK_ANNEX, scope_slug)
        except TemplateMissing as exc:
            degradations.record(exc)
            continue
        logger.info("Using %s annex template slug=%s", source, scope_slug or "-")
        return ResolvedTemplate(text=html_to_text(template.content), source=source)

    logger.info("Using default Annex I text slug=%s", product_slug or "-")
    return ResolvedTemplate(text=DEFAULT_ANNEX_TEXT, source="default")

# Overview: Rendering boundary; the data contract handed to external print/templating engines.

"""
Renderer Contract

The core never produces markup. It builds a RenderContext (everything the
print engine may show) and hands it to a DocumentRenderer.

SOURCE OF TRUTH PER CLASS:
- certificate: business profile, preparer, landlord/customer and inspection
  content come ONLY from the stored locked payload (digest-verified). Live
  business and customer rows are never read.
- invoice / quote: live business branding is re-read on every render; the
  customer comes from the stored snapshot; totals are recomputed from the
  stored lines with the same calculator that produced them and must equal
  the stored totals (TotalsMismatch otherwise).

Rendering the same document twice yields the same context. A renderer that
does not finish within RENDER_TIMEOUT_SECONDS surfaces RenderTimeout.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import asdict, dataclass, field
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Business, Document
from ..money import Money
from ..time_utils import to_utc_z
from ..validation import LockedPayloadCorrupt, NotFoundError, RenderTimeout, TotalsMismatch
from .snapshot_service import parse_locked_payload
from .totals_service import LineItem, compute


@dataclass(frozen=True)
class RenderableArtifact:
    content: bytes
    media_type: str
    filename: str


@dataclass(frozen=True)
class RenderContext:
    document_id: int
    document_class: str
    reference: str
    sequence_number: int
    status: str
    issued_at: str
    expiry_at: str | None
    business: dict
    customer: dict
    preparer: dict | None
    line_items: tuple = ()
    totals: dict = field(default_factory=dict)
    discount_percent: str = "0"
    partial_payment_pence: int = 0
    notes: str | None = None
    payment_info: str | None = None
    terms: str | None = None
    certificate: dict | None = None
    locked_at: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["line_items"] = list(self.line_items)
        return data


class DocumentRenderer(ABC):
    """External print/templating engine adapter."""

    @abstractmethod
    def render(self, context: RenderContext) -> RenderableArtifact:
        raise NotImplementedError


class JsonDocumentRenderer(DocumentRenderer):
    """Deterministic canonical-JSON artifact; the default when no print engine is configured."""

    media_type = "application/json"

    def render(self, context: RenderContext) -> RenderableArtifact:
        body = json.dumps(context.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return RenderableArtifact(
            content=body.encode("utf-8"),
            media_type=self.media_type,
            filename=f"{context.reference}.json",
        )


# =============================================================================
# CONTEXT BUILDING
# =============================================================================

def _line_items_from_document(document: Document) -> list[LineItem]:
    return [
        LineItem(
            description=line.description,
            quantity=Decimal(line.quantity),
            unit_price=Money.from_minor(line.unit_price_pence),
            tax_percent=Decimal(line.tax_percent),
        )
        for line in document.lines
    ]


def _certificate_context(document: Document) -> RenderContext:
    try:
        payload = parse_locked_payload(document.locked_payload, document.locked_payload_sha256)
    except LockedPayloadCorrupt as exc:
        current_app.logger.error(
            "Locked payload for certificate %s (%s) is corrupt: %s",
            document.id, document.reference, exc.message,
        )
        exc.details.setdefault("document_id", document.id)
        raise

    content = payload.to_dict()["content"]
    return RenderContext(
        document_id=document.id,
        document_class=document.document_class,
        reference=document.reference,
        sequence_number=document.sequence_number,
        status=document.status,
        issued_at=to_utc_z(document.issued_at),
        expiry_at=to_utc_z(document.expiry_at) if document.expiry_at else None,
        business=asdict(payload.business_profile),
        customer=content["landlord"],
        preparer=asdict(payload.preparer),
        certificate=content,
        locked_at=payload.captured_at,
    )


STORED_TOTAL_COLUMNS = (
    "subtotal_pence",
    "tax_total_pence",
    "discount_pence",
    "grand_total_pence",
    "balance_due_pence",
)


def _verify_stored_totals(document: Document, recomputed: dict) -> None:
    """Recomputed totals must equal the figures stored when the document was issued."""
    differing = {
        column: {"stored": getattr(document, column), "recomputed": recomputed[column]}
        for column in STORED_TOTAL_COLUMNS
        if getattr(document, column) != recomputed[column]
    }
    if differing:
        current_app.logger.error(
            "Stored totals for %s (%s) do not match its lines: %s",
            document.id, document.reference, differing,
        )
        raise TotalsMismatch(
            f"Totals for {document.reference} do not match its stored lines",
            details={"document_id": document.id, "columns": differing},
        )


def _commercial_context(document: Document) -> RenderContext:
    business = db.session.get(Business, document.business_id)
    if business is None:
        raise NotFoundError(f"Business {document.business_id} not found")

    totals = compute(
        _line_items_from_document(document),
        Decimal(document.discount_percent),
        Money.from_minor(document.partial_payment_pence),
    )
    _verify_stored_totals(document, totals.to_dict())
    line_items = tuple(
        {
            "description": result.item.description,
            "quantity": str(result.item.quantity),
            "unit_price_pence": result.item.unit_price.minor,
            "tax_percent": str(result.item.tax_percent),
            "line_total_pence": result.line_total.minor,
            "line_tax_pence": result.line_tax.minor,
        }
        for result in totals.lines
    )
    terms = business.quote_terms if document.document_class == "quote" else business.invoice_terms
    preparer = document.preparer.to_dict() if document.preparer else None

    return RenderContext(
        document_id=document.id,
        document_class=document.document_class,
        reference=document.reference,
        sequence_number=document.sequence_number,
        status=document.status,
        issued_at=to_utc_z(document.issued_at),
        expiry_at=to_utc_z(document.expiry_at) if document.expiry_at else None,
        business={
            "name": business.name,
            "email": business.email or "",
            "phone": business.phone or "",
            "address": business.address or "",
            "logo_url": business.logo_url or "",
            "signature_image": business.signature_image or "",
        },
        customer=dict(document.customer_snapshot or {}),
        preparer=preparer,
        line_items=line_items,
        totals=totals.to_dict(),
        discount_percent=str(document.discount_percent),
        partial_payment_pence=document.partial_payment_pence,
        notes=document.notes,
        payment_info=document.payment_info or business.payment_info,
        terms=terms,
    )


def build_render_context(document: Document) -> RenderContext:
    if document.is_certificate:
        return _certificate_context(document)
    return _commercial_context(document)


# =============================================================================
# RENDERING
# =============================================================================

def get_renderer() -> DocumentRenderer:
    configured = current_app.config.get("DOCUMENT_RENDERER")
    return configured if configured is not None else JsonDocumentRenderer()


def run_renderer(renderer: DocumentRenderer, context: RenderContext, timeout: float | None = None) -> RenderableArtifact:
    """
    Call the external renderer, bounded by timeout.

    The renderer runs on a worker thread; if it overruns, RenderTimeout is
    raised and the worker is abandoned (not waited on).
    """
    if timeout is None:
        timeout = current_app.config.get("RENDER_TIMEOUT_SECONDS", 30)

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="render")
    future = executor.submit(renderer.render, context)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        current_app.logger.warning(
            "Renderer %s timed out after %ss for %s",
            type(renderer).__name__, timeout, context.reference,
        )
        raise RenderTimeout(
            f"Rendering {context.reference} timed out",
            details={"document_id": context.document_id, "timeout_seconds": timeout},
        )
    finally:
        executor.shutdown(wait=False)


def render_document(document_id: int, renderer: DocumentRenderer | None = None, timeout: float | None = None) -> RenderableArtifact:
    document = db.session.get(Document, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found", details={"document_id": document_id})
    context = build_render_context(document)
    return run_renderer(renderer or get_renderer(), context, timeout=timeout)

# Overview: Service-layer operations for invoices, quotes and certificates; issue, status and reissue.

"""
Document Service

ISSUE ORDER (one transaction, retried as a unit):
    validate inputs -> compute totals -> snapshot customer -> build locked
    payload (certificates) -> reserve number -> insert -> commit

Everything that can be rejected is checked BEFORE reserve_next(), so a bad
request never touches the counter. A lost number race (counter or unique
sequence constraint) raises SequencerConflict, which run_with_retry rolls
back and retries.

STATUS VOCABULARY (per class):
- invoice:     Draft, Unpaid, Paid, Overdue
- quote:       Draft, Sent, Accepted, Declined
- certificate: Issued, Void (Void is terminal)
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Business, Document, DocumentLine, Job, Preparer, DOCUMENT_CLASSES
from ..money import MAX_MINOR_UNITS, Money
from ..time_utils import days_after, parse_iso_datetime, utcnow
from ..validation import (
    EmptyLineItems,
    InvalidAmount,
    InvalidDiscount,
    InvalidStatus,
    MissingRequiredField,
    NotFoundError,
    SequencerConflict,
    ValidationError,
    to_decimal,
    to_text,
)
from .concurrency import lock_for_update, run_with_retry
from .reference_service import reference_for
from .render_service import RenderableArtifact, DocumentRenderer, render_document
from .sequence_service import reserve_next
from .snapshot_service import (
    CustomerSelection,
    build_locked_payload,
    capture_business_profile,
    capture_preparer_identity,
    landlord_from_snapshot,
    payload_digest,
    resolve_customer_selection,
    serialize_locked_payload,
    validate_certificate_content,
)
from .totals_service import PERCENT_PLACES, QUANTITY_MAX, QUANTITY_PLACES, LineItem, compute, validate_discount


STATUS_DRAFT = "Draft"

DOCUMENT_STATUSES = {
    "invoice": ("Draft", "Unpaid", "Paid", "Overdue"),
    "quote": ("Draft", "Sent", "Accepted", "Declined"),
    "certificate": ("Issued", "Void"),
}

INITIAL_STATUS = {
    "invoice": "Unpaid",
    "quote": "Sent",
    "certificate": "Issued",
}

TERMINAL_STATUSES = {
    "certificate": ("Void",),
}


def _validate_class(document_class: str) -> None:
    if document_class not in DOCUMENT_CLASSES:
        raise ValidationError(
            f"Invalid document_class: {document_class}. Must be one of {list(DOCUMENT_CLASSES)}",
            details={"document_class": document_class},
        )


def _check_places(value: Decimal, places: int, field: str, error_cls=InvalidAmount) -> Decimal:
    exponent = value.normalize().as_tuple().exponent
    if isinstance(exponent, int) and -exponent > places:
        raise error_cls(
            f"{field} allows at most {places} decimal places",
            details={"field": field, "value": str(value)},
        )
    return value


# =============================================================================
# REQUEST PARSING
# =============================================================================

def money_ceiling() -> int:
    """Configured MONEY_MAX_PENCE, never above what a 64-bit pence column holds."""
    return min(current_app.config.get("MONEY_MAX_PENCE", MAX_MINOR_UNITS), MAX_MINOR_UNITS)


def parse_amount(raw: Any, field: str) -> Money:
    places = current_app.config.get("MONEY_INPUT_PLACES", 2)
    return Money.parse(raw, places=places, field=field, max_minor=money_ceiling())


def parse_line_items(raw: Any) -> list[LineItem]:
    """
    Request line items -> LineItem list.

    Each entry: {"description", "quantity", "unit_price", "tax_percent"?}
    where unit_price is in pounds ("12.50") and tax_percent defaults to 0.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")

    items = []
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{i}] must be an object", details={"index": i})
        quantity = _check_places(
            to_decimal(entry.get("quantity"), f"items[{i}].quantity"),
            QUANTITY_PLACES,
            f"items[{i}].quantity",
        )
        if quantity >= QUANTITY_MAX:
            raise InvalidAmount(
                f"items[{i}].quantity must be below {QUANTITY_MAX:,.0f}",
                details={"field": f"items[{i}].quantity", "value": str(quantity)},
            )
        tax_raw = entry.get("tax_percent")
        tax_percent = Decimal("0") if tax_raw in (None, "") else _check_places(
            to_decimal(tax_raw, f"items[{i}].tax_percent"),
            PERCENT_PLACES,
            f"items[{i}].tax_percent",
        )
        items.append(LineItem(
            description=to_text(entry.get("description")),
            quantity=quantity,
            unit_price=parse_amount(entry.get("unit_price"), f"items[{i}].unit_price"),
            tax_percent=tax_percent,
        ))
    return items


def parse_discount(raw: Any) -> Decimal:
    if raw in (None, ""):
        return Decimal("0")
    discount = to_decimal(raw, "discount_percent", error_cls=InvalidDiscount)
    return _check_places(discount, PERCENT_PLACES, "discount_percent", error_cls=InvalidDiscount)


def parse_partial_payment(raw: Any) -> Money:
    if raw in (None, ""):
        return Money.zero()
    return parse_amount(raw, "partial_payment")


# =============================================================================
# ISSUE
# =============================================================================

def _default_expiry(document_class: str, issued_at: datetime, certificate_content: dict | None) -> datetime:
    if document_class == "certificate" and certificate_content and certificate_content.get("next_due_date"):
        try:
            return parse_iso_datetime(to_text(certificate_content["next_due_date"]))
        except ValueError:
            raise ValidationError(
                "next_due_date must be an ISO date",
                details={"field": "next_due_date"},
            )
    days = {
        "invoice": current_app.config.get("INVOICE_DUE_DAYS", 14),
        "quote": current_app.config.get("QUOTE_VALID_DAYS", 30),
        "certificate": current_app.config.get("CERTIFICATE_VALID_DAYS", 365),
    }[document_class]
    return days_after(issued_at, days)


def _require_described_item(items: list[LineItem]) -> None:
    if not items or not any(item.description for item in items):
        raise EmptyLineItems("At least one line item with a description is required")


def _require_no_charges(items: list[LineItem], partial_payment: Money) -> None:
    if items or not partial_payment.is_zero():
        raise ValidationError(
            "Certificates cannot carry line items or payments",
            details={"items": len(items), "partial_payment_pence": partial_payment.minor},
        )


def job_address_from_snapshot(snapshot: dict | None) -> dict:
    """Site address of a job as frozen on documents raised from it."""
    snapshot = snapshot or {}
    return {
        "address_line_1": snapshot.get("address_line_1", ""),
        "city": snapshot.get("city", ""),
        "postcode": snapshot.get("postal_code", ""),
        "address": snapshot.get("address", ""),
    }


def create_document(
    business_id: int,
    document_class: str,
    items: list[LineItem],
    discount_percent,
    partial_payment: Money,
    customer: CustomerSelection,
    *,
    preparer_id: int | None = None,
    certificate_content: dict | None = None,
    issued_at: datetime | None = None,
    expiry_at: datetime | None = None,
    notes: str | None = None,
    payment_info: str | None = None,
    draft: bool = False,
    job_id: int | None = None,
) -> Document:
    """
    Issue a numbered invoice, quote or certificate.

    Invoices and quotes need at least one described line item; certificates
    need a preparer and complete inspection content, and carry no charges.
    A new customer entered on the form is saved in the same transaction as
    the document. job_id links the document to a job of the same business
    and freezes that job's site address.
    """
    _validate_class(document_class)
    if draft and document_class == "certificate":
        raise InvalidStatus("Certificates cannot be saved as drafts")

    business = db.session.get(Business, business_id)
    if business is None:
        raise NotFoundError(f"Business {business_id} not found", details={"business_id": business_id})

    items = list(items)
    if document_class == "certificate":
        _require_no_charges(items, partial_payment)
    else:
        _require_described_item(items)
    discount = validate_discount(discount_percent)
    ceiling = money_ceiling()
    if partial_payment.minor > ceiling:
        raise InvalidAmount(
            "partial_payment is too large",
            details={"field": "partial_payment", "max_pence": ceiling},
        )
    totals = compute(items, discount, partial_payment, max_minor=ceiling)

    job = None
    if job_id is not None:
        job = db.session.query(Job).filter_by(id=job_id, business_id=business_id).first()
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", details={"job_id": job_id})

    customer_row, snapshot = resolve_customer_selection(business_id, customer)

    preparer = None
    if preparer_id is not None:
        preparer = db.session.query(Preparer).filter_by(id=preparer_id, business_id=business_id).first()
        if preparer is None:
            raise NotFoundError(f"Preparer {preparer_id} not found", details={"preparer_id": preparer_id})

    locked_payload = locked_digest = None
    if document_class == "certificate":
        if preparer is None:
            raise MissingRequiredField("preparer_id is required for certificates", details={"field": "preparer_id"})
        content = dict(certificate_content or {})
        if not content.get("landlord"):
            content["landlord"] = landlord_from_snapshot(snapshot)
        content = validate_certificate_content(content)
        payload = build_locked_payload(
            content,
            capture_business_profile(business),
            capture_preparer_identity(preparer),
        )
        locked_payload = serialize_locked_payload(payload)
        locked_digest = payload_digest(locked_payload)

    issued_at = issued_at or utcnow()
    if expiry_at is None:
        expiry_at = _default_expiry(document_class, issued_at, certificate_content)
    status = STATUS_DRAFT if draft else INITIAL_STATUS[document_class]

    def _issue() -> Document:
        sequence = reserve_next(business_id, document_class)
        document = Document(
            business_id=business_id,
            document_class=document_class,
            sequence_number=sequence,
            reference=reference_for(document_class, sequence, issued_at),
            status=status,
            status_changed_at=issued_at,
            issued_at=issued_at,
            expiry_at=expiry_at,
            customer=customer_row,
            customer_snapshot=snapshot.to_dict(),
            job_id=job.id if job else None,
            job_address=job_address_from_snapshot(job.customer_snapshot) if job else None,
            preparer_id=preparer.id if preparer else None,
            discount_percent=discount,
            partial_payment_pence=partial_payment.minor,
            subtotal_pence=totals.subtotal.minor,
            tax_total_pence=totals.tax_total.minor,
            discount_pence=totals.discount_amount.minor,
            grand_total_pence=totals.grand_total.minor,
            balance_due_pence=totals.balance_due.minor,
            notes=notes,
            payment_info=payment_info,
            locked_payload=locked_payload,
            locked_payload_sha256=locked_digest,
        )
        for position, result in enumerate(totals.lines, start=1):
            document.lines.append(DocumentLine(
                position=position,
                description=result.item.description,
                quantity=result.item.quantity,
                unit_price_pence=result.item.unit_price.minor,
                tax_percent=result.item.tax_percent,
                line_total_pence=result.line_total.minor,
                line_tax_pence=result.line_tax.minor,
            ))
        db.session.add(document)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise SequencerConflict(
                f"{document_class} number {sequence} was taken concurrently",
                details={"business_id": business_id, "sequence_number": sequence},
            ) from exc
        db.session.commit()
        return document

    try:
        document = run_with_retry(_issue)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Issued %s %s for business %s (grand total %s pence)",
        document_class, document.reference, business_id, document.grand_total_pence,
    )
    return document


# =============================================================================
# READ
# =============================================================================

def get_document(document_id: int) -> Document:
    document = db.session.get(Document, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found", details={"document_id": document_id})
    return document


def list_documents(
    business_id: int,
    document_class: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Document], int]:
    """Newest first. Returns (page, total matching)."""
    query = db.session.query(Document).filter(Document.business_id == business_id)
    if document_class:
        _validate_class(document_class)
        query = query.filter(Document.document_class == document_class)
    if status:
        query = query.filter(Document.status == status)

    total = query.count()
    limit = max(1, min(limit, 200))
    documents = (
        query.order_by(Document.issued_at.desc(), Document.id.desc())
        .offset(max(0, offset))
        .limit(limit)
        .all()
    )
    return documents, total


# =============================================================================
# STATUS / REISSUE
# =============================================================================

def update_document_status(document_id: int, new_status: str) -> Document:
    """
    Move a document to another status of its class.

    Only status and status_changed_at change; every other column is frozen
    by the model guards.
    """
    def _op() -> Document:
        document = lock_for_update(db.session.query(Document).filter_by(id=document_id)).first()
        if document is None:
            raise NotFoundError(f"Document {document_id} not found", details={"document_id": document_id})
        allowed = DOCUMENT_STATUSES[document.document_class]
        if new_status not in allowed:
            raise InvalidStatus(
                f"Invalid status '{new_status}' for {document.document_class}. Must be one of: {', '.join(allowed)}",
                details={"status": new_status, "allowed": list(allowed)},
            )
        if document.status == new_status:
            return document
        if document.status in TERMINAL_STATUSES.get(document.document_class, ()):
            raise InvalidStatus(
                f"{document.reference} is {document.status} and cannot change status",
                details={"status": document.status},
            )

        previous = document.status
        document.status = new_status
        document.status_changed_at = utcnow()
        db.session.commit()
        current_app.logger.info(
            "Document %s status %s -> %s", document.reference, previous, new_status,
        )
        return document

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def reissue_certificate(
    document_id: int,
    renderer: DocumentRenderer | None = None,
    timeout: float | None = None,
) -> RenderableArtifact:
    """Re-render a certificate from its locked payload only."""
    document = get_document(document_id)
    if not document.is_certificate:
        raise ValidationError(
            f"{document.reference} is not a certificate",
            details={"document_id": document_id, "document_class": document.document_class},
        )
    artifact = render_document(document_id, renderer=renderer, timeout=timeout)
    current_app.logger.info("Reissued certificate %s", document.reference)
    return artifact

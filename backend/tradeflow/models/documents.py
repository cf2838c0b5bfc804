from __future__ import annotations

from sqlalchemy import event, inspect

from ..extensions import db
from tradeflow.time_utils import to_utc_z
from tradeflow.validation import ImmutableDocumentError


DOCUMENT_CLASSES = ("invoice", "quote", "certificate")


class Document(db.Model):
    """
    Issued commercial or regulated document (invoice, quote, certificate).

    LIFECYCLE:
    - Created once with a reserved sequence number, totals and customer snapshot.
    - Only status (and its timestamp) changes afterwards.

    CERTIFICATES:
    - locked_payload holds the canonical JSON of the LockedPayload captured at
      issue time, and locked_payload_sha256 its digest. Every render of a
      certificate reads from here, never from live business/customer rows.

    MONEY: all amounts are integer pence; percentages are exact decimals.
    """
    __tablename__ = "documents"
    __table_args__ = (
        # Backstop for the sequencer: a number is never issued twice per class
        db.UniqueConstraint("business_id", "document_class", "sequence_number", name="uq_documents_business_class_seq"),
        db.Index("ix_documents_reference", "reference"),
        db.Index("ix_documents_business_class_status", "business_id", "document_class", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    document_class = db.Column(db.String(16), nullable=False, index=True)  # invoice, quote, certificate
    sequence_number = db.Column(db.Integer, nullable=False)
    # Human-readable reference (e.g., "INV-2025-0007")
    reference = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, index=True)
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    # Invoice: due date. Quote: valid until. Certificate: next inspection due.
    expiry_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Navigation link only; rendering uses customer_snapshot
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_snapshot = db.Column(db.JSON, nullable=False)

    preparer_id = db.Column(db.Integer, db.ForeignKey("preparers.id"), nullable=True, index=True)

    # Job the document was raised from; job_address freezes its site address
    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id"), nullable=True, index=True)
    job_address = db.Column(db.JSON, nullable=True)

    # Pricing inputs
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    partial_payment_pence = db.Column(db.Integer, nullable=False, default=0)

    # Computed totals (TotalsBreakdown at creation time)
    subtotal_pence = db.Column(db.Integer, nullable=False, default=0)
    tax_total_pence = db.Column(db.Integer, nullable=False, default=0)
    discount_pence = db.Column(db.Integer, nullable=False, default=0)
    grand_total_pence = db.Column(db.Integer, nullable=False, default=0)
    balance_due_pence = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    # Invoice: bank details. Quote: scope / exclusions.
    payment_info = db.Column(db.Text, nullable=True)

    locked_payload = db.Column(db.Text, nullable=True)
    locked_payload_sha256 = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    business = db.relationship("Business", backref=db.backref("documents", lazy=True))
    customer = db.relationship("Customer")
    preparer = db.relationship("Preparer")
    job = db.relationship("Job", backref=db.backref("documents", lazy=True))
    lines = db.relationship(
        "DocumentLine",
        backref="document",
        lazy=True,
        order_by="DocumentLine.position",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_certificate(self) -> bool:
        return self.document_class == "certificate"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "document_class": self.document_class,
            "sequence_number": self.sequence_number,
            "reference": self.reference,
            "status": self.status,
            "status_changed_at": to_utc_z(self.status_changed_at) if self.status_changed_at else None,
            "issued_at": to_utc_z(self.issued_at),
            "expiry_at": to_utc_z(self.expiry_at) if self.expiry_at else None,
            "customer_id": self.customer_id,
            "customer_snapshot": self.customer_snapshot,
            "preparer_id": self.preparer_id,
            "job_id": self.job_id,
            "job_address": self.job_address,
            "discount_percent": str(self.discount_percent) if self.discount_percent is not None else "0",
            "partial_payment_pence": self.partial_payment_pence,
            "subtotal_pence": self.subtotal_pence,
            "tax_total_pence": self.tax_total_pence,
            "discount_pence": self.discount_pence,
            "grand_total_pence": self.grand_total_pence,
            "balance_due_pence": self.balance_due_pence,
            "notes": self.notes,
            "payment_info": self.payment_info,
            "is_locked": self.locked_payload is not None,
            "locked_payload_sha256": self.locked_payload_sha256,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class DocumentLine(db.Model):
    """Billable row on an invoice or quote. Immutable once inserted."""
    __tablename__ = "document_lines"
    __table_args__ = (
        db.UniqueConstraint("document_id", "position", name="uq_document_lines_document_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    description = db.Column(db.String(512), nullable=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price_pence = db.Column(db.Integer, nullable=False)
    tax_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    # Per-line results as computed at issue time
    line_total_pence = db.Column(db.Integer, nullable=False)
    line_tax_pence = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "position": self.position,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price_pence": self.unit_price_pence,
            "tax_percent": str(self.tax_percent),
            "line_total_pence": self.line_total_pence,
            "line_tax_pence": self.line_tax_pence,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-business counters ("invoice", "quote", "certificate", "job").

    WHY: Prevent duplicate document numbers under concurrent admin usage.
    next_value is only ever advanced by sequence_service, in the same
    transaction that inserts the numbered record.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("business_id", "counter_name", name="uq_doc_sequences_business_counter"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    counter_name = db.Column(db.String(32), nullable=False, index=True)
    next_value = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    business = db.relationship("Business", backref=db.backref("document_sequences", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "counter_name": self.counter_name,
            "next_value": self.next_value,
            "updated_at": to_utc_z(self.updated_at),
        }


# =============================================================================
# Immutability guards
# =============================================================================

# Everything except status, status_changed_at and bookkeeping columns
FROZEN_DOCUMENT_FIELDS = (
    "business_id",
    "document_class",
    "sequence_number",
    "reference",
    "issued_at",
    "expiry_at",
    "customer_snapshot",
    "preparer_id",
    "job_id",
    "job_address",
    "discount_percent",
    "partial_payment_pence",
    "subtotal_pence",
    "tax_total_pence",
    "discount_pence",
    "grand_total_pence",
    "balance_due_pence",
    "locked_payload",
    "locked_payload_sha256",
)


@event.listens_for(Document, "before_update")
def _guard_document_update(mapper, connection, target):
    state = inspect(target)
    changed = [name for name in FROZEN_DOCUMENT_FIELDS if state.attrs[name].history.has_changes()]
    if changed:
        raise ImmutableDocumentError(
            f"Document {target.id} is issued; {', '.join(changed)} cannot change",
            details={"document_id": target.id, "fields": changed},
        )


@event.listens_for(DocumentLine, "before_update")
def _guard_line_update(mapper, connection, target):
    raise ImmutableDocumentError(
        "Line items cannot change after a document is issued",
        details={"document_id": target.document_id, "line_id": target.id},
    )


@event.listens_for(DocumentLine, "before_delete")
def _guard_line_delete(mapper, connection, target):
    raise ImmutableDocumentError(
        "Line items cannot be removed from an issued document",
        details={"document_id": target.document_id, "line_id": target.id},
    )

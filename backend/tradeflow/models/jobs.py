from __future__ import annotations

from ..extensions import db
from tradeflow.time_utils import to_utc_z


class Job(db.Model):
    """
    Scheduled piece of field work.

    reference is year-scoped and allocated from the business's "job" counter
    (e.g., "TF-2025-0004"). customer_snapshot decouples the job card from
    later edits to the customer record.
    """
    __tablename__ = "jobs"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sequence_number", name="uq_jobs_business_seq"),
        db.Index("ix_jobs_business_status_scheduled", "business_id", "status", "scheduled_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    sequence_number = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(64), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_snapshot = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, in_progress, complete, invoiced, paid, cancelled
    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=False)
    estimated_duration = db.Column(db.String(64), nullable=True)

    # Quoted price for the job card (pence); the invoice is the billing record
    price_pence = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    business = db.relationship("Business", backref=db.backref("jobs", lazy=True))
    customer = db.relationship("Customer")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "sequence_number": self.sequence_number,
            "reference": self.reference,
            "title": self.title,
            "customer_id": self.customer_id,
            "customer_snapshot": self.customer_snapshot,
            "status": self.status,
            "scheduled_at": to_utc_z(self.scheduled_at),
            "estimated_duration": self.estimated_duration,
            "price_pence": self.price_pence,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

from __future__ import annotations

from ..extensions import db
from tradeflow.time_utils import to_utc_z


class Business(db.Model):
    """
    Tenant root: the trade business issuing jobs, invoices, quotes and certificates.

    The profile fields here are LIVE state. Invoices and quotes re-read them
    on every render (branding may change); certificates copy them into their
    locked payload at issue time and never look back.
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    # Storage reference only; image upload is handled elsewhere
    logo_url = db.Column(db.String(512), nullable=True)
    signature_image = db.Column(db.Text, nullable=True)

    # Default terms text printed on documents
    invoice_terms = db.Column(db.Text, nullable=True)
    quote_terms = db.Column(db.Text, nullable=True)
    payment_info = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Business id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "logo_url": self.logo_url,
            "invoice_terms": self.invoice_terms,
            "quote_terms": self.quote_terms,
            "payment_info": self.payment_info,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Preparer(db.Model):
    """
    Person who prepares and signs documents (engineer / admin).

    Registration numbers matter for regulated certificates: a CP12 must show
    the Gas Safe number in force on the day of inspection, which is why the
    certificate payload copies these fields.
    """
    __tablename__ = "preparers"
    __table_args__ = (
        db.Index("ix_preparers_business_active", "business_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    display_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    gas_safe_number = db.Column(db.String(64), nullable=True)
    gas_licence_number = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business = db.relationship("Business", backref=db.backref("preparers", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "display_name": self.display_name,
            "email": self.email,
            "gas_safe_number": self.gas_safe_number,
            "gas_licence_number": self.gas_licence_number,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

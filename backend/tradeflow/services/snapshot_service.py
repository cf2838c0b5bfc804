# Overview: Point-in-time snapshots of customer, business and preparer state for issued documents.

"""
Snapshot Builder

WHY: Historical documents must not change when the live records they were
built from are edited. Invoices and quotes freeze the customer; certificates
freeze everything needed to reproduce them (business profile, preparer
identity, inspection content) in a versioned LockedPayload.

LOCKED PAYLOAD RULES:
- Built once, before the certificate is persisted; never mutated afterwards.
- Serialized as canonical JSON (sorted keys) and stored with its SHA-256.
- Parsed strictly against its declared version. Anything missing or
  malformed raises LockedPayloadCorrupt; nothing is guessed or defaulted.
"""

from __future__ import annotations

import copy
import hashlib
import json
from dataclasses import asdict, dataclass, fields
from typing import Any, Union

from ..extensions import db
from ..models import Business, Customer, Preparer
from ..time_utils import to_utc_z, utcnow
from ..validation import (
    LockedPayloadCorrupt,
    MissingRequiredField,
    NotFoundError,
    ValidationError,
    to_text,
)


CERTIFICATE_KIND = "certificate"
CURRENT_VERSION = 1


# =============================================================================
# CUSTOMER
# =============================================================================

@dataclass(frozen=True)
class CustomerForm:
    """Customer details as entered on a creation form (billing + optional job site)."""
    name: str = ""
    company_name: str = ""
    address_line_1: str = ""
    address_line_2: str = ""
    city: str = ""
    region: str = ""
    postal_code: str = ""
    phone: str = ""
    email: str = ""
    same_as_billing: bool = True
    job_address_line_1: str = ""
    job_address_line_2: str = ""
    job_city: str = ""
    job_postal_code: str = ""
    site_contact_name: str = ""
    site_contact_email: str = ""
    # Free-text address used by quick-entry flows
    quick_address: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "CustomerForm":
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            if f.name == "same_as_billing":
                values[f.name] = bool(data[f.name])
            else:
                values[f.name] = to_text(data[f.name])
        return cls(**values)


@dataclass(frozen=True)
class NewCustomer:
    form: CustomerForm


@dataclass(frozen=True)
class ExistingCustomer:
    customer_id: int


CustomerSelection = Union[NewCustomer, ExistingCustomer]


@dataclass(frozen=True)
class CustomerSnapshot:
    name: str
    company_name: str = ""
    address_line_1: str = ""
    address_line_2: str = ""
    city: str = ""
    region: str = ""
    postal_code: str = ""
    phone: str = ""
    email: str = ""
    site_contact_name: str = ""
    site_contact_email: str = ""
    billing_address_line_1: str = ""
    billing_address_line_2: str = ""
    billing_city: str = ""
    billing_postal_code: str = ""
    address: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def customer_selection_from_payload(data: Any) -> CustomerSelection:
    """
    Request shape -> tagged selection.

    {"customer_id": 12} selects a stored customer; {"new": {...form...}}
    enters a fresh one.
    """
    if not isinstance(data, dict):
        raise ValidationError("customer must be an object")
    if data.get("customer_id") is not None:
        customer_id = data["customer_id"]
        if isinstance(customer_id, bool) or not isinstance(customer_id, int):
            raise ValidationError("customer.customer_id must be an integer")
        return ExistingCustomer(customer_id=customer_id)
    if isinstance(data.get("new"), dict):
        return NewCustomer(form=CustomerForm.from_dict(data["new"]))
    raise ValidationError("customer requires either customer_id or new")


def _join(*parts: str) -> str:
    return ", ".join(p for p in parts if p)


def build_customer_snapshot(form: CustomerForm, require_address: bool = True) -> CustomerSnapshot:
    """
    Denormalized customer copy for a document.

    The active address is the job site when it differs from billing, falling
    back to billing per field. Postal codes are upper-cased.
    require_address=False is the quick-entry mode: only the name is mandatory
    and quick_address (if given) becomes the single-line address.
    """
    name = form.name.strip()
    if not name:
        raise MissingRequiredField("Customer name is required", details={"field": "name"})

    if form.same_as_billing:
        line_1, line_2 = form.address_line_1, form.address_line_2
        city, postal_code = form.city, form.postal_code
    else:
        line_1 = form.job_address_line_1 or form.address_line_1
        line_2 = form.job_address_line_2
        city = form.job_city or form.city
        postal_code = form.job_postal_code or form.postal_code

    line_1 = line_1.strip()
    postal_code = postal_code.strip().upper()

    if require_address:
        missing = [
            label for label, value in (("address_line_1", line_1), ("postal_code", postal_code))
            if not value
        ]
        if missing:
            raise MissingRequiredField(
                f"Missing required fields: {', '.join(missing)}",
                details={"fields": missing},
            )

    combined = _join(line_1, line_2.strip(), city.strip(), form.region.strip(), postal_code)
    if not combined and form.quick_address.strip():
        combined = form.quick_address.strip()

    return CustomerSnapshot(
        name=name,
        company_name=form.company_name.strip(),
        address_line_1=line_1,
        address_line_2=line_2.strip(),
        city=city.strip(),
        region=form.region.strip(),
        postal_code=postal_code,
        phone=form.phone.strip(),
        email=form.email.strip(),
        site_contact_name="" if form.same_as_billing else form.site_contact_name.strip(),
        site_contact_email="" if form.same_as_billing else form.site_contact_email.strip(),
        billing_address_line_1=form.address_line_1.strip(),
        billing_address_line_2=form.address_line_2.strip(),
        billing_city=form.city.strip(),
        billing_postal_code=form.postal_code.strip().upper(),
        address=combined or "No address provided",
    )


def snapshot_from_customer(customer: Customer) -> CustomerSnapshot:
    """Snapshot of a stored customer exactly as it reads right now."""
    return CustomerSnapshot(
        name=customer.name or "",
        company_name=customer.company_name or "",
        address_line_1=customer.address_line_1 or "",
        address_line_2=customer.address_line_2 or "",
        city=customer.city or "",
        region=customer.region or "",
        postal_code=customer.postal_code or "",
        phone=customer.phone or "",
        email=customer.email or "",
        billing_address_line_1=customer.address_line_1 or "",
        billing_address_line_2=customer.address_line_2 or "",
        billing_city=customer.city or "",
        billing_postal_code=customer.postal_code or "",
        address=customer.address or "No address provided",
    )


def customer_from_snapshot(business_id: int, snapshot: CustomerSnapshot) -> Customer:
    """Live customer row for a newly entered customer (billing address, not job site)."""
    return Customer(
        business_id=business_id,
        name=snapshot.name,
        company_name=snapshot.company_name or None,
        address_line_1=snapshot.billing_address_line_1 or None,
        address_line_2=snapshot.billing_address_line_2 or None,
        city=snapshot.billing_city or None,
        region=snapshot.region or None,
        postal_code=snapshot.billing_postal_code or None,
        address=snapshot.address,
        phone=snapshot.phone or None,
        email=snapshot.email or None,
    )


def resolve_customer_selection(
    business_id: int,
    selection: CustomerSelection,
    require_address: bool = True,
) -> tuple[Customer | None, CustomerSnapshot]:
    """
    Resolve a selection to (customer row, snapshot) without writing anything.

    NewCustomer: the returned Customer is new and not yet added to the session,
    so a later validation failure leaves no orphan customer behind.
    ExistingCustomer: must belong to business_id.
    """
    if isinstance(selection, NewCustomer):
        snapshot = build_customer_snapshot(selection.form, require_address=require_address)
        return customer_from_snapshot(business_id, snapshot), snapshot

    if isinstance(selection, ExistingCustomer):
        customer = db.session.query(Customer).filter_by(
            id=selection.customer_id, business_id=business_id
        ).first()
        if not customer:
            raise NotFoundError(
                f"Customer {selection.customer_id} not found",
                details={"customer_id": selection.customer_id},
            )
        return customer, snapshot_from_customer(customer)

    raise ValidationError("Unsupported customer selection")


# =============================================================================
# BUSINESS / PREPARER
# =============================================================================

@dataclass(frozen=True)
class BusinessProfileSnapshot:
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    logo_url: str = ""
    signature_image: str = ""


@dataclass(frozen=True)
class PreparerIdentity:
    display_name: str
    email: str = ""
    gas_safe_number: str = ""
    gas_licence_number: str = ""


def capture_business_profile(business: Business) -> BusinessProfileSnapshot:
    return BusinessProfileSnapshot(
        name=business.name or "",
        email=business.email or "",
        phone=business.phone or "",
        address=business.address or "",
        logo_url=business.logo_url or "",
        signature_image=business.signature_image or "",
    )


def capture_preparer_identity(preparer: Preparer) -> PreparerIdentity:
    return PreparerIdentity(
        display_name=preparer.display_name or "",
        email=preparer.email or "",
        gas_safe_number=preparer.gas_safe_number or "",
        gas_licence_number=preparer.gas_licence_number or "",
    )


# =============================================================================
# CERTIFICATE CONTENT (CP12 gas safety record)
# =============================================================================

def landlord_from_snapshot(snapshot: CustomerSnapshot) -> dict:
    return {
        "name": snapshot.name,
        "company": snapshot.company_name,
        "address": snapshot.address,
        "postcode": snapshot.postal_code,
        "email": snapshot.email,
        "phone": snapshot.phone,
    }


def validate_certificate_content(content: Any) -> dict:
    """
    Check the inspection record is complete enough to lock.

    Required: landlord.name, property_address, inspection_date and at least
    one appliance with a location. Returns a deep copy so later edits to the
    caller's dict cannot reach the payload.
    """
    if not isinstance(content, dict):
        raise ValidationError("certificate content must be an object")
    content = copy.deepcopy(content)

    missing = []
    landlord = content.get("landlord")
    if not isinstance(landlord, dict) or not to_text(landlord.get("name")):
        missing.append("landlord.name")
    for key in ("property_address", "inspection_date"):
        if not to_text(content.get(key)):
            missing.append(key)

    appliances = content.get("appliances")
    if not isinstance(appliances, list) or not appliances:
        missing.append("appliances")
    else:
        for i, appliance in enumerate(appliances):
            if not isinstance(appliance, dict) or not to_text(appliance.get("location")):
                missing.append(f"appliances[{i}].location")

    if missing:
        raise MissingRequiredField(
            f"Missing required fields: {', '.join(missing)}",
            details={"fields": missing},
        )
    content.setdefault("tenant", {})
    content.setdefault("final_checks", {})
    return content


# =============================================================================
# LOCKED PAYLOAD
# =============================================================================

@dataclass(frozen=True)
class LockedPayload:
    kind: str
    version: int
    captured_at: str
    content: dict
    business_profile: BusinessProfileSnapshot
    preparer: PreparerIdentity

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "version": self.version,
            "captured_at": self.captured_at,
            "content": copy.deepcopy(self.content),
            "business_profile": asdict(self.business_profile),
            "preparer": asdict(self.preparer),
        }


def build_locked_payload(
    content: dict,
    business_profile: BusinessProfileSnapshot,
    preparer_identity: PreparerIdentity,
) -> LockedPayload:
    """Stamp captured_at/version; the result is serialized and stored verbatim."""
    return LockedPayload(
        kind=CERTIFICATE_KIND,
        version=CURRENT_VERSION,
        captured_at=to_utc_z(utcnow()),
        content=copy.deepcopy(content),
        business_profile=business_profile,
        preparer=preparer_identity,
    )


def serialize_locked_payload(payload: LockedPayload) -> str:
    return json.dumps(payload.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def payload_digest(serialized: str) -> str:
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def _require_str_fields(section: Any, name: str, keys: tuple[str, ...]) -> dict:
    """Every key is written by build_locked_payload; absence means corruption."""
    if not isinstance(section, dict):
        raise LockedPayloadCorrupt(f"{name} must be an object", details={"field": name})
    missing = [key for key in keys if key not in section]
    bad = [key for key in keys if key in section and not isinstance(section[key], str)]
    if missing or bad:
        raise LockedPayloadCorrupt(
            f"{name} is incomplete",
            details={"field": name, "missing": missing, "invalid": bad},
        )
    return {key: section[key] for key in keys}


V1_BUSINESS_FIELDS = ("name", "email", "phone", "address", "logo_url", "signature_image")
V1_PREPARER_FIELDS = ("display_name", "email", "gas_safe_number", "gas_licence_number")


def _parse_v1(data: dict) -> LockedPayload:
    for key in ("captured_at", "content", "business_profile", "preparer"):
        if key not in data:
            raise LockedPayloadCorrupt(f"Locked payload missing {key}", details={"field": key})
    if not isinstance(data["captured_at"], str):
        raise LockedPayloadCorrupt("captured_at must be a string", details={"field": "captured_at"})
    content = data["content"]
    if not isinstance(content, dict) or not isinstance(content.get("landlord"), dict):
        raise LockedPayloadCorrupt("content.landlord missing", details={"field": "content.landlord"})

    business = _require_str_fields(
        data["business_profile"], "business_profile",
        V1_BUSINESS_FIELDS,
    )
    preparer = _require_str_fields(
        data["preparer"], "preparer",
        V1_PREPARER_FIELDS,
    )
    return LockedPayload(
        kind=CERTIFICATE_KIND,
        version=1,
        captured_at=data["captured_at"],
        content=content,
        business_profile=BusinessProfileSnapshot(**business),
        preparer=PreparerIdentity(**preparer),
    )


PAYLOAD_PARSERS = {
    1: _parse_v1,
}


def parse_locked_payload(serialized: str | None, expected_digest: str | None = None) -> LockedPayload:
    """
    Stored text -> LockedPayload, dispatching on the declared version.

    expected_digest, when given, must match the stored text exactly; any
    tampering or truncation is reported as corruption.
    """
    if not serialized:
        raise LockedPayloadCorrupt("Locked payload is missing")
    if expected_digest is not None and payload_digest(serialized) != expected_digest:
        raise LockedPayloadCorrupt("Locked payload digest mismatch", details={"expected": expected_digest})
    try:
        data = json.loads(serialized)
    except ValueError as exc:
        raise LockedPayloadCorrupt("Locked payload is not valid JSON") from exc
    if not isinstance(data, dict):
        raise LockedPayloadCorrupt("Locked payload must be an object")
    if data.get("kind") != CERTIFICATE_KIND:
        raise LockedPayloadCorrupt("Unexpected payload kind", details={"kind": data.get("kind")})

    version = data.get("version")
    parser = PAYLOAD_PARSERS.get(version) if isinstance(version, int) and not isinstance(version, bool) else None
    if parser is None:
        raise LockedPayloadCorrupt("Unsupported payload version", details={"version": version})
    return parser(data)

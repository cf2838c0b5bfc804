from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


class DocumentError(Exception):
    """Base for every failure the document engine reports to its callers."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body: dict = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(DocumentError):
    """400-level input problem."""


class InvalidAmount(ValidationError):
    """Amount, quantity or rate is not a finite, non-negative decimal in range."""


class InvalidDiscount(ValidationError):
    """Discount percentage outside [0, 100]."""


class EmptyLineItems(ValidationError):
    """Document class requires at least one described line item."""


class MissingRequiredField(ValidationError):
    """A mandatory customer or content field was blank."""


class InvalidStatus(ValidationError):
    """Status is not part of the document class's vocabulary."""


class NotFoundError(DocumentError):
    status_code = 404


class ConflictError(DocumentError):
    """409-level business rule conflict (e.g., counter moved backwards)."""

    status_code = 409


class SequencerConflict(ConflictError):
    """
    A counter reservation lost a race.

    Retried automatically by run_with_retry; callers only see it once the
    bounded attempts are exhausted.
    """


class ImmutableDocumentError(ConflictError):
    """Attempt to change a field that is frozen once a document is issued."""


class RenderTimeout(DocumentError):
    status_code = 504


class TotalsMismatch(DocumentError):
    """Totals recomputed from stored lines differ from the totals stored at issue."""

    status_code = 422


class LockedPayloadCorrupt(DocumentError):
    """
    A stored certificate payload no longer parses against its declared version.

    The certificate cannot be re-rendered reliably; this is always surfaced.
    """

    status_code = 422


# =============================================================================
# Request coercion helpers (routes -> services)
# =============================================================================

def to_decimal(value: Any, field: str, error_cls: type[DocumentError] = InvalidAmount) -> Decimal:
    """
    Strict decimal coercion for user-entered numbers.

    Rejects booleans, blanks, NaN/Infinity and anything Decimal can't parse.
    Floats go through str() so 0.1 stays 0.1.
    """
    if value is None or isinstance(value, bool):
        raise error_cls(f"{field} must be a number", details={"field": field})
    if isinstance(value, Decimal):
        result = value
    else:
        text = str(value).strip()
        if not text:
            raise error_cls(f"{field} must be a number", details={"field": field})
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise error_cls(f"{field} must be a number", details={"field": field, "value": text})
    if not result.is_finite():
        raise error_cls(f"{field} must be finite", details={"field": field})
    return result


def to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def require_int(payload: dict, field: str) -> int:
    value = payload.get(field)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    return value


def require_bool(payload: dict, field: str, default: bool = False) -> bool:
    value = payload.get(field)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false", details={"field": field})
    return value


def require_mapping(value: Any, field: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object", details={"field": field})
    return value

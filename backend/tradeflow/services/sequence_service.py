# Overview: Service-layer operations for document numbering; atomic per-business counters.

"""
Numbering Sequencer

WHY: Two admins issuing invoices at the same moment must never receive the
same number. Reading the counter, adding one and writing it back is a
read-modify-write race, so the increment is a single atomic UPDATE.

TRANSACTION CONTRACT:
- reserve_next() never commits. The caller inserts the numbered record and
  commits once, so the counter advance and the record are durable together.
- If the enclosing operation fails, rolling back the session also rolls back
  the counter; no number is observably consumed.
- An absent counter behaves as next_value = 1 and is created lazily.
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError

from ..extensions import db
from ..models import DocumentSequence, Document, Job
from ..validation import ConflictError, SequencerConflict, ValidationError
from .concurrency import lock_for_update, run_with_retry


COUNTER_INVOICE = "invoice"
COUNTER_QUOTE = "quote"
COUNTER_CERTIFICATE = "certificate"
COUNTER_JOB = "job"

VALID_COUNTERS = [COUNTER_INVOICE, COUNTER_QUOTE, COUNTER_CERTIFICATE, COUNTER_JOB]


def _validate_counter(business_id: int, counter_name: str) -> None:
    if not business_id:
        raise ValidationError("business_id is required")
    if counter_name not in VALID_COUNTERS:
        raise ValidationError(
            f"Invalid counter: {counter_name}. Must be one of {VALID_COUNTERS}",
            details={"counter_name": counter_name},
        )


def _current_next_value(business_id: int, counter_name: str) -> int | None:
    return (
        db.session.query(DocumentSequence.next_value)
        .filter_by(business_id=business_id, counter_name=counter_name)
        .scalar()
    )


def reserve_next(business_id: int, counter_name: str) -> int:
    """
    Atomically allocate the next sequence value for a business/counter.

    Returns the reserved value; the counter now holds reserved + 1 inside the
    caller's open transaction. Lost races surface as SequencerConflict so
    run_with_retry can roll back and try again.
    """
    _validate_counter(business_id, counter_name)

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.business_id == business_id,
            DocumentSequence.counter_name == counter_name,
        )
        .values(next_value=DocumentSequence.next_value + 1)
    )

    try:
        result = db.session.execute(stmt)
        if result.rowcount:
            return _current_next_value(business_id, counter_name) - 1

        # First use: create the counter already advanced past 1
        seq = DocumentSequence(business_id=business_id, counter_name=counter_name, next_value=2)
        db.session.add(seq)
        db.session.flush()
        return 1
    except IntegrityError as exc:
        # Another transaction created the counter first
        raise SequencerConflict(
            "Counter was created concurrently",
            details={"business_id": business_id, "counter_name": counter_name},
        ) from exc
    except OperationalError as exc:
        raise SequencerConflict(
            "Counter is busy",
            details={"business_id": business_id, "counter_name": counter_name},
        ) from exc


def peek_next(business_id: int, counter_name: str) -> int:
    """Value the next reservation would return (form prefill only, not a reservation)."""
    _validate_counter(business_id, counter_name)
    current = _current_next_value(business_id, counter_name)
    return current if current is not None else 1


def _highest_allocated_stmt(business_id: int, counter_name: str):
    if counter_name == COUNTER_JOB:
        column, criteria = Job.sequence_number, [Job.business_id == business_id]
    else:
        column = Document.sequence_number
        criteria = [Document.business_id == business_id, Document.document_class == counter_name]
    return select(db.func.coalesce(db.func.max(column), 0)).where(*criteria)


def _highest_allocated(business_id: int, counter_name: str) -> int:
    return db.session.execute(_highest_allocated_stmt(business_id, counter_name)).scalar()


def _refuse_reissue(counter_name: str, highest: int) -> None:
    raise ConflictError(
        f"next_value must be greater than the highest issued number ({highest})",
        details={"counter_name": counter_name, "highest_allocated": highest},
    )


def set_next_value(business_id: int, counter_name: str, next_value: int) -> DocumentSequence:
    """
    Admin override of the next number (e.g. continue from a previous system).

    Refuses values that would re-issue an already allocated number. The
    counter row is locked and the write only applies while no number at or
    above next_value exists, re-checked inside the UPDATE itself.
    Commits.
    """
    _validate_counter(business_id, counter_name)
    if isinstance(next_value, bool) or not isinstance(next_value, int) or next_value < 1:
        raise ValidationError("next_value must be an integer >= 1", details={"next_value": next_value})

    def _op() -> DocumentSequence:
        query = db.session.query(DocumentSequence).filter_by(
            business_id=business_id, counter_name=counter_name
        )
        if lock_for_update(query).first() is None:
            db.session.add(DocumentSequence(business_id=business_id, counter_name=counter_name, next_value=1))
            try:
                db.session.flush()
            except IntegrityError as exc:
                raise SequencerConflict(
                    "Counter was created concurrently",
                    details={"business_id": business_id, "counter_name": counter_name},
                ) from exc

        highest = _highest_allocated(business_id, counter_name)
        if next_value <= highest:
            _refuse_reissue(counter_name, highest)

        stmt = (
            update(DocumentSequence)
            .where(
                DocumentSequence.business_id == business_id,
                DocumentSequence.counter_name == counter_name,
                _highest_allocated_stmt(business_id, counter_name).scalar_subquery() < next_value,
            )
            .values(next_value=next_value)
            .execution_options(synchronize_session=False)
        )
        if not db.session.execute(stmt).rowcount:
            # A number at or above next_value was issued after the check
            _refuse_reissue(counter_name, _highest_allocated(business_id, counter_name))
        db.session.commit()
        return query.one()

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def list_counters(business_id: int) -> list[dict]:
    """All counters for a business, including ones not yet used (next_value 1)."""
    rows = {
        seq.counter_name: seq
        for seq in db.session.query(DocumentSequence).filter_by(business_id=business_id).all()
    }
    counters = []
    for name in VALID_COUNTERS:
        seq = rows.get(name)
        counters.append({
            "counter_name": name,
            "next_value": seq.next_value if seq else 1,
            "updated_at": seq.to_dict()["updated_at"] if seq else None,
        })
    return counters

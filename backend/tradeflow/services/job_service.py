# Overview: Service-layer operations for jobs; numbered job cards with customer snapshots.

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Business, Job
from ..money import Money
from ..time_utils import utcnow
from ..validation import InvalidStatus, MissingRequiredField, NotFoundError, SequencerConflict
from .concurrency import run_with_retry
from .reference_service import reference_for
from .sequence_service import COUNTER_JOB, reserve_next
from .snapshot_service import CustomerSelection, NewCustomer, resolve_customer_selection


JOB_STATUSES = ("pending", "in_progress", "complete", "invoiced", "paid", "cancelled")


def create_job(
    business_id: int,
    title: str,
    customer: CustomerSelection,
    scheduled_at: datetime,
    *,
    quick_entry: bool = False,
    quick_address: str | None = None,
    estimated_duration: str | None = None,
    price: Money | None = None,
    notes: str | None = None,
) -> Job:
    """
    Book a job and allocate its TF-YYYY-NNNN reference.

    quick_entry: only the customer name is required; quick_address (free
    text) stands in for the structured address.
    """
    if db.session.get(Business, business_id) is None:
        raise NotFoundError(f"Business {business_id} not found", details={"business_id": business_id})

    title = (title or "").strip()
    if not title:
        raise MissingRequiredField("title is required", details={"field": "title"})
    if scheduled_at is None:
        raise MissingRequiredField("scheduled_at is required", details={"field": "scheduled_at"})

    if quick_entry and quick_address and isinstance(customer, NewCustomer):
        customer = NewCustomer(form=replace(customer.form, quick_address=quick_address))
    customer_row, snapshot = resolve_customer_selection(
        business_id, customer, require_address=not quick_entry,
    )

    def _book() -> Job:
        sequence = reserve_next(business_id, COUNTER_JOB)
        job = Job(
            business_id=business_id,
            sequence_number=sequence,
            reference=reference_for(COUNTER_JOB, sequence, utcnow()),
            title=title,
            customer=customer_row,
            customer_snapshot=snapshot.to_dict(),
            status="pending",
            scheduled_at=scheduled_at,
            estimated_duration=estimated_duration,
            price_pence=price.minor if price is not None else None,
            notes=notes,
        )
        db.session.add(job)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise SequencerConflict(
                f"Job number {sequence} was taken concurrently",
                details={"business_id": business_id, "sequence_number": sequence},
            ) from exc
        db.session.commit()
        return job

    try:
        job = run_with_retry(_book)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Booked job %s for business %s", job.reference, business_id)
    return job


def get_job(job_id: int) -> Job:
    job = db.session.get(Job, job_id)
    if job is None:
        raise NotFoundError(f"Job {job_id} not found", details={"job_id": job_id})
    return job


def update_job_status(job_id: int, new_status: str) -> Job:
    if new_status not in JOB_STATUSES:
        raise InvalidStatus(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(JOB_STATUSES)}",
            details={"status": new_status, "allowed": list(JOB_STATUSES)},
        )

    def _op() -> Job:
        job = get_job(job_id)
        previous = job.status
        job.status = new_status
        db.session.commit()
        current_app.logger.info("Job %s status %s -> %s", job.reference, previous, new_status)
        return job

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

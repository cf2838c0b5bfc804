# Overview: Service-layer helpers for concurrency; retry policy for numbered inserts and status updates.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError, DocumentError, SequencerConflict


RETRYABLE_ERRORS = (OperationalError, StaleDataError, SequencerConflict)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on SequencerConflict (lost counter/number race), OperationalError
    (locks, deadlocks) and StaleDataError (optimistic locking conflicts).
    The session is rolled back before every retry so a lost reservation never
    leaves the counter advanced. Once attempts are exhausted the failure is
    surfaced as a ConflictError ("try again"), never swallowed.
    """
    if attempts is None:
        attempts = current_app.config.get("SEQUENCE_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("SEQUENCE_RETRY_BACKOFF", 0.05)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, SequencerConflict):
                    raise SequencerConflict(
                        "Could not allocate a document number, please try again",
                        details={**exc.details, "attempts": attempts, "reason": exc.message},
                    ) from exc
                if isinstance(exc, DocumentError):
                    raise
                raise ConflictError(
                    "Concurrent update detected, please try again",
                    details={"attempts": attempts},
                ) from exc
            current_app.logger.warning(
                "Retrying after concurrency failure (attempt %s/%s): %s",
                attempt + 1,
                attempts,
                exc,
            )
            time.sleep(backoff_base * (2 ** attempt))


# Overview: Conflict handling for document store writes; row locks plus bounded retry with backoff.

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


# Lock waits/deadlocks, a lost version check, or two writers inserting the same doc_id
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the documents a transaction reads.

    SQLite has no row locks and ignores this; there the version_id check on
    flush is what turns a concurrent write into a retryable StaleDataError.
    """
    return query.with_for_update()


def backoff_delay(attempt: int, base: float) -> float:
    return base * (2 ** attempt)


def run_with_retry(op: Callable[[], Any], *, attempts: int = 3, backoff_base: float = 0.1) -> Any:
    """
    Run op, retrying it from scratch after a write conflict.

    The session is rolled back before each retry so op re-reads current
    state. The last conflict is re-raised once attempts are used up; any
    other exception propagates on the first failure.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    for attempt in range(attempts):
        try:
            return op()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            logger.warning(
                "Write conflict on attempt %d/%d: %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            if attempt == attempts - 1:
                raise
            time.sleep(backoff_delay(attempt, backoff_base))

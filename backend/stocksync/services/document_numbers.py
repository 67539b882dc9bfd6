# Overview: Sequential, optionally period-scoped, human-readable document numbers.

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from ..errors import CounterTransactionFailure, ValidationError
from ..time_utils import coerce_date, now_z
from .connectivity import ConnectivityContext
from .document_store import DocumentStore, Transaction, new_document_id

logger = logging.getLogger(__name__)


COUNTERS_COLLECTION = "counters"

SALES_ORDER_COUNTER = "salesOrderCounter"
PURCHASE_INVOICE_COUNTER = "purchaseInvoiceCounter"
RECEIVE_BATCH_COUNTER = "receiveBatchCounter"
DELIVERY_BATCH_COUNTER = "deliveryBatchCounter"
CUSTOMER_COUNTER = "customerCounter"
SUPPLIER_COUNTER = "supplierCounter"

PeriodFn = Callable[[datetime], str]


def monthly_period(value: date | datetime | str | None) -> str:
    """Two-digit year plus two-digit month, e.g. 2501 for January 2025."""
    dt = coerce_date(value)
    return f"{dt.year % 100:02d}{dt.month:02d}"


def format_number(prefix: str, count: int, period: str | None = None) -> str:
    if period is None:
        return f"{prefix}-{count:03d}"
    return f"{prefix}-{period}-{count:03d}"


def allocate_number(
    tx: Transaction,
    counter_name: str,
    *,
    prefix: str,
    period: str | None = None,
) -> str:
    """
    Read-modify-write one counter inside an open transaction.

    Periodic counters hold {currentCount, lastResetPeriod} and restart at 1
    when the period changes. Non-periodic counters hold {currentId} and
    never reset.
    """
    counter = tx.get(COUNTERS_COLLECTION, counter_name) or {}

    if period is None:
        next_id = int(counter.get("currentId") or 0) + 1
        tx.set(COUNTERS_COLLECTION, counter_name, {"currentId": next_id}, merge=True)
        return format_number(prefix, next_id)

    if counter.get("lastResetPeriod") == period:
        next_count = int(counter.get("currentCount") or 0) + 1
    else:
        next_count = 1
    tx.set(
        COUNTERS_COLLECTION,
        counter_name,
        {"currentCount": next_count, "lastResetPeriod": period, "updatedAt": now_z()},
        merge=True,
    )
    return format_number(prefix, next_count, period)


class DocumentNumberGenerator:
    """
    Allocates document numbers through a single atomic transaction per call.

    Two successful calls never return the same number: the counter row is
    read under lock and written with a version check, and a conflicting
    writer is retried from a fresh read.
    """

    def __init__(self, *, connectivity: ConnectivityContext, store: DocumentStore):
        self.connectivity = connectivity
        self.store = store

    def generate(
        self,
        counter_name: str,
        *,
        prefix: str,
        period_fn: PeriodFn | None = None,
        on: date | datetime | str | None = None,
        label: str | None = None,
    ) -> str:
        if not counter_name:
            raise ValidationError("counter_name is required")
        if not prefix:
            raise ValidationError("prefix is required")
        label = label or "document"
        self.connectivity.require_online(f"generate a new {label} number")

        period = self._period(period_fn, on)

        def _op(tx: Transaction) -> str:
            return allocate_number(tx, counter_name, prefix=prefix, period=period)

        number = self._run(counter_name, label, _op)
        logger.info("Allocated %s from %s", number, counter_name)
        return number

    def create_numbered(
        self,
        collection: str,
        data: dict,
        *,
        number_field: str,
        counter_name: str,
        prefix: str,
        period_fn: PeriodFn | None = None,
        on: date | datetime | str | None = None,
        label: str | None = None,
    ) -> tuple[str, str]:
        """
        Allocate a number and create the document carrying it in one transaction.

        A failed document write never burns a number. Returns (doc_id, number).
        """
        label = label or "document"
        self.connectivity.require_online(f"generate a new {label} number")
        period = self._period(period_fn, on)
        doc_id = new_document_id()

        def _op(tx: Transaction) -> str:
            number = allocate_number(tx, counter_name, prefix=prefix, period=period)
            body = dict(data)
            body[number_field] = number
            tx.set(collection, doc_id, body)
            return number

        number = self._run(counter_name, label, _op)
        logger.info("Created %s %s (%s)", label, number, doc_id)
        return doc_id, number

    @staticmethod
    def _period(period_fn: PeriodFn | None, on) -> str | None:
        if period_fn is None:
            return None
        try:
            return period_fn(coerce_date(on))
        except ValueError as exc:
            raise ValidationError(str(exc))

    def _run(self, counter_name: str, label: str, op: Callable[[Transaction], str]) -> str:
        try:
            return self.store.run_transaction(self.connectivity.tenant_id, op)
        except SQLAlchemyError as exc:
            logger.error("Failed to generate %s number from %s: %s", label, counter_name, exc)
            raise CounterTransactionFailure(
                f"Could not generate a new {label} number. Please try again."
            ) from exc

    def peek(self, counter_name: str) -> dict | None:
        return self.store.get(self.connectivity.tenant_id, COUNTERS_COLLECTION, counter_name)

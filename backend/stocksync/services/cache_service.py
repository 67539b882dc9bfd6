# Overview: Local cache partitions; the offline source of truth for every synced collection.

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, insert, select

from ..extensions import db
from ..models import CachePartition
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


PRODUCTS_PARTITION = "productsCache"
LOOKUPS_PARTITION = "lookupsCache"
LOCATIONS_PARTITION = "locationsCache"
INVENTORY_PARTITION = "inventoryTransactionsCache"
CUSTOMERS_PARTITION = "customersCache"
SUPPLIERS_PARTITION = "suppliersCache"
SALES_ORDERS_PARTITION = "salesOrdersCache"
PURCHASE_INVOICES_PARTITION = "purchaseInvoicesCache"
RECEIVABLES_PARTITION = "pendingReceivablesCache"
DELIVERABLES_PARTITION = "pendingDeliverablesCache"
HISTORY_PARTITION = "itemHistoryCache"


class LocalCache:
    """
    Named-partition key-value store backed by the "cache" bind.

    Reads and writes go through their own engine connection, never through
    db.session, so a cache write can't commit (or roll back) work that is
    pending against the remote document store.
    """

    bind_key = "cache"

    @property
    def _engine(self):
        return db.engines[self.bind_key]

    def get(self, partition: str) -> Any | None:
        table = CachePartition.__table__
        with self._engine.connect() as conn:
            row = conn.execute(
                select(table.c.value).where(table.c.partition == partition)
            ).first()
        if row is None:
            return None
        return row[0]

    def set(self, partition: str, value: Any) -> None:
        table = CachePartition.__table__
        with self._engine.begin() as conn:
            conn.execute(delete(table).where(table.c.partition == partition))
            conn.execute(
                insert(table).values(partition=partition, value=value, updated_at=utcnow())
            )
        logger.debug("Cache partition %s overwritten", partition)

    def clear(self, partition: str | None = None) -> None:
        table = CachePartition.__table__
        stmt = delete(table)
        if partition is not None:
            stmt = stmt.where(table.c.partition == partition)
        with self._engine.begin() as conn:
            conn.execute(stmt)
        logger.info("Cache cleared (%s)", partition or "all partitions")

    def partitions(self) -> list[str]:
        table = CachePartition.__table__
        with self._engine.connect() as conn:
            rows = conn.execute(select(table.c.partition).order_by(table.c.partition)).all()
        return [r[0] for r in rows]

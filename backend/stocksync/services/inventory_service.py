# Overview: Append-only inventory transaction ledger with derived stock levels.

from __future__ import annotations

import logging

from ..errors import ValidationError
from ..time_utils import now_z
from ..validation import parse_non_negative_int
from .cache_service import INVENTORY_PARTITION
from .stock_service import TRANSACTION_TYPES, TYPE_TRANSFER, StockLevels, aggregate_stock
from .sync_service import CollectionSync

logger = logging.getLogger(__name__)


INVENTORY_COLLECTION = "inventory_transactions"


def build_transaction(
    *,
    product_id: str,
    location_id: str,
    txn_type: str,
    quantity,
    user_id: str | None,
    destination_location_id: str | None = None,
    extra: dict | None = None,
) -> dict:
    """
    Validate and build one inventory transaction body.

    Shared by the ledger and by the multi-document writes (sales finalize,
    purchase reconciliation) that append transactions inside their own
    atomic unit.
    """
    txn_type = str(txn_type or "").strip().upper()
    if txn_type not in TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(TRANSACTION_TYPES)}")
    if not product_id:
        raise ValidationError("productId is required.")
    if not location_id:
        raise ValidationError("locationId is required.")
    qty = parse_non_negative_int(quantity, "quantity")

    body = {
        "productId": product_id,
        "locationId": location_id,
        "type": txn_type,
        "quantity": qty,
        "timestamp": now_z(),
        "userId": user_id,
    }
    if txn_type == TYPE_TRANSFER:
        if not destination_location_id:
            raise ValidationError("destinationLocationId is required for TRANSFER.")
        if destination_location_id == location_id:
            raise ValidationError("destinationLocationId must differ from locationId.")
        body["destinationLocationId"] = destination_location_id
    if extra:
        for key, value in extra.items():
            body.setdefault(key, value)
    return body


class InventoryLedger(CollectionSync):
    """
    Inventory transactions. Immutable once created: record() is the only
    write, there is no update or delete.

    stock_levels is recomputed from scratch on every snapshot.
    """

    collection = INVENTORY_COLLECTION
    cache_partition = INVENTORY_PARTITION

    def __init__(self, **kwargs):
        self.stock_levels: StockLevels = {}
        super().__init__(**kwargs)

    def on_items_changed(self) -> None:
        self.stock_levels = aggregate_stock(self.items)

    def record(
        self,
        *,
        product_id: str,
        location_id: str,
        txn_type: str,
        quantity,
        destination_location_id: str | None = None,
        notes: str | None = None,
    ) -> str:
        self.connectivity.require_online("record an inventory transaction")
        body = build_transaction(
            product_id=product_id,
            location_id=location_id,
            txn_type=txn_type,
            quantity=quantity,
            user_id=self.connectivity.user_id,
            destination_location_id=destination_location_id,
            extra={"notes": notes} if notes else None,
        )
        doc_id = self.store.add(self.tenant_id, self.collection, body)
        logger.info(
            "Inventory %s of %d x %s recorded at %s (%s)",
            body["type"], body["quantity"], product_id, location_id, doc_id,
        )
        return doc_id

    def transactions_for(self, product_id: str) -> list[dict]:
        return [t for t in self.items if t.get("productId") == product_id]

# Overview: Stock picked for a sales order but not yet delivered, grouped in numbered delivery batches.

"""
Pending Deliverables

One document per delivery batch (BO-YYMM-NNN) raised against a pending
sales order. Each batch lists the units picked for the order: product,
source location, quantity and, for serialised products, the serial.

Batches never move stock. SalesOrderBook.finalize() records the OUT
transactions and releases the order's batches in the same transaction;
delete_batch() drops a batch that will not ship.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
    CounterTransactionFailure,
    DocumentNotFoundError,
    DocumentStateError,
    ValidationError,
)
from ..time_utils import now_z
from ..validation import parse_bool, parse_non_negative_int
from .cache_service import DELIVERABLES_PARTITION
from .document_numbers import DELIVERY_BATCH_COUNTER, allocate_number, monthly_period
from .document_store import Transaction, new_document_id
from .order_service import DELIVERABLES_COLLECTION, SALES_ORDERS_COLLECTION, STATUS_FINALIZED
from .sync_service import CollectionSync, ConfirmationRequest

logger = logging.getLogger(__name__)


STATUS_PENDING_DELIVERY = "PENDING_DELIVERY"


def normalize_deliverable_item(raw: Any, index: int) -> dict:
    label = f"Item {index + 1}"
    if not isinstance(raw, dict):
        raise ValidationError(f"{label}: must be an object")
    product_id = str(raw.get("productId") or "").strip()
    if not product_id:
        raise ValidationError(f"{label}: productId is required.")
    location_id = str(raw.get("locationId") or "").strip()
    if not location_id:
        raise ValidationError(f"{label}: locationId is required.")
    is_serialized = parse_bool(raw.get("isSerialized", False), f"{label} isSerialized")
    serial = str(raw.get("serial") or "").strip() or None

    if is_serialized:
        if serial is None:
            raise ValidationError(f"{label}: serial is required for a serialized product.")
        quantity = 1
    else:
        quantity = parse_non_negative_int(raw.get("quantity"), f"{label} quantity")
        if quantity == 0:
            raise ValidationError(f"{label}: quantity must be at least 1.")

    return {
        "productId": product_id,
        "productName": str(raw.get("productName") or "").strip(),
        "sku": str(raw.get("sku") or "").strip() or None,
        "isSerialized": is_serialized,
        "serial": serial,
        "quantity": quantity,
        "inventoryItemId": raw.get("inventoryItemId") or None,
        "locationId": location_id,
    }


class PendingDeliverables(CollectionSync):
    collection = DELIVERABLES_COLLECTION
    cache_partition = DELIVERABLES_PARTITION

    def for_order(self, order_id: str) -> list[dict]:
        return [d for d in self.items if d.get("salesOrderId") == order_id]

    def batches(self) -> dict[str, list[dict]]:
        grouped: dict[str, list[dict]] = {}
        for doc in self.items:
            grouped.setdefault(doc.get("batchId") or "", []).append(doc)
        return grouped

    def _pending_serials(self) -> set[tuple[str, str]]:
        return {
            (item.get("productId"), item.get("serial"))
            for doc in self.items
            for item in doc.get("items") or []
            if item.get("serial")
        }

    def create_pending_deliverable(self, order_id: str, items: Any) -> dict:
        """
        Raise a numbered delivery batch against a pending sales order.

        The batch number and the deliverable are written in one transaction;
        the order itself is not changed.
        """
        self.connectivity.require_online("create a pending deliverable")
        if not order_id:
            raise ValidationError("salesOrderId is required.")
        if not isinstance(items, list) or not items:
            raise ValidationError("At least one item is required.")
        lines = [normalize_deliverable_item(raw, index) for index, raw in enumerate(items)]

        pending = self._pending_serials()
        seen: set[tuple[str, str]] = set()
        for line in lines:
            if not line["serial"]:
                continue
            key = (line["productId"], line["serial"])
            if key in seen or key in pending:
                raise ValidationError(f"Serial {line['serial']} is already pending delivery.")
            seen.add(key)

        actor = self.connectivity.actor
        period = monthly_period(None)

        def _op(tx: Transaction) -> dict:
            order = tx.get(SALES_ORDERS_COLLECTION, order_id)
            if order is None:
                raise DocumentNotFoundError(f"Sales order {order_id} not found")
            if order.get("status") == STATUS_FINALIZED:
                raise DocumentStateError(
                    f"Sales order {order.get('orderNumber') or order_id} is already finalized."
                )
            on_order = {line.get("productId") for line in order.get("items") or []}
            stray = sorted({line["productId"] for line in lines} - on_order)
            if stray:
                raise ValidationError(f"Not a line on this sales order: {', '.join(stray)}")

            batch_id = allocate_number(tx, DELIVERY_BATCH_COUNTER, prefix="BO", period=period)
            doc_id = new_document_id()
            tx.set(self.collection, doc_id, {
                "salesOrderId": order_id,
                "salesOrderNumber": order.get("orderNumber"),
                "customerId": order.get("customerId"),
                "customerName": order.get("customerName"),
                "batchId": batch_id,
                "items": lines,
                "status": STATUS_PENDING_DELIVERY,
                "createdAt": now_z(),
                "createdBy": actor,
            })
            return {"id": doc_id, "batchId": batch_id}

        try:
            result = self.store.run_transaction(self.tenant_id, _op)
        except SQLAlchemyError as exc:
            logger.error("Delivery batch transaction failed: %s", exc)
            raise CounterTransactionFailure("Could not generate a new Delivery Batch ID. Please try again.") from exc
        logger.info("Delivery batch %s raised for sales order %s (%d items)",
                    result["batchId"], order_id, len(lines))
        return result

    def request_delete_batch(self, batch_id: str) -> ConfirmationRequest:
        self.connectivity.require_online("delete a delivery batch")
        if batch_id not in self.batches():
            raise DocumentNotFoundError(f"Delivery batch {batch_id} not found")
        return ConfirmationRequest(
            action="delete",
            collection=self.collection,
            doc_id=batch_id,
            message=f"Are you sure you want to delete delivery batch {batch_id}?",
        )

    def delete_batch(self, batch_id: str) -> int:
        """Delete every deliverable of a batch in one write. Unknown batches are a no-op."""
        self.connectivity.require_online("delete a delivery batch")
        if not batch_id:
            raise ValidationError("batchId is required.")
        docs = self.batches().get(batch_id, [])
        if not docs:
            return 0
        batch = self.store.batch(self.tenant_id)
        for doc in docs:
            batch.delete(self.collection, doc["id"])
        batch.commit()
        logger.info("Delivery batch %s deleted (%d documents)", batch_id, len(docs))
        return len(docs)

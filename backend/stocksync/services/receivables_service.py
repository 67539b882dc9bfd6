# Overview: Received-but-unreconciled stock items awaiting assignment to purchase invoice lines.

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..errors import CounterTransactionFailure, ValidationError
from ..time_utils import now_z
from ..validation import parse_bool, parse_non_negative_int
from .cache_service import RECEIVABLES_PARTITION
from .document_numbers import RECEIVE_BATCH_COUNTER, allocate_number, monthly_period
from .document_store import Transaction, new_document_id
from .sync_service import CollectionSync

logger = logging.getLogger(__name__)


RECEIVABLES_COLLECTION = "pending_receivables"


class PendingReceivables(CollectionSync):
    """
    Pool of received stock records.

    Each record is one serial (quantity 1) or one quantity of a
    non-serialised product. Records are only ever consumed by purchase
    reconciliation, which flips isConsumed inside its own transaction.
    """

    collection = RECEIVABLES_COLLECTION
    cache_partition = RECEIVABLES_PARTITION

    def available(self, product_id: str | None = None) -> list[dict]:
        return [
            item for item in self.items
            if not item.get("isConsumed")
            and (product_id is None or item.get("productId") == product_id)
        ]

    def batches(self) -> dict[str, list[dict]]:
        grouped: dict[str, list[dict]] = {}
        for item in self.available():
            grouped.setdefault(item.get("batchId") or "", []).append(item)
        return grouped

    def _expand(self, raw: Any, index: int) -> list[dict]:
        label = f"Item {index + 1}"
        if not isinstance(raw, dict):
            raise ValidationError(f"{label}: must be an object")
        product_id = str(raw.get("productId") or "").strip()
        if not product_id:
            raise ValidationError(f"{label}: productId is required.")
        product_name = str(raw.get("productName") or "").strip()
        is_serialized = parse_bool(raw.get("isSerialized", False), f"{label} isSerialized")

        if is_serialized:
            serials = [str(s).strip() for s in (raw.get("serials") or []) if str(s).strip()]
            if not serials:
                raise ValidationError(f"{label}: at least one serial number is required.")
            if len(set(serials)) != len(serials):
                raise ValidationError(f"{label}: duplicate serial numbers.")
            return [
                {
                    "productId": product_id,
                    "productName": product_name,
                    "quantity": 1,
                    "isSerialized": True,
                    "serialNumber": serial,
                }
                for serial in serials
            ]

        quantity = parse_non_negative_int(raw.get("quantity"), f"{label} quantity")
        if quantity == 0:
            raise ValidationError(f"{label}: quantity must be at least 1.")
        return [{
            "productId": product_id,
            "productName": product_name,
            "quantity": quantity,
            "isSerialized": False,
            "serialNumber": None,
        }]

    def receive_batch(self, items: Any, location_id: str) -> dict:
        """
        Record one physical delivery as a numbered batch (BI-YYMM-NNN).

        The batch number and every record are written in one transaction.
        """
        self.connectivity.require_online("receive stock")
        if not location_id:
            raise ValidationError("locationId is required.")
        if not isinstance(items, list) or not items:
            raise ValidationError("At least one received item is required.")

        records: list[dict] = []
        for index, raw in enumerate(items):
            records.extend(self._expand(raw, index))

        known_serials = {
            (i.get("productId"), i.get("serialNumber"))
            for i in self.available() if i.get("serialNumber")
        }
        for record in records:
            if record["serialNumber"] and (record["productId"], record["serialNumber"]) in known_serials:
                raise ValidationError(
                    f"Serial {record['serialNumber']} is already pending for {record['productId']}."
                )

        actor = self.connectivity.actor
        period = monthly_period(None)

        def _op(tx: Transaction) -> dict:
            batch_id = allocate_number(tx, RECEIVE_BATCH_COUNTER, prefix="BI", period=period)
            stamp = now_z()
            keys = []
            for record in records:
                key = new_document_id()
                body = dict(record)
                body.update({
                    "key": key,
                    "batchId": batch_id,
                    "locationId": location_id,
                    "isConsumed": False,
                    "createdAt": stamp,
                    "createdBy": actor,
                })
                tx.set(self.collection, key, body)
                keys.append(key)
            return {"batchId": batch_id, "keys": keys}

        try:
            result = self.store.run_transaction(self.tenant_id, _op)
        except SQLAlchemyError as exc:
            logger.error("Receive batch transaction failed: %s", exc)
            raise CounterTransactionFailure("Could not generate a new Batch ID. Please try again.") from exc
        logger.info("Received batch %s: %d records at %s", result["batchId"], len(result["keys"]), location_id)
        return result

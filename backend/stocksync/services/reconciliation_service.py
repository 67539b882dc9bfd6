# Overview: Purchase reconciliation; matches received stock to invoice lines and commits it atomically.

"""
Purchase Reconciliation Workbench

Per purchase invoice, the operator assigns pending received items to the
invoice's lines. Assignments live in memory only until finalize().

MATCH RULE: a line is satisfied iff the quantities assigned to it sum to
exactly the line's (latest saved) quantity.

FINALIZE:
- Preconditions: at least one assignment and every line satisfied, else
  PartialFinalizeRejection listing every "<product>: expected X, reconciled Y".
- Effect, in one transaction:
  1. one IN inventory transaction per assigned item, at the item's location
  2. every assigned receivable marked isConsumed
  3. invoice status FINALIZED with receivedQty per line
  Any failure rolls back all three.

CONCURRENCY: finalize is serialised per invoice by ReconciliationDesk and
the invoice is re-read inside the transaction, so a second finalize of the
same invoice fails with DocumentStateError instead of adding stock twice.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict

from ..errors import (
    DocumentNotFoundError,
    DocumentStateError,
    PartialFinalizeRejection,
    ValidationError,
)
from ..time_utils import now_z
from .connectivity import EVENT_SIGNED_OUT, ConnectivityContext
from .document_store import DocumentStore, Transaction, new_document_id
from .inventory_service import INVENTORY_COLLECTION, build_transaction
from .order_service import STATUS_FINALIZED, PurchaseInvoiceBook
from .receivables_service import PendingReceivables
from .stock_service import TYPE_IN

logger = logging.getLogger(__name__)


def line_progress(invoice: dict, assigned: list[dict]) -> list[dict]:
    """Expected vs reconciled quantity for every line of an invoice."""
    reconciled: dict[str, int] = {}
    for item in assigned:
        reconciled[item["productId"]] = reconciled.get(item["productId"], 0) + int(item.get("quantity") or 0)

    rows = []
    for line in invoice.get("items") or []:
        product_id = line.get("productId")
        expected = int(line.get("quantity") or 0)
        got = reconciled.get(product_id, 0)
        rows.append({
            "productId": product_id,
            "productName": line.get("productName") or product_id,
            "expected": expected,
            "reconciled": got,
            "satisfied": got == expected,
        })
    return rows


def unsatisfied_messages(rows: list[dict]) -> list[str]:
    return [
        f"{row['productName']}: expected {row['expected']}, reconciled {row['reconciled']}"
        for row in rows
        if not row["satisfied"]
    ]


class ReconciliationWorkbench:
    """In-memory proposed reconciliation for one purchase invoice."""

    def __init__(self, desk: "ReconciliationDesk", invoice_id: str):
        self.desk = desk
        self.invoice_id = invoice_id
        # received item key -> target line productId, in assignment order
        self.assignments: "OrderedDict[str, str]" = OrderedDict()

    def invoice(self) -> dict:
        invoice = self.desk.invoices.find(self.invoice_id)
        if invoice is None:
            raise DocumentNotFoundError(f"Purchase invoice {self.invoice_id} not found")
        return invoice

    def _ensure_open(self, invoice: dict) -> None:
        if invoice.get("status") == STATUS_FINALIZED:
            raise DocumentStateError(
                f"Purchase invoice {invoice.get('invoiceNumber') or self.invoice_id} is already finalized."
            )

    def assign(self, received_key: str, target_product_id: str) -> dict:
        invoice = self.invoice()
        self._ensure_open(invoice)

        item = self.desk.receivables.find(received_key)
        if item is None:
            raise ValidationError(f"Unknown received item: {received_key}")
        if item.get("isConsumed"):
            raise ValidationError(f"Received item {received_key} has already been consumed.")
        if received_key in self.assignments:
            raise ValidationError(f"Received item {received_key} is already assigned.")
        holder = self.desk.holder_of(received_key, exclude=self.invoice_id)
        if holder is not None:
            raise ValidationError(f"Received item {received_key} is already assigned to invoice {holder}.")

        line_ids = {line.get("productId") for line in invoice.get("items") or []}
        if target_product_id not in line_ids:
            raise ValidationError(f"{target_product_id} is not a line on this invoice.")
        if item.get("productId") != target_product_id:
            raise ValidationError(
                f"Received item {received_key} is {item.get('productId')}, "
                f"it cannot satisfy the {target_product_id} line."
            )

        self.assignments[received_key] = target_product_id
        logger.debug("Invoice %s: %s assigned to %s", self.invoice_id, received_key, target_product_id)
        return item

    def unassign(self, received_key: str) -> None:
        if received_key not in self.assignments:
            raise ValidationError(f"Received item {received_key} is not assigned to this invoice.")
        del self.assignments[received_key]

    def assigned_items(self) -> list[dict]:
        items = []
        for key in self.assignments:
            item = self.desk.receivables.find(key)
            if item is not None:
                items.append(item)
        return items

    def progress(self) -> list[dict]:
        return line_progress(self.invoice(), self.assigned_items())

    def is_ready(self) -> bool:
        rows = self.progress()
        return bool(self.assignments) and all(row["satisfied"] for row in rows)

    def to_dict(self) -> dict:
        invoice = self.invoice()
        return {
            "invoiceId": self.invoice_id,
            "invoiceNumber": invoice.get("invoiceNumber"),
            "status": invoice.get("status"),
            "assignments": [
                {"key": key, "productId": product_id} for key, product_id in self.assignments.items()
            ],
            "lines": line_progress(invoice, self.assigned_items()),
            "available": [
                item for item in self.desk.receivables.available()
                if item["id"] not in self.assignments
            ],
        }

    def _check_preconditions(self, invoice: dict, assigned: list[dict]) -> list[dict]:
        if not self.assignments:
            raise PartialFinalizeRejection("At least one received item must be assigned before finalizing.")
        rows = line_progress(invoice, assigned)
        problems = unsatisfied_messages(rows)
        if problems:
            logger.warning("Finalize of invoice %s rejected: %s", self.invoice_id, "; ".join(problems))
            raise PartialFinalizeRejection(
                "Cannot finalize, unsatisfied lines: " + "; ".join(problems),
                details=problems,
            )
        return rows

    def finalize(self, user_id: str | None = None) -> dict:
        self.desk.connectivity.require_online("finalize purchase invoice")
        user_id = user_id or self.desk.connectivity.user_id
        invoice = self.invoice()
        self._ensure_open(invoice)
        self._check_preconditions(invoice, self.assigned_items())

        with self.desk.lock_for(self.invoice_id):
            result = self.desk.store.run_transaction(
                self.desk.connectivity.tenant_id,
                lambda tx: self._commit(tx, user_id),
            )

        self.assignments.clear()
        self.desk.discard(self.invoice_id)
        logger.info(
            "Purchase invoice %s finalized: %d items committed to stock",
            result["invoiceNumber"], len(result["inventoryTransactionIds"]),
        )
        return result

    def _commit(self, tx: Transaction, user_id: str | None) -> dict:
        invoices = self.desk.invoices.collection
        receivables = self.desk.receivables.collection

        invoice = tx.get(invoices, self.invoice_id)
        if invoice is None:
            raise DocumentNotFoundError(f"Purchase invoice {self.invoice_id} not found")
        self._ensure_open(invoice)

        assigned = []
        for key in self.assignments:
            item = tx.get(receivables, key)
            if item is None:
                raise ValidationError(f"Received item {key} no longer exists.")
            if item.get("isConsumed"):
                raise ValidationError(f"Received item {key} has already been consumed.")
            assigned.append(item)

        rows = self._check_preconditions(invoice, assigned)

        stamp = now_z()
        txn_ids = []
        for item in assigned:
            body = build_transaction(
                product_id=item["productId"],
                location_id=item.get("locationId"),
                txn_type=TYPE_IN,
                quantity=item.get("quantity"),
                user_id=user_id,
                extra={
                    "purchaseInvoiceId": self.invoice_id,
                    "reference": invoice.get("invoiceNumber"),
                    "receivableKey": item["id"],
                    "batchId": item.get("batchId"),
                    "serialNumber": item.get("serialNumber"),
                },
            )
            txn_id = new_document_id()
            tx.set(INVENTORY_COLLECTION, txn_id, body)
            txn_ids.append(txn_id)
            tx.update(receivables, item["id"], {
                "isConsumed": True,
                "consumedBy": self.invoice_id,
                "consumedAt": stamp,
            })

        received = {row["productId"]: row["reconciled"] for row in rows}
        items = []
        for line in invoice.get("items") or []:
            line = dict(line)
            line["receivedQty"] = received.get(line.get("productId"), 0)
            items.append(line)

        tx.update(invoices, self.invoice_id, {
            "items": items,
            "status": STATUS_FINALIZED,
            "finalizedAt": stamp,
            "finalizedBy": user_id,
            "updatedAt": stamp,
        })
        return {
            "invoiceId": self.invoice_id,
            "invoiceNumber": invoice.get("invoiceNumber"),
            "status": STATUS_FINALIZED,
            "inventoryTransactionIds": txn_ids,
            "consumedKeys": [item["id"] for item in assigned],
        }


class ReconciliationDesk:
    """Holds one workbench per invoice and the per-invoice finalize locks."""

    def __init__(
        self,
        *,
        connectivity: ConnectivityContext,
        store: DocumentStore,
        invoices: PurchaseInvoiceBook,
        receivables: PendingReceivables,
    ):
        self.connectivity = connectivity
        self.store = store
        self.invoices = invoices
        self.receivables = receivables
        self._workbenches: dict[str, ReconciliationWorkbench] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self._remove_listener = connectivity.add_listener(self._on_connectivity)

    def _on_connectivity(self, event: str, ctx: ConnectivityContext) -> None:
        if event == EVENT_SIGNED_OUT:
            self.reset()

    def workbench(self, invoice_id: str) -> ReconciliationWorkbench:
        if self.invoices.find(invoice_id) is None:
            raise DocumentNotFoundError(f"Purchase invoice {invoice_id} not found")
        with self._guard:
            bench = self._workbenches.get(invoice_id)
            if bench is None:
                bench = ReconciliationWorkbench(self, invoice_id)
                self._workbenches[invoice_id] = bench
        return bench

    def lock_for(self, invoice_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(invoice_id, threading.Lock())

    def _prune_deleted(self) -> None:
        """Drop workbenches whose invoice was deleted, releasing their items."""
        if self.invoices.is_loading:
            return
        stale = [i for i in self._workbenches if self.invoices.find(i) is None]
        for invoice_id in stale:
            del self._workbenches[invoice_id]
            logger.info("Invoice %s no longer exists; its assignments were released", invoice_id)

    def holder_of(self, received_key: str, *, exclude: str | None = None) -> str | None:
        with self._guard:
            self._prune_deleted()
            for invoice_id, bench in self._workbenches.items():
                if invoice_id != exclude and received_key in bench.assignments:
                    return invoice_id
        return None

    def discard(self, invoice_id: str) -> None:
        with self._guard:
            self._workbenches.pop(invoice_id, None)

    def reset(self) -> None:
        with self._guard:
            self._workbenches.clear()

    def close(self) -> None:
        self.reset()
        self._remove_listener()

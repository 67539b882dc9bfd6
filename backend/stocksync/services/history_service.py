# Overview: Read-only item history log, newest first, with its sales order / purchase invoice context.

from __future__ import annotations

import logging

from .cache_service import HISTORY_PARTITION
from .order_service import PurchaseInvoiceBook, SalesOrderBook
from .sync_service import CollectionSync

logger = logging.getLogger(__name__)


HISTORY_COLLECTION = "item_history"

EVENT_TYPES = {
    "PURCHASE_RECEIVED": "Purchase Received",
    "SALE_DISPATCHED": "Sale Dispatched",
    "STOCK_ADJUSTED": "Stock Adjusted",
}

CONTEXT_SALES_ORDER = "SALES_ORDER"
CONTEXT_PURCHASE_INVOICE = "PURCHASE_INVOICE"


def event_label(event_type: str | None) -> str:
    if not event_type:
        return "Unknown"
    return EVENT_TYPES.get(event_type, event_type.replace("_", " ").title())


class ItemHistory(CollectionSync):
    """
    Item history entries written by other clients.

    There is no write path here. items are kept newest first by
    timestamp; entries without a timestamp sort last.
    """

    collection = HISTORY_COLLECTION
    cache_partition = HISTORY_PARTITION

    def __init__(self, *, sales_orders: SalesOrderBook, purchase_invoices: PurchaseInvoiceBook, **kwargs):
        self.sales_orders = sales_orders
        self.purchase_invoices = purchase_invoices
        super().__init__(**kwargs)

    def on_items_changed(self) -> None:
        stamped = [log for log in self.items if log.get("timestamp")]
        unstamped = [log for log in self.items if not log.get("timestamp")]
        stamped.sort(key=lambda log: str(log["timestamp"]), reverse=True)
        self.items = stamped + unstamped

    def for_product(self, product_id: str) -> list[dict]:
        return [log for log in self.items if log.get("productId") == product_id]

    def detail(self, log_id: str) -> dict | None:
        """One log entry plus the document named by its context, if still loaded."""
        log = self.find(log_id)
        if log is None:
            return None
        context = log.get("context") or {}
        document_id = context.get("documentId")
        document = None
        if document_id and context.get("type") == CONTEXT_SALES_ORDER:
            document = self.sales_orders.find(document_id)
        elif document_id and context.get("type") == CONTEXT_PURCHASE_INVOICE:
            document = self.purchase_invoices.find(document_id)
        if document_id and document is None:
            logger.warning("History log %s refers to missing %s %s", log_id, context.get("type"), document_id)
        return {
            "log": dict(log, label=event_label(log.get("type"))),
            "context": document,
        }

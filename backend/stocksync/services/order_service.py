# Overview: Sales orders and purchase invoices; numbering, line pricing, totals and status guards.

"""
Sales Orders and Purchase Invoices

Both are numbered per calendar month from their document date
(SO-2501-001, PI-2501-001) and carry tax-inclusive line prices that are
split into a pre-tax price and a unit tax at TAX_RATE.

STATUS LIFECYCLE: PENDING -> FINALIZED. FINALIZED is terminal; update,
delete and save_draft re-read the document inside a transaction and
refuse to touch a finalized one.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from ..errors import DocumentNotFoundError, DocumentStateError, ValidationError
from ..time_utils import coerce_date, now_z, to_utc_z
from ..validation import parse_money, parse_non_negative_int
from .cache_service import PURCHASE_INVOICES_PARTITION, SALES_ORDERS_PARTITION
from .document_numbers import (
    PURCHASE_INVOICE_COUNTER,
    SALES_ORDER_COUNTER,
    DocumentNumberGenerator,
    monthly_period,
)
from .document_store import Transaction, new_document_id
from .inventory_service import INVENTORY_COLLECTION, build_transaction
from .stock_service import TYPE_OUT
from .sync_service import CrudCollectionSync

logger = logging.getLogger(__name__)


SALES_ORDERS_COLLECTION = "sales_orders"
PURCHASE_INVOICES_COLLECTION = "purchase_invoices"
DELIVERABLES_COLLECTION = "pending_deliverables"

STATUS_PENDING = "PENDING"
STATUS_FINALIZED = "FINALIZED"

DEFAULT_TAX_RATE = Decimal("0.18")
CENT = Decimal("0.01")


def _round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def split_tax(unit_price: Decimal, tax_rate: Decimal) -> tuple[Decimal, Decimal]:
    """
    Split a tax-inclusive unit price into (pre-tax price, unit tax).

    price is rounded half-up to 2dp; tax is the remainder, so
    price + tax == unit_price exactly.
    """
    price = _round2(unit_price / (Decimal(1) + tax_rate))
    return price, unit_price - price


@dataclass
class LineItem:
    productId: str
    productName: str
    quantity: int
    unitPrice: Decimal
    price: Decimal
    tax: Decimal

    @classmethod
    def from_payload(cls, raw: Any, *, tax_rate: Decimal, price_field: str, index: int) -> "LineItem":
        label = f"Line {index + 1}"
        if not isinstance(raw, dict):
            raise ValidationError(f"{label}: must be an object")
        product_id = str(raw.get("productId") or "").strip()
        if not product_id:
            raise ValidationError(f"{label}: productId is required.")
        quantity = parse_non_negative_int(raw.get("quantity"), f"{label} quantity")
        if quantity == 0:
            raise ValidationError(f"{label}: quantity must be at least 1.")
        unit_price = _round2(parse_money(raw.get(price_field, 0), f"{label} {price_field}"))
        price, tax = split_tax(unit_price, tax_rate)
        return cls(
            productId=product_id,
            productName=str(raw.get("productName") or "").strip(),
            quantity=quantity,
            unitPrice=unit_price,
            price=price,
            tax=tax,
        )

    def to_document(self, price_field: str) -> dict:
        body = asdict(self)
        body.pop("unitPrice")
        body[price_field] = float(self.unitPrice)
        body["price"] = float(self.price)
        body["tax"] = float(self.tax)
        return body


def compute_totals(items: list[dict], price_field: str) -> dict:
    pre_tax = Decimal(0)
    tax = Decimal(0)
    amount = Decimal(0)
    for item in items:
        qty = Decimal(int(item.get("quantity") or 0))
        pre_tax += Decimal(str(item.get("price") or 0)) * qty
        tax += Decimal(str(item.get("tax") or 0)) * qty
        amount += Decimal(str(item.get(price_field) or 0)) * qty
    return {
        "totalPreTax": float(_round2(pre_tax)),
        "totalTax": float(_round2(tax)),
        "totalAmount": float(_round2(amount)),
    }


class TradeDocumentBook(CrudCollectionSync):
    """
    Base for numbered trade documents (sales orders, purchase invoices).

    Subclasses name their number, date and party fields, the unit price
    field on their lines, and the per-line progress field initialised to 0.
    """

    number_field: str
    date_field: str
    party_id_field: str
    party_name_field: str
    price_field: str
    progress_fields: tuple[str, ...] = ()
    counter_name: str
    number_prefix: str

    def __init__(self, *, numbers: DocumentNumberGenerator, tax_rate: Decimal | float = DEFAULT_TAX_RATE, **kwargs):
        self.numbers = numbers
        self.tax_rate = Decimal(str(tax_rate))
        super().__init__(**kwargs)

    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------

    def normalize_items(self, raw_items: Any) -> list[dict]:
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("At least one line item is required.")
        items = []
        seen: dict[str, int] = {}
        for index, raw in enumerate(raw_items):
            line = LineItem.from_payload(raw, tax_rate=self.tax_rate, price_field=self.price_field, index=index)
            # Line progress is keyed by productId, so one line per product
            if line.productId in seen:
                raise ValidationError(
                    f"Line {index + 1}: {line.productName or line.productId} is already on line "
                    f"{seen[line.productId] + 1}; combine the quantities into one line."
                )
            seen[line.productId] = index
            body = line.to_document(self.price_field)
            for field in self.progress_fields:
                body[field] = 0
            items.append(body)
        return items

    def _parse_date(self, value: Any) -> str:
        if value in (None, ""):
            raise ValidationError(f"{self.date_field} is required.")
        try:
            return to_utc_z(coerce_date(value))
        except ValueError:
            raise ValidationError(f"{self.date_field} must be an ISO-8601 date")

    def prepare_create(self, data: dict) -> dict:
        data = data or {}
        party_id = str(data.get(self.party_id_field) or "").strip()
        if not party_id:
            raise ValidationError(f"{self.party_id_field} is required.")
        items = self.normalize_items(data.get("items"))
        body = {
            self.party_id_field: party_id,
            self.party_name_field: str(data.get(self.party_name_field) or "").strip(),
            self.date_field: self._parse_date(data.get(self.date_field)),
            "notes": str(data.get("notes") or "").strip(),
            "items": items,
            "status": STATUS_PENDING,
        }
        body.update(compute_totals(items, self.price_field))
        return body

    def prepare_update(self, doc_id: str, data: dict) -> dict:
        data = data or {}
        allowed = {self.party_id_field, self.party_name_field, self.date_field, "notes", "items"}
        unknown = sorted(k for k in data if k not in allowed and k != "id")
        if unknown:
            raise ValidationError(f"Field not allowed: {unknown[0]}")
        patch: dict[str, Any] = {}
        if self.party_id_field in data:
            party_id = str(data.get(self.party_id_field) or "").strip()
            if not party_id:
                raise ValidationError(f"{self.party_id_field} is required.")
            patch[self.party_id_field] = party_id
        if self.party_name_field in data:
            patch[self.party_name_field] = str(data.get(self.party_name_field) or "").strip()
        if self.date_field in data:
            patch[self.date_field] = self._parse_date(data.get(self.date_field))
        if "notes" in data:
            patch["notes"] = str(data.get("notes") or "").strip()
        if "items" in data:
            patch["items"] = self.normalize_items(data.get("items"))
            patch.update(compute_totals(patch["items"], self.price_field))
        return patch

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, data: dict) -> str:
        self.connectivity.require_online(f"create a new {self.entity_label}")
        body = self.prepare_create(data)
        stamp = now_z()
        body.update({
            "createdAt": stamp,
            "updatedAt": stamp,
            "createdBy": self.connectivity.actor,
        })
        doc_id, number = self.numbers.create_numbered(
            self.collection,
            body,
            number_field=self.number_field,
            counter_name=self.counter_name,
            prefix=self.number_prefix,
            period_fn=monthly_period,
            on=body[self.date_field],
            label=self.entity_label,
        )
        logger.info("%s %s created (%s)", self.entity_label.capitalize(), number, doc_id)
        return doc_id

    def _load_pending(self, tx: Transaction, doc_id: str, action: str) -> dict:
        doc = tx.get(self.collection, doc_id)
        if doc is None:
            raise DocumentNotFoundError(f"{self.entity_label.capitalize()} {doc_id} not found")
        if doc.get("status") == STATUS_FINALIZED:
            logger.warning("Refused to %s finalized %s %s", action, self.entity_label, doc_id)
            raise DocumentStateError(
                f"{self.entity_label.capitalize()} {doc.get(self.number_field) or doc_id} "
                f"is finalized and cannot be {action}d."
            )
        return doc

    def update(self, doc_id: str, data: dict) -> None:
        self.connectivity.require_online(f"update {self.entity_label}")
        patch = self.prepare_update(doc_id, data)
        patch["updatedAt"] = now_z()

        def _op(tx: Transaction) -> None:
            self._load_pending(tx, doc_id, "update")
            tx.update(self.collection, doc_id, patch)

        self.store.run_transaction(self.tenant_id, _op)
        logger.info("%s %s updated", self.entity_label.capitalize(), doc_id)

    def check_delete(self, doc_id: str) -> None:
        doc = self.store.get(self.tenant_id, self.collection, doc_id)
        if doc is None:
            raise DocumentNotFoundError(f"{self.entity_label.capitalize()} {doc_id} not found")
        if doc.get("status") == STATUS_FINALIZED:
            raise DocumentStateError(
                f"{self.entity_label.capitalize()} {doc.get(self.number_field) or doc_id} "
                "is finalized and cannot be deleted."
            )

    def delete(self, doc_id: str) -> None:
        self.connectivity.require_online(f"delete {self.entity_label}")

        def _op(tx: Transaction) -> None:
            self._load_pending(tx, doc_id, "delete")
            tx.delete(self.collection, doc_id)

        self.store.run_transaction(self.tenant_id, _op)
        logger.info("%s %s deleted", self.entity_label.capitalize(), doc_id)

    def save_draft(self, doc_id: str, quantities: Any) -> dict:
        """
        Persist edited line quantities of a pending document.

        quantities is a list of {productId, quantity}; lines not mentioned
        keep their quantity. Totals are recomputed from the saved lines.
        """
        self.connectivity.require_online(f"save {self.entity_label} draft")
        if not isinstance(quantities, list) or not quantities:
            raise ValidationError("At least one line quantity is required.")
        wanted: dict[str, int] = {}
        for index, row in enumerate(quantities):
            if not isinstance(row, dict) or not row.get("productId"):
                raise ValidationError(f"Line {index + 1}: productId is required.")
            qty = parse_non_negative_int(row.get("quantity"), f"Line {index + 1} quantity")
            if qty == 0:
                raise ValidationError(f"Line {index + 1}: quantity must be at least 1.")
            product_id = str(row["productId"])
            if product_id in wanted:
                raise ValidationError(f"Line {index + 1}: duplicate quantity for {product_id}.")
            wanted[product_id] = qty

        def _op(tx: Transaction) -> dict:
            doc = self._load_pending(tx, doc_id, "update")
            items = list(doc.get("items") or [])
            known = {item.get("productId") for item in items}
            missing = sorted(pid for pid in wanted if pid not in known)
            if missing:
                raise ValidationError(f"Not a line on this {self.entity_label}: {', '.join(missing)}")
            for item in items:
                if item.get("productId") in wanted:
                    item["quantity"] = wanted[item["productId"]]
            patch = {"items": items, "updatedAt": now_z()}
            patch.update(compute_totals(items, self.price_field))
            tx.update(self.collection, doc_id, patch)
            return patch

        patch = self.store.run_transaction(self.tenant_id, _op)
        logger.info("%s %s draft saved", self.entity_label.capitalize(), doc_id)
        return patch

    def pending(self) -> list[dict]:
        return [d for d in self.items if d.get("status") != STATUS_FINALIZED]


class SalesOrderBook(TradeDocumentBook):
    collection = SALES_ORDERS_COLLECTION
    cache_partition = SALES_ORDERS_PARTITION
    entity_label = "sales order"
    number_field = "orderNumber"
    date_field = "orderDate"
    party_id_field = "customerId"
    party_name_field = "customerName"
    price_field = "unitPrice"
    progress_fields = ("deliveredQty", "returnedQty")
    counter_name = SALES_ORDER_COUNTER
    number_prefix = "SO"

    def finalize(self, order_id: str, location_id: str, *, release_deliverables: Iterable[str] = ()) -> dict:
        """
        Deliver a pending order from one location in one atomic write.

        Records one OUT inventory transaction per line, marks every line
        fully delivered and flips the order to FINALIZED. The pending
        deliverables named in release_deliverables (the order's delivery
        batches) are deleted in the same transaction.
        """
        self.connectivity.require_online("finalize sales order")
        if not location_id:
            raise ValidationError("locationId is required.")
        user_id = self.connectivity.user_id
        release = tuple(release_deliverables)

        def _op(tx: Transaction) -> dict:
            order = self._load_pending(tx, order_id, "finalize")
            items = list(order.get("items") or [])
            if not items:
                raise ValidationError("Sales order has no line items.")
            txn_ids = []
            for item in items:
                body = build_transaction(
                    product_id=item["productId"],
                    location_id=location_id,
                    txn_type=TYPE_OUT,
                    quantity=item.get("quantity"),
                    user_id=user_id,
                    extra={"salesOrderId": order_id, "reference": order.get(self.number_field)},
                )
                txn_id = new_document_id()
                tx.set(INVENTORY_COLLECTION, txn_id, body)
                txn_ids.append(txn_id)
                item["deliveredQty"] = item.get("quantity")
            released = []
            for deliverable_id in release:
                deliverable = tx.get(DELIVERABLES_COLLECTION, deliverable_id)
                if deliverable is None or deliverable.get("salesOrderId") != order_id:
                    continue
                tx.delete(DELIVERABLES_COLLECTION, deliverable_id)
                released.append(deliverable.get("batchId"))
            stamp = now_z()
            tx.update(self.collection, order_id, {
                "items": items,
                "status": STATUS_FINALIZED,
                "finalizedAt": stamp,
                "finalizedBy": self.connectivity.actor,
                "updatedAt": stamp,
            })
            return {
                "orderId": order_id,
                "status": STATUS_FINALIZED,
                "inventoryTransactionIds": txn_ids,
                "releasedBatches": released,
            }

        result = self.store.run_transaction(self.tenant_id, _op)
        logger.info("Sales order %s finalized from %s (%d lines)",
                    order_id, location_id, len(result["inventoryTransactionIds"]))
        return result


class PurchaseInvoiceBook(TradeDocumentBook):
    collection = PURCHASE_INVOICES_COLLECTION
    cache_partition = PURCHASE_INVOICES_PARTITION
    entity_label = "purchase invoice"
    number_field = "invoiceNumber"
    date_field = "invoiceDate"
    party_id_field = "supplierId"
    party_name_field = "supplierName"
    price_field = "unitCostPrice"
    progress_fields = ("receivedQty",)
    counter_name = PURCHASE_INVOICE_COUNTER
    number_prefix = "PI"

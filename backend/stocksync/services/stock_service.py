# Overview: Derives per-product, per-location stock levels from the inventory transaction list.

"""
Stock Aggregation

Levels are never stored. aggregate_stock() recomputes the whole mapping
from the transaction list each time the list changes, which costs O(n) per
change in the number of transactions. Transaction lists are bounded per
tenant, so no incremental state is kept.

Levels are not clamped: inconsistent history (an OUT before any IN) yields
negative quantities, which is what the ledger actually says.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Mapping

logger = logging.getLogger(__name__)


TYPE_IN = "IN"
TYPE_OUT = "OUT"
TYPE_TRANSFER = "TRANSFER"
TRANSACTION_TYPES = (TYPE_IN, TYPE_OUT, TYPE_TRANSFER)

StockLevels = dict[str, dict[str, int]]


def _quantity(txn: Mapping) -> int | None:
    value = txn.get("quantity")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def aggregate_stock(transactions: Iterable[Mapping]) -> StockLevels:
    """
    Sum transactions into {productId: {locationId: quantity}}.

    IN adds at locationId, OUT subtracts at locationId, TRANSFER moves
    quantity from locationId to destinationLocationId. Transactions missing
    a location field they need, or with an unknown type, are skipped with a
    warning. The result does not depend on the order of transactions.
    """
    levels: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))

    for txn in transactions:
        txn_id = txn.get("id")
        product_id = txn.get("productId")
        txn_type = txn.get("type")
        qty = _quantity(txn)

        if not product_id or qty is None:
            logger.warning("Skipping inventory transaction %s: missing product or quantity", txn_id)
            continue

        source = txn.get("locationId")
        if txn_type == TYPE_IN:
            if not source:
                logger.warning("Skipping IN transaction %s: missing locationId", txn_id)
                continue
            levels[product_id][source] += qty
        elif txn_type == TYPE_OUT:
            if not source:
                logger.warning("Skipping OUT transaction %s: missing locationId", txn_id)
                continue
            levels[product_id][source] -= qty
        elif txn_type == TYPE_TRANSFER:
            destination = txn.get("destinationLocationId")
            if not source or not destination:
                logger.warning("Skipping TRANSFER transaction %s: missing source or destination", txn_id)
                continue
            levels[product_id][source] -= qty
            levels[product_id][destination] += qty
        else:
            logger.warning("Skipping inventory transaction %s: unknown type %r", txn_id, txn_type)

    return {product_id: dict(by_location) for product_id, by_location in levels.items()}


def total_on_hand(levels: Mapping[str, Mapping[str, int]], product_id: str) -> int:
    return sum(levels.get(product_id, {}).values())


def low_stock_report(products: Iterable[Mapping], levels: Mapping[str, Mapping[str, int]]) -> list[dict]:
    """Products with a positive reorder point whose total on hand is at or below it."""
    report = []
    for product in products:
        reorder_point = product.get("reorderPoint") or 0
        if not isinstance(reorder_point, int) or reorder_point <= 0:
            continue
        on_hand = total_on_hand(levels, product.get("id"))
        if on_hand <= reorder_point:
            report.append({
                "productId": product.get("id"),
                "sku": product.get("sku"),
                "model": product.get("model"),
                "reorderPoint": reorder_point,
                "onHand": on_hand,
                "byLocation": dict(levels.get(product.get("id"), {})),
            })
    report.sort(key=lambda row: (row["onHand"] - row["reorderPoint"], str(row["sku"])))
    return report

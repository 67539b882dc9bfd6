# backend/stocksync/routes/inventory.py
"""
Inventory ledger, derived stock levels and stock locations.

Transactions are append-only: there is no update or delete route.
Stock levels are always recomputed from the loaded transactions.
The item history log is read-only here.
"""
from flask import Blueprint, request

from ..container import get_services
from ..errors import StockSyncError
from ..services.stock_service import low_stock_report, total_on_hand
from . import collection_body

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/transactions")
def list_transactions():
    ledger = get_services().inventory
    product_id = request.args.get("productId")
    if product_id:
        return collection_body(ledger, items=ledger.transactions_for(product_id))
    return collection_body(ledger)


@inventory_bp.post("/transactions")
def record_transaction():
    data = request.get_json(silent=True) or {}
    try:
        txn_id = get_services().inventory.record(
            product_id=str(data.get("productId") or "").strip(),
            location_id=str(data.get("locationId") or "").strip(),
            txn_type=data.get("type"),
            quantity=data.get("quantity"),
            destination_location_id=data.get("destinationLocationId"),
            notes=data.get("notes"),
        )
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"id": txn_id}, 201


@inventory_bp.get("/stock")
def stock_levels():
    levels = get_services().inventory.stock_levels
    product_id = request.args.get("productId")
    if product_id:
        return {
            "productId": product_id,
            "byLocation": dict(levels.get(product_id, {})),
            "onHand": total_on_hand(levels, product_id),
        }
    return {"stock": levels}


@inventory_bp.get("/low-stock")
def low_stock():
    services = get_services()
    return {"items": low_stock_report(services.products.items, services.inventory.stock_levels)}


@inventory_bp.get("/locations")
def list_locations():
    return collection_body(get_services().locations)


@inventory_bp.post("/locations")
def add_location():
    data = request.get_json(silent=True) or {}
    try:
        location_id = get_services().locations.add_location(data)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"id": location_id}, 201


@inventory_bp.get("/history")
def list_history():
    history = get_services().history
    product_id = request.args.get("productId")
    if product_id:
        return collection_body(history, items=history.for_product(product_id))
    return collection_body(history)


@inventory_bp.get("/history/<log_id>")
def history_detail(log_id: str):
    detail = get_services().history.detail(log_id)
    if detail is None:
        return {"error": "not_found", "message": "History log not found"}, 404
    return detail

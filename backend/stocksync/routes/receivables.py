# backend/stocksync/routes/receivables.py
from flask import Blueprint, request

from ..container import get_services
from ..errors import StockSyncError
from . import collection_body, flag

receivables_bp = Blueprint("receivables", __name__, url_prefix="/api/receivables")


@receivables_bp.get("")
def list_receivables():
    """Unconsumed received items; ?all=true includes consumed ones, ?productId= filters."""
    receivables = get_services().receivables
    if flag(request.args.get("all")):
        return collection_body(receivables)
    return collection_body(receivables, items=receivables.available(request.args.get("productId")))


@receivables_bp.get("/batches")
def list_batches():
    return {"batches": get_services().receivables.batches()}


@receivables_bp.post("/batches")
def receive_batch():
    """
    Record a physical delivery.

    Body: {"locationId": "...", "items": [
        {"productId": "...", "isSerialized": true, "serials": ["A1", "A2"]},
        {"productId": "...", "quantity": 10}
    ]}
    """
    data = request.get_json(silent=True) or {}
    try:
        result = get_services().receivables.receive_batch(
            data.get("items"),
            str(data.get("locationId") or "").strip(),
        )
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return result, 201

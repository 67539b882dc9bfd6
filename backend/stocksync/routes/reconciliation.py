# backend/stocksync/routes/reconciliation.py
"""
Purchase reconciliation workbench.

Assignments are held server-side per invoice until finalize. Finalize is
all-or-nothing: 422 with every unsatisfied line when preconditions fail,
otherwise stock, receivables and invoice status are committed together.
"""
from flask import Blueprint, request

from ..container import get_services
from ..errors import StockSyncError

reconciliation_bp = Blueprint("reconciliation", __name__, url_prefix="/api/reconciliation")


@reconciliation_bp.get("/<invoice_id>")
def view_workbench(invoice_id: str):
    try:
        bench = get_services().reconciliation.workbench(invoice_id)
        body = bench.to_dict()
        body["ready"] = bench.is_ready()
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return body


@reconciliation_bp.post("/<invoice_id>/assign")
def assign(invoice_id: str):
    data = request.get_json(silent=True) or {}
    key = str(data.get("key") or "").strip()
    product_id = str(data.get("productId") or "").strip()
    if not key or not product_id:
        return {"error": "validation", "message": "key and productId are required"}, 400
    try:
        bench = get_services().reconciliation.workbench(invoice_id)
        bench.assign(key, product_id)
        body = bench.to_dict()
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return body


@reconciliation_bp.post("/<invoice_id>/unassign")
def unassign(invoice_id: str):
    data = request.get_json(silent=True) or {}
    key = str(data.get("key") or "").strip()
    if not key:
        return {"error": "validation", "message": "key is required"}, 400
    try:
        bench = get_services().reconciliation.workbench(invoice_id)
        bench.unassign(key)
        body = bench.to_dict()
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return body


@reconciliation_bp.post("/<invoice_id>/finalize")
def finalize(invoice_id: str):
    try:
        result = get_services().reconciliation.workbench(invoice_id).finalize()
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return result

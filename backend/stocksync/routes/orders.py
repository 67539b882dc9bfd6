# backend/stocksync/routes/orders.py
"""
Sales orders and purchase invoices.

Both carry a monthly sequential number (SO-YYMM-NNN / PI-YYMM-NNN) taken
from the document date, line items with a tax split, and a status that
starts PENDING. FINALIZED documents refuse every further write (409).

Pending deliverables (BO-YYMM-NNN delivery batches) hang off a pending
sales order and are released when it is finalized.
"""
from flask import Blueprint, request

from ..container import get_services
from ..errors import StockSyncError
from ..services.order_service import STATUS_FINALIZED, STATUS_PENDING
from . import collection_body, flag

orders_bp = Blueprint("orders", __name__, url_prefix="/api")

DOC_KINDS = "<any('sales-orders', 'purchase-invoices'):kind>"


def _book(kind: str):
    services = get_services()
    return services.sales_orders if kind == "sales-orders" else services.purchase_invoices


@orders_bp.get(f"/{DOC_KINDS}")
def list_documents(kind: str):
    book = _book(kind)
    status = (request.args.get("status") or "").strip().upper()
    if status == STATUS_PENDING:
        return collection_body(book, items=book.pending())
    if status == STATUS_FINALIZED:
        return collection_body(book, items=[d for d in book.all_items() if d.get("status") == STATUS_FINALIZED])
    return collection_body(book)


@orders_bp.get(f"/{DOC_KINDS}/<doc_id>")
def get_document(kind: str, doc_id: str):
    doc = _book(kind).find(doc_id)
    if doc is None:
        return {"error": "not_found", "message": "Document not found"}, 404
    return {"document": doc}


@orders_bp.post(f"/{DOC_KINDS}")
def create_document(kind: str):
    data = request.get_json(silent=True) or {}
    book = _book(kind)
    try:
        doc_id = book.create(data)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    created = book.find(doc_id) or {}
    return {"id": doc_id, "number": created.get(book.number_field)}, 201


@orders_bp.put(f"/{DOC_KINDS}/<doc_id>")
def update_document(kind: str, doc_id: str):
    data = request.get_json(silent=True) or {}
    try:
        _book(kind).update(doc_id, data)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"id": doc_id}


@orders_bp.delete(f"/{DOC_KINDS}/<doc_id>")
def delete_document(kind: str, doc_id: str):
    book = _book(kind)
    try:
        if not flag(request.args.get("confirm")):
            return {"confirmation": book.request_delete(doc_id).to_dict()}, 428
        book.delete(doc_id)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"deleted": doc_id}


@orders_bp.post(f"/{DOC_KINDS}/<doc_id>/save-draft")
def save_draft(kind: str, doc_id: str):
    """Body: {"items": [{"productId": "...", "quantity": 3}, ...]}"""
    data = request.get_json(silent=True) or {}
    try:
        patch = _book(kind).save_draft(doc_id, data.get("items"))
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"id": doc_id, **patch}


@orders_bp.post("/sales-orders/<order_id>/finalize")
def finalize_sales_order(order_id: str):
    data = request.get_json(silent=True) or {}
    try:
        services = get_services()
        result = services.sales_orders.finalize(
            order_id,
            str(data.get("locationId") or "").strip(),
            release_deliverables=[d["id"] for d in services.deliverables.for_order(order_id)],
        )
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return result


@orders_bp.get("/deliverables")
def list_deliverables():
    deliverables = get_services().deliverables
    order_id = (request.args.get("salesOrderId") or "").strip()
    if order_id:
        return collection_body(deliverables, items=deliverables.for_order(order_id))
    return collection_body(deliverables)


@orders_bp.get("/deliverables/batches")
def list_delivery_batches():
    return {"batches": get_services().deliverables.batches()}


@orders_bp.post("/sales-orders/<order_id>/deliverables")
def create_deliverable(order_id: str):
    """Body: {"items": [{"productId", "locationId", "quantity" | "serial", ...}]}"""
    data = request.get_json(silent=True) or {}
    try:
        result = get_services().deliverables.create_pending_deliverable(order_id, data.get("items"))
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return result, 201


@orders_bp.delete("/deliverables/batches/<batch_id>")
def delete_delivery_batch(batch_id: str):
    deliverables = get_services().deliverables
    try:
        if not flag(request.args.get("confirm")):
            return {"confirmation": deliverables.request_delete_batch(batch_id).to_dict()}, 428
        deleted = deliverables.delete_batch(batch_id)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"batchId": batch_id, "deleted": deleted}

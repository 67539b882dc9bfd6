# backend/stocksync/routes/products.py
"""
Product catalog, lookup lists and bulk import.

Writes are rejected with 409 while offline. Reads serve the live snapshot
when online and the local cache when offline.

DELETE needs ?confirm=true. Without it the route answers 428 with the
confirmation request the client must show before retrying.
"""
from flask import Blueprint, request

from ..container import get_services
from ..errors import StockSyncError
from ..services.import_schemas import SCHEMAS
from ..services.import_service import read_csv_rows, read_workbook
from . import collection_body, flag

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    return collection_body(get_services().products)


@products_bp.get("/<product_id>")
def get_product(product_id: str):
    product = get_services().products.find(product_id)
    if product is None:
        return {"error": "not_found", "message": "Product not found"}, 404
    return {"product": product}


@products_bp.post("")
def create_product():
    data = request.get_json(silent=True) or {}
    try:
        product_id = get_services().products.create(data)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"id": product_id}, 201


@products_bp.put("/<product_id>")
def update_product(product_id: str):
    data = request.get_json(silent=True) or {}
    try:
        get_services().products.update(product_id, data)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"id": product_id}


@products_bp.delete("/<product_id>")
def delete_product(product_id: str):
    products = get_services().products
    try:
        if not flag(request.args.get("confirm")):
            return {"confirmation": products.request_delete(product_id).to_dict()}, 428
        products.delete(product_id)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"deleted": product_id}


@products_bp.get("/lookups")
def list_lookups():
    lookups = get_services().lookups
    body = collection_body(lookups, items=[])
    body.pop("items")
    body["lookups"] = lookups.lookups
    return body


@products_bp.post("/lookups/<key>")
def add_lookup_item(key: str):
    data = request.get_json(silent=True) or {}
    try:
        value = get_services().lookups.add_lookup_item(key, data.get("value"))
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"key": key, "value": value}, 201


@products_bp.get("/import/template")
def import_template():
    return {"headers": SCHEMAS["products"].template_headers}


@products_bp.post("/import")
def import_products():
    """
    Validate an uploaded product sheet (.xlsx or .csv, field "file").

    Always returns the full validation result. With ?commit=true a ready
    result is also written in one batch; any error blocks the whole file.
    """
    if "file" not in request.files:
        return {"error": "validation", "message": "file is required"}, 400

    file = request.files["file"]
    filename = file.filename or ""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    services = get_services()
    try:
        if ext == "csv":
            header, rows = read_csv_rows(file.stream)
        elif ext in {"xlsx", "xlsm"}:
            header, rows = read_workbook(file.stream)
        else:
            return {"error": "validation", "message": "Unsupported file format"}, 400

        result = services.importer.validate(header, rows)
        body = result.to_dict()
        if not flag(request.args.get("commit")):
            return body
        if not result.ready:
            return body, 400
        body["committed"] = services.importer.commit(result)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return body, 201

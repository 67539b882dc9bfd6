# backend/stocksync/routes/parties.py
"""Customers and suppliers. Both get a sequential displayId on creation."""
from flask import Blueprint, request

from ..container import get_services
from ..errors import StockSyncError
from . import collection_body, flag

parties_bp = Blueprint("parties", __name__, url_prefix="/api")


def _directory(kind: str):
    services = get_services()
    return services.customers if kind == "customers" else services.suppliers


@parties_bp.get("/<any(customers, suppliers):kind>")
def list_parties(kind: str):
    return collection_body(_directory(kind))


@parties_bp.get("/<any(customers, suppliers):kind>/<party_id>")
def get_party(kind: str, party_id: str):
    party = _directory(kind).find(party_id)
    if party is None:
        return {"error": "not_found", "message": f"{kind[:-1].capitalize()} not found"}, 404
    return {"party": party}


@parties_bp.post("/<any(customers, suppliers):kind>")
def create_party(kind: str):
    data = request.get_json(silent=True) or {}
    directory = _directory(kind)
    try:
        party_id = directory.create(data)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    created = directory.find(party_id) or {}
    return {"id": party_id, "displayId": created.get("displayId")}, 201


@parties_bp.put("/<any(customers, suppliers):kind>/<party_id>")
def update_party(kind: str, party_id: str):
    data = request.get_json(silent=True) or {}
    try:
        _directory(kind).update(party_id, data)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"id": party_id}


@parties_bp.delete("/<any(customers, suppliers):kind>/<party_id>")
def delete_party(kind: str, party_id: str):
    directory = _directory(kind)
    try:
        if not flag(request.args.get("confirm")):
            return {"confirmation": directory.request_delete(party_id).to_dict()}, 428
        directory.delete(party_id)
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return {"deleted": party_id}

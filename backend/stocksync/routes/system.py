# backend/stocksync/routes/system.py
"""
System health, connectivity and session endpoints.

The connectivity endpoints drive the ONLINE/OFFLINE switch every
collection sync listens to. Signing in starts every sync; signing out
stops them and clears in-memory state (cache partitions are kept).
"""

import time

from flask import Blueprint, current_app, request
from sqlalchemy import func, select

from ..container import get_services
from ..errors import StockSyncError
from ..extensions import db
from ..models import StoredDocument

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """Check the remote document store is reachable and count its documents."""
    start_time = time.time()
    try:
        document_count = db.session.execute(select(func.count(StoredDocument.id))).scalar_one()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"documents": document_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_cache_health() -> dict:
    start_time = time.time()
    try:
        partitions = get_services().cache.partitions()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"partitions": partitions},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Cache health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Cache error",
        }


@system_bp.get("/health")
def health():
    """
    Health of the document store, the local cache and every collection sync.

    Returns 503 when either database is unhealthy.
    """
    services = get_services()
    checks = {
        "database": check_database_health(),
        "cache": check_cache_health(),
    }
    overall = "healthy"
    if any(c["status"] == "unhealthy" for c in checks.values()):
        overall = "unhealthy"
    elif any(sync.error is not None for sync in services.collections()):
        overall = "degraded"

    body = {
        "status": overall,
        "checks": checks,
        "connectivity": services.connectivity.to_dict(),
        "collections": services.sync_status(),
    }
    return body, 503 if overall == "unhealthy" else 200


@system_bp.get("/connectivity")
def connectivity_status():
    return get_services().connectivity.to_dict()


@system_bp.post("/online")
def go_online():
    services = get_services()
    services.connectivity.go_online()
    return services.connectivity.to_dict()


@system_bp.post("/offline")
def go_offline():
    services = get_services()
    services.connectivity.go_offline()
    return services.connectivity.to_dict()


@system_bp.post("/session")
def sign_in():
    data = request.get_json(silent=True) or {}
    user_id = str(data.get("userId") or "").strip()
    if not user_id:
        return {"error": "validation", "message": "userId is required"}, 400

    services = get_services()
    try:
        services.connectivity.sign_in(user_id, data.get("displayName"))
    except StockSyncError as e:
        return e.to_dict(), e.http_status
    return services.connectivity.to_dict(), 201


@system_bp.delete("/session")
def sign_out():
    services = get_services()
    services.connectivity.sign_out()
    return services.connectivity.to_dict()

"""JSON blueprints. Shared response helpers live here."""

from ..services.sync_service import CollectionSync


def collection_body(sync: CollectionSync, items: list[dict] | None = None) -> dict:
    """Items plus load state for a synced collection."""
    return {
        "items": sync.all_items() if items is None else items,
        "is_loading": sync.is_loading,
        "error": sync.error.to_dict() if sync.error else None,
        "online": sync.connectivity.online,
    }


def flag(value) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")

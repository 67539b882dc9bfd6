# Overview: Product catalog, admin lookup lists and stock locations as synced collections.

from __future__ import annotations

import logging
import re

from ..errors import UniquenessConflict, ValidationError
from ..validation import EntitySchema, FieldSpec, validate_payload, validate_sku
from .cache_service import LOCATIONS_PARTITION, LOOKUPS_PARTITION, PRODUCTS_PARTITION
from .document_store import array_union
from .sync_service import CollectionSync, CrudCollectionSync

logger = logging.getLogger(__name__)


PRODUCTS_COLLECTION = "products"
LOOKUPS_COLLECTION = "lookups"
LOCATIONS_COLLECTION = "locations"

LOOKUPS_DOC_ID = "metadata"

PRODUCT_SCHEMA = EntitySchema(
    entity="product",
    fields=(
        FieldSpec("sku", required=True, max_length=64),
        FieldSpec("model", required=True, max_length=200),
        FieldSpec("brand", required=True, max_length=100),
        FieldSpec("category", required=True, max_length=100),
        FieldSpec("description", max_length=2000, default=""),
        FieldSpec("reorderPoint", kind="int", default=0),
        FieldSpec("isSerialized", kind="bool", default=False),
    ),
)


def product_display_name(product: dict) -> str:
    parts = [product.get("brand"), product.get("model")]
    name = " ".join(p for p in parts if p)
    return name or product.get("sku") or product.get("id") or "N/A"


class ProductCatalog(CrudCollectionSync):
    """
    Products, keyed by generated document id.

    SKU uniqueness is a case-insensitive scan of the loaded products. It is
    a best-effort check: two clients creating the same SKU at once both pass.
    """

    collection = PRODUCTS_COLLECTION
    cache_partition = PRODUCTS_PARTITION
    entity_label = "product"

    def find_by_sku(self, sku: str) -> dict | None:
        wanted = (sku or "").strip().lower()
        for product in self.items:
            if str(product.get("sku", "")).strip().lower() == wanted:
                return product
        return None

    def existing_skus(self) -> list[str]:
        return [str(p.get("sku")) for p in self.items if p.get("sku")]

    def _ensure_unique_sku(self, sku: str, *, exclude_id: str | None = None) -> None:
        existing = self.find_by_sku(sku)
        if existing is not None and existing.get("id") != exclude_id:
            logger.warning("Duplicate SKU rejected: %s", sku)
            raise UniquenessConflict(f"A product with SKU '{sku}' already exists.")

    def prepare_create(self, data: dict) -> dict:
        patch = validate_payload(schema=PRODUCT_SCHEMA, payload=data, partial=False)
        patch["sku"] = validate_sku(patch["sku"])
        self._ensure_unique_sku(patch["sku"])
        return patch

    def prepare_update(self, doc_id: str, data: dict) -> dict:
        patch = validate_payload(schema=PRODUCT_SCHEMA, payload=data, partial=True)
        if "sku" in patch:
            patch["sku"] = validate_sku(patch["sku"])
            self._ensure_unique_sku(patch["sku"], exclude_id=doc_id)
        return patch


def normalize_lookup_value(value: str) -> str:
    """Trim, then capitalise the first letter only."""
    text = str(value or "").strip()
    if not text:
        return ""
    return text[0].upper() + text[1:]


class LookupCatalog(CollectionSync):
    """
    Admin-extensible value lists (brands, categories, ...) held in the single
    "metadata" document of the lookups collection.

    lookups is that document without its id and without the legacy
    "locations" list (locations have their own collection).
    """

    collection = LOOKUPS_COLLECTION
    cache_partition = LOOKUPS_PARTITION

    def __init__(self, **kwargs):
        self.lookups: dict[str, list[str]] = {}
        super().__init__(**kwargs)

    def on_items_changed(self) -> None:
        metadata = next((d for d in self.items if d.get("id") == LOOKUPS_DOC_ID), None) or {}
        self.lookups = {
            key: list(value)
            for key, value in metadata.items()
            if key not in ("id", "locations") and isinstance(value, list)
        }

    def values(self, key: str) -> list[str]:
        return list(self.lookups.get(key, []))

    def add_lookup_item(self, key: str, value: str) -> str:
        self.connectivity.require_online("add lookup item")
        key = (key or "").strip()
        if not key or key in ("id", "locations"):
            raise ValidationError("A valid lookup list name is required.")
        item = str(value or "").strip()
        if not item:
            raise ValidationError(f"A value for {key} is required.")

        if any(existing.lower() == item.lower() for existing in self.lookups.get(key, [])):
            raise UniquenessConflict(f'{key} "{item}" already exists (case-insensitive match).')

        self.store.set(
            self.tenant_id,
            self.collection,
            LOOKUPS_DOC_ID,
            {key: array_union(item)},
            merge=True,
        )
        logger.info("Lookup value %r added to %s", item, key)
        return item


def sanitize_location_id(name: str) -> str:
    text = re.sub(r"\s+", "_", (name or "").lower())
    return re.sub(r"[^a-z0-9_-]", "", text)


class LocationRegistry(CrudCollectionSync):
    """Stock locations; the document id is the sanitised location name."""

    collection = LOCATIONS_COLLECTION
    cache_partition = LOCATIONS_PARTITION
    entity_label = "location"

    def on_items_changed(self) -> None:
        self.items = sorted(self.items, key=lambda loc: str(loc.get("id", "")))

    def add_location(self, data: dict) -> str:
        self.connectivity.require_online("add location")
        name = str((data or {}).get("name") or "").strip()
        if not name:
            raise ValidationError("Location name is required.")
        doc_id = sanitize_location_id(name)
        if not doc_id:
            raise ValidationError(f'Location name "{name}" has no usable characters.')

        if any(str(loc.get("name", "")).lower() == name.lower() for loc in self.items):
            raise UniquenessConflict(f'Location "{name}" already exists (case-insensitive match).')

        actor = self.connectivity.actor

        def _add(tx):
            if tx.get(self.collection, doc_id) is not None:
                raise UniquenessConflict(f'Location "{name}" already exists.')
            body = {k: v for k, v in data.items() if k not in ("id", "name")}
            body.update({"name": name, "createdBy": actor})
            tx.set(self.collection, doc_id, body)

        self.store.run_transaction(self.tenant_id, _add)
        logger.info("Location %s (%s) added", name, doc_id)
        return doc_id

    def create(self, data: dict) -> str:
        return self.add_location(data)

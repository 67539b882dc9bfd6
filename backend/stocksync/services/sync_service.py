# Overview: Live/cached read path for one remote collection plus connectivity-gated writes.

"""
Remote Collection Sync

One instance per entity collection. While online it holds a live
subscription on the tenant's collection; every snapshot replaces items and
overwrites the collection's cache partition. While offline it serves the
cached snapshot and rejects every mutation before touching any store.

CONNECTIVITY TRANSITIONS:
- signed in:  start() (subscribe when online, cache read when offline)
- offline -> online: cancel any stale subscription, subscribe again
- online -> offline: cancel the subscription, then read the cache
- signed out: cancel, clear in-memory state (the cache is kept)

Subscription.cancel() returns only after delivery to the subscription has
stopped, so a stale snapshot can never overwrite a cache value read after
going offline.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import asdict, dataclass

from ..errors import SubscriptionError
from ..time_utils import now_z
from .cache_service import LocalCache
from .connectivity import (
    EVENT_OFFLINE,
    EVENT_ONLINE,
    EVENT_SIGNED_IN,
    EVENT_SIGNED_OUT,
    ConnectivityContext,
)
from .document_store import DocumentStore, Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmationRequest:
    """Returned instead of deleting outright; the caller confirms and calls delete()."""
    action: str
    collection: str
    doc_id: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


class CollectionSync:
    """Read side of a synced collection. Subclasses set collection and cache_partition."""

    collection: str = ""
    cache_partition: str = ""

    def __init__(self, *, connectivity: ConnectivityContext, store: DocumentStore, cache: LocalCache):
        if not self.collection or not self.cache_partition:
            raise TypeError(f"{type(self).__name__} must define collection and cache_partition")
        self.connectivity = connectivity
        self.store = store
        self.cache = cache
        self.items: list[dict] = []
        self.is_loading = False
        self.error: SubscriptionError | None = None
        self._subscription: Subscription | None = None
        self._generation = 0
        # Shares the store's delivery lock so snapshots and cancels are ordered with it
        self._lock = store.delivery_lock
        self._remove_listener = connectivity.add_listener(self._on_connectivity)

    @property
    def tenant_id(self) -> str:
        return self.connectivity.tenant_id

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self) -> None:
        if not self.connectivity.session_ready:
            logger.debug("%s: session not ready, nothing to load", self.collection)
            return
        if self.connectivity.online:
            self.subscribe()
        else:
            self.load_cached()

    def subscribe(self) -> None:
        with self._lock:
            self._cancel_subscription()
            self._generation += 1
            generation = self._generation
            self.is_loading = True
            self.error = None

            def on_snapshot(snapshot: list[dict]) -> None:
                if generation != self._generation:
                    return
                self._apply_snapshot(snapshot)

            def on_error(error: SubscriptionError) -> None:
                if generation != self._generation:
                    return
                self._on_error(error)

            self._subscription = self.store.subscribe(
                self.tenant_id, self.collection, on_snapshot, on_error,
            )

    def _apply_snapshot(self, snapshot: list[dict]) -> None:
        with self._lock:
            self.items = snapshot
            self.cache.set(self.cache_partition, snapshot)
            self.is_loading = False
            self.on_items_changed()
        logger.info("ONLINE MODE: Synced %d %s and updated cache.", len(snapshot), self.collection)

    def _on_error(self, error: SubscriptionError) -> None:
        with self._lock:
            self.error = error
            self.is_loading = False
            self._subscription = None
        logger.error("Error fetching %s during ONLINE MODE: %s", self.collection, error.message)

    def load_cached(self) -> list[dict]:
        with self._lock:
            self.is_loading = True
            try:
                cached = self.cache.get(self.cache_partition)
            finally:
                self.is_loading = False
            self.items = list(cached or [])
            self.on_items_changed()
        logger.info("OFFLINE MODE: Loaded %d %s from local cache.", len(self.items), self.collection)
        return copy.deepcopy(self.items)

    def stop(self) -> None:
        with self._lock:
            self._cancel_subscription()
            self._generation += 1

    def close(self) -> None:
        self.stop()
        self._remove_listener()

    def _cancel_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
            logger.info("ONLINE MODE: %s listener unsubscribed.", self.collection)

    def _on_connectivity(self, event: str, ctx: ConnectivityContext) -> None:
        if event == EVENT_SIGNED_IN:
            self.start()
        elif event == EVENT_ONLINE:
            if ctx.session_ready:
                self.subscribe()
        elif event == EVENT_OFFLINE:
            self.stop()
            if ctx.session_ready:
                self.load_cached()
        elif event == EVENT_SIGNED_OUT:
            self.stop()
            with self._lock:
                self.items = []
                self.error = None
                self.is_loading = False
                self.on_items_changed()

    def on_items_changed(self) -> None:
        """Hook for subclasses keeping state derived from items."""

    def find(self, doc_id: str) -> dict | None:
        for item in self.items:
            if item.get("id") == doc_id:
                return item
        return None

    def all_items(self) -> list[dict]:
        return copy.deepcopy(self.items)


class CrudCollectionSync(CollectionSync):
    """
    Synced collection with create/update/delete.

    Writes go to the remote store only. items and the cache partition are
    updated by the snapshot that follows the write, never optimistically.
    """

    entity_label: str = "item"

    def prepare_create(self, data: dict) -> dict:
        return dict(data)

    def prepare_update(self, doc_id: str, data: dict) -> dict:
        return dict(data)

    def check_delete(self, doc_id: str) -> None:
        """Hook: raise to refuse a delete."""

    def create(self, data: dict) -> str:
        self.connectivity.require_online(f"create a new {self.entity_label}")
        payload = self.prepare_create(data)
        stamp = now_z()
        payload.setdefault("createdAt", stamp)
        payload["updatedAt"] = stamp
        doc_id = self.store.add(self.tenant_id, self.collection, payload)
        logger.info("%s %s created", self.entity_label.capitalize(), doc_id)
        return doc_id

    def update(self, doc_id: str, data: dict) -> None:
        self.connectivity.require_online(f"update {self.entity_label}")
        payload = self.prepare_update(doc_id, data)
        payload["updatedAt"] = now_z()
        self.store.update(self.tenant_id, self.collection, doc_id, payload)
        logger.info("%s %s updated", self.entity_label.capitalize(), doc_id)

    def request_delete(self, doc_id: str) -> ConfirmationRequest:
        self.connectivity.require_online(f"delete {self.entity_label}")
        self.check_delete(doc_id)
        return ConfirmationRequest(
            action="delete",
            collection=self.collection,
            doc_id=doc_id,
            message=f"Are you sure you want to delete this {self.entity_label}?",
        )

    def delete(self, doc_id: str) -> None:
        self.connectivity.require_online(f"delete {self.entity_label}")
        self.check_delete(doc_id)
        self.store.delete(self.tenant_id, self.collection, doc_id)
        logger.info("%s %s deleted", self.entity_label.capitalize(), doc_id)


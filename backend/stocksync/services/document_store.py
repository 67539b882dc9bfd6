# Overview: Tenant-scoped remote document store; CRUD, atomic batches, transactions and live snapshots.

"""
Remote Document Store

Collections of JSON documents namespaced by tenant, stored as
StoredDocument rows in the primary database.

GUARANTEES:
- Single-document writes commit on their own.
- WriteBatch.commit() applies every queued operation in one database
  transaction; either all of them become visible or none do.
- run_transaction() is a retried read-modify-write: rows read through the
  transaction are locked (where the backend supports it) and every write
  is version checked, so two callers can never both commit a decision
  based on the same read.
- Subscribers receive a full collection snapshot immediately and again
  after every commit touching that collection, in commit order.
  Subscription.cancel() is synchronous: once it returns, no further
  snapshot is delivered to that subscription.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Any, Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from ..errors import DocumentNotFoundError, SubscriptionError
from ..extensions import db
from ..models import StoredDocument
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


SnapshotCallback = Callable[[list[dict]], None]
ErrorCallback = Callable[[SubscriptionError], None]


class ArrayUnion:
    """Merge marker: append values to an array field, skipping ones already present."""

    def __init__(self, values: Iterable[Any]):
        self.values = list(values)

    def __repr__(self) -> str:
        return f"ArrayUnion({self.values!r})"


def array_union(*values: Any) -> ArrayUnion:
    return ArrayUnion(values)


def _resolve_value(existing: Any, new: Any) -> Any:
    if isinstance(new, ArrayUnion):
        merged = list(existing) if isinstance(existing, list) else []
        for value in new.values:
            if value not in merged:
                merged.append(value)
        return merged
    return new


def _merge_data(existing: dict | None, patch: dict) -> dict:
    merged = dict(existing or {})
    for key, value in patch.items():
        if key == "id":
            continue
        merged[key] = _resolve_value(merged.get(key), value)
    return merged


def new_document_id() -> str:
    return uuid.uuid4().hex


class Subscription:
    """Handle for a live collection listener. Cancel it explicitly."""

    def __init__(
        self,
        store: "DocumentStore",
        tenant_id: str,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None,
    ):
        self._store = store
        self.tenant_id = tenant_id
        self.collection = collection
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self.active = True
        self.delivered = 0

    def cancel(self) -> None:
        with self._store._publish_lock:
            if not self.active:
                return
            self.active = False
            self._store._detach(self)
        logger.debug("Subscription to %s/%s cancelled", self.tenant_id, self.collection)

    def _deliver(self, snapshot: list[dict]) -> None:
        try:
            self._on_snapshot(snapshot)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Snapshot handler for %s failed", self.collection)
            self._fail(SubscriptionError(f"Snapshot handler for {self.collection} failed: {exc}"))
            return
        self.delivered += 1

    def _fail(self, error: SubscriptionError) -> None:
        if not self.active:
            return
        self.active = False
        self._store._detach(self)
        if self._on_error is not None:
            self._on_error(error)


class _DocumentWriter:
    """Shared write primitives; all of them operate on the current db.session."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        self.touched: set[str] = set()

    def _load(self, collection: str, doc_id: str, *, lock: bool = False) -> StoredDocument | None:
        query = db.session.query(StoredDocument).filter_by(
            tenant_id=self.tenant_id,
            collection=collection,
            doc_id=doc_id,
        )
        if lock:
            query = lock_for_update(query)
        return query.first()

    def _set(self, collection: str, doc_id: str, data: dict, *, merge: bool = False) -> None:
        row = self._load(collection, doc_id)
        if row is None:
            row = StoredDocument(
                tenant_id=self.tenant_id,
                collection=collection,
                doc_id=doc_id,
                data=_merge_data(None, data),
            )
            db.session.add(row)
        elif merge:
            row.data = _merge_data(row.data, data)
        else:
            row.data = _merge_data(None, data)
        self.touched.add(collection)
        db.session.flush()

    def _update(self, collection: str, doc_id: str, data: dict) -> None:
        row = self._load(collection, doc_id)
        if row is None:
            raise DocumentNotFoundError(f"Document {collection}/{doc_id} not found")
        row.data = _merge_data(row.data, data)
        self.touched.add(collection)
        db.session.flush()

    def _delete(self, collection: str, doc_id: str) -> None:
        row = self._load(collection, doc_id)
        if row is None:
            raise DocumentNotFoundError(f"Document {collection}/{doc_id} not found")
        db.session.delete(row)
        self.touched.add(collection)
        db.session.flush()


class WriteBatch(_DocumentWriter):
    """
    Queue of writes committed atomically by commit().

    Nothing touches the database until commit(); a failure in any
    operation rolls back every operation of the batch.
    """

    def __init__(self, store: "DocumentStore", tenant_id: str):
        super().__init__(tenant_id)
        self._store = store
        self._ops: list[tuple[str, tuple, dict]] = []
        self.committed = False

    def __len__(self) -> int:
        return len(self._ops)

    def set(self, collection: str, doc_id: str, data: dict, *, merge: bool = False) -> "WriteBatch":
        self._ops.append(("set", (collection, doc_id, data), {"merge": merge}))
        return self

    def update(self, collection: str, doc_id: str, data: dict) -> "WriteBatch":
        self._ops.append(("update", (collection, doc_id, data), {}))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(("delete", (collection, doc_id), {}))
        return self

    def commit(self) -> None:
        if self.committed:
            raise RuntimeError("WriteBatch already committed")

        def _op() -> None:
            self.touched = set()
            for name, args, kwargs in self._ops:
                getattr(self, f"_{name}")(*args, **kwargs)
            db.session.commit()

        self._store._run_write(_op)
        self.committed = True
        logger.info("Batch of %d writes committed for tenant %s", len(self._ops), self.tenant_id)
        self._store._publish(self.tenant_id, self.touched)


class Transaction(_DocumentWriter):
    """Read-modify-write scope handed to run_transaction callbacks."""

    def get(self, collection: str, doc_id: str) -> dict | None:
        row = self._load(collection, doc_id, lock=True)
        if row is None:
            return None
        return copy.deepcopy(row.to_snapshot_entry())

    def set(self, collection: str, doc_id: str, data: dict, *, merge: bool = False) -> None:
        self._set(collection, doc_id, data, merge=merge)

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        self._update(collection, doc_id, data)

    def delete(self, collection: str, doc_id: str) -> None:
        self._delete(collection, doc_id)


class DocumentStore:
    """Remote store facade. One instance is shared by every sync service."""

    def __init__(self, *, retry_attempts: int = 3, backoff_base: float = 0.05):
        self.retry_attempts = retry_attempts
        self.backoff_base = backoff_base
        self._publish_lock = threading.RLock()
        self._subscriptions: dict[tuple[str, str], list[Subscription]] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self, tenant_id: str, collection: str) -> list[dict]:
        rows = (
            db.session.query(StoredDocument)
            .filter_by(tenant_id=tenant_id, collection=collection)
            .order_by(StoredDocument.id.asc())
            .all()
        )
        return [row.to_snapshot_entry() for row in rows]

    def get(self, tenant_id: str, collection: str, doc_id: str) -> dict | None:
        row = _DocumentWriter(tenant_id)._load(collection, doc_id)
        return copy.deepcopy(row.to_snapshot_entry()) if row else None

    # ------------------------------------------------------------------
    # Single-document writes
    # ------------------------------------------------------------------

    def add(self, tenant_id: str, collection: str, data: dict, *, doc_id: str | None = None) -> str:
        doc_id = doc_id or new_document_id()
        self.set(tenant_id, collection, doc_id, data)
        return doc_id

    def set(self, tenant_id: str, collection: str, doc_id: str, data: dict, *, merge: bool = False) -> None:
        writer = _DocumentWriter(tenant_id)

        def _op() -> None:
            writer._set(collection, doc_id, data, merge=merge)
            db.session.commit()

        self._run_write(_op)
        self._publish(tenant_id, {collection})

    def update(self, tenant_id: str, collection: str, doc_id: str, data: dict) -> None:
        writer = _DocumentWriter(tenant_id)

        def _op() -> None:
            writer._update(collection, doc_id, data)
            db.session.commit()

        self._run_write(_op)
        self._publish(tenant_id, {collection})

    def delete(self, tenant_id: str, collection: str, doc_id: str) -> None:
        writer = _DocumentWriter(tenant_id)

        def _op() -> None:
            writer._delete(collection, doc_id)
            db.session.commit()

        self._run_write(_op)
        self._publish(tenant_id, {collection})

    # ------------------------------------------------------------------
    # Multi-document atomic work
    # ------------------------------------------------------------------

    def batch(self, tenant_id: str) -> WriteBatch:
        return WriteBatch(self, tenant_id)

    def run_transaction(self, tenant_id: str, fn: Callable[[Transaction], Any]) -> Any:
        """
        Run fn(tx) as one atomic read-modify-write and commit it.

        fn may be called more than once (conflicts are retried), so it must
        derive everything it writes from what it reads through tx.
        """
        touched: set[str] = set()

        def _op():
            tx = Transaction(tenant_id)
            result = fn(tx)
            db.session.commit()
            touched.clear()
            touched.update(tx.touched)
            return result

        result = self._run_write(_op)
        self._publish(tenant_id, touched)
        return result

    def _run_write(self, op: Callable[[], Any]) -> Any:
        try:
            return run_with_retry(op, attempts=self.retry_attempts, backoff_base=self.backoff_base)
        except Exception:
            db.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Live snapshots
    # ------------------------------------------------------------------

    def subscribe(
        self,
        tenant_id: str,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        sub = Subscription(self, tenant_id, collection, on_snapshot, on_error)
        with self._publish_lock:
            self._subscriptions.setdefault((tenant_id, collection), []).append(sub)
            self._deliver_to(tenant_id, collection, [sub])
        return sub

    @property
    def delivery_lock(self) -> threading.RLock:
        return self._publish_lock

    def subscriber_count(self, tenant_id: str, collection: str) -> int:
        with self._publish_lock:
            return len(self._subscriptions.get((tenant_id, collection), ()))

    def _detach(self, sub: Subscription) -> None:
        subs = self._subscriptions.get((sub.tenant_id, sub.collection))
        if subs and sub in subs:
            subs.remove(sub)

    def _publish(self, tenant_id: str, collections: Iterable[str]) -> None:
        with self._publish_lock:
            for collection in sorted(collections):
                subs = list(self._subscriptions.get((tenant_id, collection), ()))
                if subs:
                    self._deliver_to(tenant_id, collection, subs)

    def _deliver_to(self, tenant_id: str, collection: str, subs: list[Subscription]) -> None:
        try:
            snapshot = self.snapshot(tenant_id, collection)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Reading snapshot of %s/%s failed", tenant_id, collection)
            error = SubscriptionError(f"Listener for {collection} failed: {exc.__class__.__name__}")
            for sub in subs:
                sub._fail(error)
            return
        for sub in subs:
            if sub.active:
                sub._deliver(copy.deepcopy(snapshot))

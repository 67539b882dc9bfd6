"""Remote document store: merges, atomic batches, transactions and live snapshots."""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from stocksync.errors import DocumentNotFoundError
from stocksync.services.concurrency import backoff_delay, run_with_retry
from stocksync.services.document_store import DocumentStore, array_union

TENANT = "tenant-a"


@pytest.fixture
def store(db_session):
    return DocumentStore(retry_attempts=3, backoff_base=0)


class TestWrites:
    def test_add_get_update(self, store):
        doc_id = store.add(TENANT, "things", {"name": "a", "tags": ["x"]})
        store.update(TENANT, "things", doc_id, {"name": "b"})
        assert store.get(TENANT, "things", doc_id) == {"id": doc_id, "name": "b", "tags": ["x"]}

    def test_set_merge_with_array_union(self, store):
        store.set(TENANT, "lookups", "metadata", {"brands": ["Acme"]})
        store.set(TENANT, "lookups", "metadata", {"brands": array_union("Acme", "Zeta")}, merge=True)
        store.set(TENANT, "lookups", "metadata", {"categories": array_union("Phones")}, merge=True)
        assert store.get(TENANT, "lookups", "metadata") == {
            "id": "metadata", "brands": ["Acme", "Zeta"], "categories": ["Phones"],
        }

    def test_set_without_merge_replaces(self, store):
        store.set(TENANT, "things", "t1", {"a": 1, "b": 2})
        store.set(TENANT, "things", "t1", {"a": 3})
        assert store.get(TENANT, "things", "t1") == {"id": "t1", "a": 3}

    def test_update_missing_document(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.update(TENANT, "things", "nope", {"a": 1})

    def test_tenants_are_isolated(self, store):
        store.set(TENANT, "things", "t1", {"a": 1})
        assert store.get("tenant-b", "things", "t1") is None
        assert store.snapshot("tenant-b", "things") == []


class TestAtomicity:
    def test_batch_is_all_or_nothing(self, store):
        batch = store.batch(TENANT)
        batch.set("things", "t1", {"a": 1})
        batch.update("things", "missing", {"a": 2})
        with pytest.raises(DocumentNotFoundError):
            batch.commit()
        assert store.snapshot(TENANT, "things") == []

    def test_transaction_rolls_back_on_error(self, store):
        store.set(TENANT, "things", "t1", {"count": 1})

        def bump_then_fail(tx):
            doc = tx.get("things", "t1")
            tx.update("things", "t1", {"count": doc["count"] + 1})
            tx.set("things", "t2", {"count": 0})
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            store.run_transaction(TENANT, bump_then_fail)
        assert store.snapshot(TENANT, "things") == [{"id": "t1", "count": 1}]

    def test_run_with_retry_retries_conflicts(self, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_with_retry(flaky, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_run_with_retry_gives_up(self, db_session):
        def always_stale():
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(always_stale, attempts=2, backoff_base=0)

    def test_backoff_doubles(self):
        assert [backoff_delay(n, 0.05) for n in range(3)] == [0.05, 0.1, 0.2]


class TestSubscriptions:
    def test_initial_and_ordered_snapshots(self, store):
        seen = []
        store.subscribe(TENANT, "things", lambda snap: seen.append([d["id"] for d in snap]))
        store.set(TENANT, "things", "t1", {})
        store.set(TENANT, "things", "t2", {})
        store.set(TENANT, "other", "o1", {})
        assert seen == [[], ["t1"], ["t1", "t2"]]

    def test_cancel_stops_delivery(self, store):
        seen = []
        sub = store.subscribe(TENANT, "things", lambda snap: seen.append(len(snap)))
        sub.cancel()
        store.set(TENANT, "things", "t1", {})
        assert seen == [0]
        assert store.subscriber_count(TENANT, "things") == 0

    def test_batch_publishes_once_per_collection(self, store):
        seen = []
        store.subscribe(TENANT, "things", lambda snap: seen.append(len(snap)))
        batch = store.batch(TENANT)
        batch.set("things", "t1", {}).set("things", "t2", {})
        batch.commit()
        assert seen == [0, 2]

    def test_snapshots_are_copies(self, store):
        snaps = []
        store.subscribe(TENANT, "things", snaps.append)
        store.set(TENANT, "things", "t1", {"tags": ["a"]})
        snaps[-1][0]["tags"].append("mutated")
        assert store.get(TENANT, "things", "t1")["tags"] == ["a"]

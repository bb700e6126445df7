"""Unit tests for doccatalog.engine.subscriptions — live collection subscriber."""

from unittest.mock import MagicMock

import pytest

from doccatalog.documents.models import Category, Document, SortBy
from doccatalog.engine.errors import SubscriptionError
from doccatalog.engine.subscriptions import LiveCollectionSubscriber, Subscription, parse_snapshot
from doccatalog.store.base import DocumentQuery
from doccatalog.store.memory import MemoryCatalogStore


class TestParseSnapshot:
    def test_parses_models(self, seed_records):
        snapshot = parse_snapshot("categories", seed_records["categories"])
        assert all(isinstance(c, Category) for c in snapshot)
        assert len(snapshot) == 3

    def test_drops_invalid_records(self):
        snapshot = parse_snapshot("categories", [{"id": "c1"}, {"id": "c2", "nameKey": "ok"}])
        assert [c.id for c in snapshot] == ["c2"]


class TestLiveCollectionSubscriber:
    def setup_method(self):
        self.received = []
        self.errors = []

    def test_immediate_snapshot(self, store):
        sub = LiveCollectionSubscriber(store).subscribe("tags", self.received.append, self.errors.append)
        assert len(self.received) == 1
        assert {t.id for t in self.received[0]} == {"t1", "t2", "t3"}
        assert sub.snapshot_count == 1
        sub.dispose()

    def test_push_on_change(self, store):
        sub = LiveCollectionSubscriber(store).subscribe("tags", self.received.append)
        store.create_tag({"id": "t9", "name": "New"})
        assert len(self.received) == 2
        assert any(t.id == "t9" for t in self.received[-1])
        sub.dispose()

    def test_documents_query(self, store):
        query = DocumentQuery(category_key="categories.safety", sort_by=SortBy.RECENT)
        sub = LiveCollectionSubscriber(store).subscribe("documents", self.received.append, query=query)
        assert [d.id for d in self.received[0]] == ["d3", "d5"]
        assert all(isinstance(d, Document) for d in self.received[0])
        sub.dispose()

    def test_unknown_collection(self, store):
        with pytest.raises(ValueError):
            LiveCollectionSubscriber(store).subscribe("users", self.received.append)

    def test_dispose_is_idempotent(self, store):
        sub = LiveCollectionSubscriber(store).subscribe("tags", self.received.append)
        assert store.listener_count("tags") == 1
        sub.dispose()
        sub.dispose()
        sub()
        assert store.listener_count("tags") == 0
        assert not sub.active

    def test_no_delivery_after_dispose(self, store):
        sub = LiveCollectionSubscriber(store).subscribe("tags", self.received.append)
        sub.dispose()
        store.create_tag({"id": "t9", "name": "New"})
        assert len(self.received) == 1

    def test_context_manager(self, store):
        with LiveCollectionSubscriber(store).subscribe("tags", self.received.append) as sub:
            assert sub.active
        assert not sub.active
        assert store.listener_count() == 0

    def test_error_reported_once(self, store):
        sub = LiveCollectionSubscriber(store).subscribe(
            "documents", self.received.append, self.errors.append, generation=4
        )
        store.fail_stream("documents", RuntimeError("permission denied"))
        assert len(self.errors) == 1
        err = self.errors[0]
        assert isinstance(err, SubscriptionError)
        assert err.kind == "documents"
        assert err.generation == 4
        assert isinstance(err.cause, RuntimeError)
        assert sub.failed
        # Failed streams stay failed
        store.create_document({"title": "late"})
        assert len(self.received) == 1
        sub.dispose()

    def test_deferred_push_dropped_after_dispose(self):
        store = MemoryCatalogStore(deferred=True)
        store.seed(tags=[{"id": "t1", "name": "A"}])
        sub = LiveCollectionSubscriber(store).subscribe("tags", self.received.append)
        sub.dispose()
        assert store.flush() == 1
        assert self.received == []

    def test_store_disposer_called_when_disposed_during_subscribe(self):
        store = MagicMock()
        store_disposer = MagicMock()
        holder = {}

        def fake_subscribe(kind, on_data, on_error, query=None):
            # Handle is disposed before the store returns its disposer
            holder["sub"].dispose()
            return store_disposer

        store.subscribe.side_effect = fake_subscribe
        subscriber = LiveCollectionSubscriber(store)
        original = Subscription.__init__

        def capture(self, kind, generation=None):
            original(self, kind, generation)
            holder["sub"] = self

        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(Subscription, "__init__", capture)
            subscriber.subscribe("tags", self.received.append)
        store_disposer.assert_called_once()

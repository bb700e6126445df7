"""Unit tests for doccatalog.documents.query — the documents subscription slot."""

from unittest.mock import MagicMock

import pytest

from doccatalog.documents.models import Document, SortBy
from doccatalog.documents.query import DocumentQueryCoordinator, make_query
from doccatalog.engine.errors import SubscriptionError
from doccatalog.engine.subscriptions import LiveCollectionSubscriber
from doccatalog.store.memory import MemoryCatalogStore


class RecordingSubscriber:
    """Subscriber stub whose handles never stop callbacks (in-flight pushes)."""

    def __init__(self):
        self.calls = []

    def subscribe(self, kind, on_snapshot, on_error=None, query=None, generation=None):
        handle = MagicMock()
        handle.active = True
        self.calls.append({
            "query": query,
            "generation": generation,
            "on_data": on_snapshot,
            "on_error": on_error,
            "handle": handle,
        })
        return handle


def test_make_query_all_is_unrestricted():
    assert make_query("all", SortBy.RECENT, 100).category_key is None
    assert make_query(None, SortBy.ALPHA, 50).limit == 50
    assert make_query("docs", "recent", 10).restricts_category


class TestCoordinatorGenerations:
    def setup_method(self):
        self.subscriber = RecordingSubscriber()
        self.coordinator = DocumentQueryCoordinator(self.subscriber, limit=100)

    def test_stale_snapshot_never_reaches_window(self):
        self.coordinator.configure("categories.a", SortBy.RECENT)
        first = self.subscriber.calls[0]
        self.coordinator.configure("categories.b", SortBy.RECENT)
        second = self.subscriber.calls[1]

        first["handle"].dispose.assert_called_once()
        assert second["generation"] == first["generation"] + 1

        # Late push queried under category A
        first["on_data"]((Document(id="from-a", category_key="categories.a"),))
        assert self.coordinator.window == ()
        assert self.coordinator.loading
        assert self.coordinator.discarded_callbacks == 1

        second["on_data"]((Document(id="from-b", category_key="categories.b"),))
        assert [d.id for d in self.coordinator.window] == ["from-b"]
        assert not self.coordinator.loading

    def test_stale_error_ignored(self):
        self.coordinator.configure("a", SortBy.RECENT)
        first = self.subscriber.calls[0]
        self.coordinator.configure("b", SortBy.RECENT)
        first["on_error"](SubscriptionError("late", kind="documents"))
        assert self.coordinator.error is None
        assert self.coordinator.loading

    def test_unchanged_configuration_keeps_subscription(self):
        assert self.coordinator.configure("a", SortBy.RECENT)
        assert not self.coordinator.configure("a", SortBy.RECENT)
        assert len(self.subscriber.calls) == 1

    def test_sort_change_resubscribes(self):
        self.coordinator.configure("a", SortBy.RECENT)
        self.coordinator.configure("a", SortBy.ALPHA)
        assert len(self.subscriber.calls) == 2
        assert self.subscriber.calls[1]["query"].sort_by == SortBy.ALPHA

    def test_error_surfaces_empty_window(self):
        self.coordinator.configure("a", SortBy.RECENT)
        call = self.subscriber.calls[0]
        call["on_data"]((Document(id="d1"),))
        call["on_error"](SubscriptionError("boom", kind="documents"))
        assert self.coordinator.window == ()
        assert not self.coordinator.loading
        assert isinstance(self.coordinator.error, SubscriptionError)

    def test_close_disposes_and_invalidates(self):
        self.coordinator.configure("a", SortBy.RECENT)
        call = self.subscriber.calls[0]
        self.coordinator.close()
        self.coordinator.close()
        call["handle"].dispose.assert_called_once()
        call["on_data"]((Document(id="late"),))
        assert self.coordinator.window == ()
        with pytest.raises(RuntimeError):
            self.coordinator.configure("a", SortBy.RECENT)

    def test_listeners_notified(self):
        seen = []
        remove = self.coordinator.add_listener(lambda c: seen.append((c.loading, len(c.window))))
        self.coordinator.configure("a", SortBy.RECENT)
        self.subscriber.calls[0]["on_data"]((Document(id="d1"),))
        assert seen == [(True, 0), (False, 1)]
        remove()
        self.coordinator.configure("b", SortBy.RECENT)
        assert len(seen) == 2


class TestCoordinatorWithStore:
    def test_window_capped_at_limit(self, many_documents_store):
        coordinator = DocumentQueryCoordinator(LiveCollectionSubscriber(many_documents_store), limit=10)
        coordinator.configure(None, SortBy.RECENT)
        assert len(coordinator.window) == 10
        # Newest first from the source
        assert coordinator.window[0].id == "d24"
        coordinator.close()
        assert many_documents_store.listener_count() == 0

    def test_single_live_subscription(self, store):
        coordinator = DocumentQueryCoordinator(LiveCollectionSubscriber(store))
        coordinator.configure("categories.safety", SortBy.RECENT)
        coordinator.configure("categories.armoplit", SortBy.RECENT)
        coordinator.configure(None, SortBy.ALPHA)
        assert store.listener_count("documents") == 1
        coordinator.close()

    def test_deferred_push_from_previous_category_discarded(self, seed_records):
        store = MemoryCatalogStore(deferred=True)
        store.seed(**seed_records)
        store.flush()
        coordinator = DocumentQueryCoordinator(LiveCollectionSubscriber(store))

        coordinator.configure("categories.safety", SortBy.RECENT)
        coordinator.configure("categories.armoplit", SortBy.RECENT)
        assert store.pending_count == 2

        store.flush()
        assert [d.id for d in coordinator.window] == ["d1"]
        assert not coordinator.loading

    def test_live_update_pushes_new_window(self, store):
        coordinator = DocumentQueryCoordinator(LiveCollectionSubscriber(store))
        coordinator.configure("categories.armoplit", SortBy.RECENT)
        store.create_document({"id": "d9", "categoryKey": "categories.armoplit", "title": "New"})
        assert [d.id for d in coordinator.window] == ["d9", "d1"]

    def test_refresh_recovers_after_error(self, store):
        coordinator = DocumentQueryCoordinator(LiveCollectionSubscriber(store))
        coordinator.configure(None, SortBy.RECENT)
        generation = coordinator.generation
        store.fail_stream("documents")
        assert coordinator.error is not None
        coordinator.refresh()
        assert coordinator.generation == generation + 1
        assert coordinator.error is None
        assert len(coordinator.window) == 5

    def test_subscribe_filtered_one_shot(self, store):
        coordinator = DocumentQueryCoordinator(LiveCollectionSubscriber(store))
        received, errors = [], []
        sub = coordinator.subscribe_filtered(make_query("categories.hr", SortBy.RECENT, 100),
                                             received.append, errors.append)
        assert [d.id for d in received[0]] == ["d4"]
        store.fail_stream("documents")
        store.fail_stream("documents")
        assert len(errors) == 1
        sub.dispose()

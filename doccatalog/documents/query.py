"""
doccatalog Document Query Coordinator — one server-filtered document stream per
(category, sort) configuration.

The coordinator owns a single subscription slot. Changing the category or
sort tears the old subscription down and opens a new one. Every acquisition
captures a generation number; a callback carrying an older generation is
dropped before it can touch the window, so a late push from category A can
never overwrite results already requested for category B.

The window is capped at ``limit`` documents. Anything beyond the cap is
invisible downstream, whatever the viewer's role or the client-side sort.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from doccatalog.documents.models import Document, SortBy
from doccatalog.engine.errors import SubscriptionError
from doccatalog.engine.subscriptions import LiveCollectionSubscriber, Subscription
from doccatalog.store.base import ALL_CATEGORIES, COLLECTION_DOCUMENTS, DocumentQuery

logger = logging.getLogger("doccatalog.documents.query")

WindowListener = Callable[["DocumentQueryCoordinator"], None]


def make_query(category_key: Optional[str], sort_by: SortBy, limit: int) -> DocumentQuery:
    """Build a DocumentQuery; None and "all" both mean unrestricted."""
    if not category_key or category_key == ALL_CATEGORIES:
        category_key = None
    return DocumentQuery(category_key=category_key, sort_by=SortBy(sort_by), limit=limit)


class DocumentQueryCoordinator:
    """
    Manages the filtered-documents subscription slot.

    State exposed to the controller:
        window      — documents of the current generation (tuple, replaced wholesale)
        loading     — True until the current generation delivers or fails
        error       — SubscriptionError of the current generation, if any
        generation  — current generation number (0 before the first configure)
    """

    def __init__(self, subscriber: LiveCollectionSubscriber, limit: int = 100):
        self._subscriber = subscriber
        self._limit = limit
        self._generation = 0
        self._subscription: Optional[Subscription] = None
        self._query: Optional[DocumentQuery] = None
        self._listeners: List[WindowListener] = []
        self._closed = False

        self.window: Tuple[Document, ...] = ()
        self.loading = False
        self.error: Optional[SubscriptionError] = None
        self.discarded_callbacks = 0

    # ── One-shot API ──

    def subscribe_filtered(
        self,
        query: DocumentQuery,
        on_data: Callable[[Tuple[Document, ...]], None],
        on_error: Callable[[SubscriptionError], None],
    ) -> Subscription:
        """
        Open an independent filtered stream (does not touch the managed slot).

        On error ``on_error`` is called exactly once and nothing further is
        delivered; subscribe again to recover.
        """
        return self._subscriber.subscribe(COLLECTION_DOCUMENTS, on_data, on_error, query=query)

    # ── Managed slot ──

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def query(self) -> Optional[DocumentQuery]:
        return self._query

    @property
    def limit(self) -> int:
        return self._limit

    def add_listener(self, listener: WindowListener) -> Callable[[], None]:
        """Register a callback fired whenever window/loading/error change."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def configure(self, category_key: Optional[str], sort_by: SortBy) -> bool:
        """
        Point the slot at (category_key, sort_by).

        Returns True when a new subscription was opened, False when the
        configuration was unchanged and the live subscription was kept.
        """
        if self._closed:
            raise RuntimeError("DocumentQueryCoordinator is closed")

        query = make_query(category_key, sort_by, self._limit)
        if query == self._query and self._subscription is not None and self._subscription.active:
            return False

        # Tear down first; the generation bump below makes any straggler inert
        self._release()
        self._generation += 1
        generation = self._generation
        self._query = query
        self.window = ()
        self.error = None
        self.loading = True
        logger.debug(f"Opening documents stream generation={generation} query={query.to_dict()}")

        def on_data(snapshot: Tuple[Document, ...]) -> None:
            if generation != self._generation:
                self.discarded_callbacks += 1
                logger.debug(f"Discarding stale snapshot (generation {generation} < {self._generation})")
                return
            self.window = snapshot
            self.loading = False
            self.error = None
            self._emit()

        def on_error(error: SubscriptionError) -> None:
            if generation != self._generation:
                self.discarded_callbacks += 1
                return
            self.window = ()
            self.loading = False
            self.error = error
            self._emit()

        subscription = self._subscriber.subscribe(
            COLLECTION_DOCUMENTS,
            on_data,
            on_error,
            query=query,
            generation=generation,
        )
        # A synchronous first push has already been applied by now
        if generation == self._generation:
            self._subscription = subscription
        else:
            subscription.dispose()
        self._emit()
        return True

    def refresh(self) -> None:
        """Force a new subscription with the current configuration (error recovery)."""
        if self._query is None:
            return
        query = self._query
        self._release()
        self._query = None
        self.configure(query.category_key, query.sort_by)

    def _release(self) -> None:
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            subscription.dispose()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def close(self) -> None:
        """Dispose the slot. Further callbacks are ignored."""
        if self._closed:
            return
        self._closed = True
        self._release()
        # Invalidate any callback still in flight
        self._generation += 1
        self._listeners.clear()

    @property
    def closed(self) -> bool:
        return self._closed

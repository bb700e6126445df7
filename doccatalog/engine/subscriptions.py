"""
doccatalog Live Collection Subscriber — push-based mirror of a remote collection.

Wraps a CatalogStore subscription and adds the guarantees the rest of the
catalog relies on:

- every push is a full snapshot, parsed into frozen models
- ``Subscription.dispose()`` is idempotent, and no snapshot is delivered
  after it returns
- a stream error is reported once (as SubscriptionError) and the
  subscription stops delivering; recovery means subscribing again
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from doccatalog.documents.models import Category, Document, Tag
from doccatalog.engine.errors import SubscriptionError
from doccatalog.engine.logging import log, log_subscription_event
from doccatalog.store.base import (
    COLLECTION_CATEGORIES,
    COLLECTION_DOCUMENTS,
    COLLECTION_TAGS,
    CatalogStore,
    DocumentQuery,
    RawRecord,
)

logger = logging.getLogger("doccatalog.engine.subscriptions")

MODEL_FOR_COLLECTION: Dict[str, Type[BaseModel]] = {
    COLLECTION_CATEGORIES: Category,
    COLLECTION_TAGS: Tag,
    COLLECTION_DOCUMENTS: Document,
}

SnapshotCallback = Callable[[Tuple[Any, ...]], None]
ErrorCallback = Callable[[SubscriptionError], None]


def parse_snapshot(kind: str, records: List[RawRecord]) -> Tuple[Any, ...]:
    """
    Parse raw store records into models.
    Records that fail validation are dropped, never passed through.
    """
    model = MODEL_FOR_COLLECTION[kind]
    parsed = []
    for record in records:
        try:
            parsed.append(model.model_validate(record))
        except ValidationError as e:
            record_id = record.get("id") if isinstance(record, dict) else None
            logger.warning(f"Dropping malformed {kind} record {record_id!r}: {e.error_count()} error(s)")
    return tuple(parsed)


class Subscription:
    """
    Handle for one live subscription. Call (or ``dispose()``) to release.

    Usable as a context manager.
    """

    def __init__(self, kind: str, generation: Optional[int] = None):
        self.kind = kind
        self.generation = generation
        self._store_disposer: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()
        self._active = True
        self._failed = False
        self.snapshot_count = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def failed(self) -> bool:
        return self._failed

    def _attach(self, store_disposer: Callable[[], None]) -> None:
        with self._lock:
            if self._active:
                self._store_disposer = store_disposer
                return
        # Disposed (or failed) while the store was still subscribing
        store_disposer()

    def _accepts(self) -> bool:
        return self._active and not self._failed

    def _fail(self) -> bool:
        """Mark failed. Returns True only for the first failure of a live subscription."""
        with self._lock:
            if not self._active or self._failed:
                return False
            self._failed = True
            return True

    def dispose(self) -> None:
        """Release the store subscription. Safe to call more than once."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            disposer, self._store_disposer = self._store_disposer, None
        if disposer is not None:
            disposer()
        log(log_subscription_event("disposed", self.kind, generation=self.generation))
        logger.debug(f"Disposed {self.kind} subscription (generation={self.generation})")

    __call__ = dispose

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()


class LiveCollectionSubscriber:
    """Opens Subscriptions on a CatalogStore."""

    def __init__(self, store: CatalogStore):
        self._store = store

    @property
    def store(self) -> CatalogStore:
        return self._store

    def subscribe(
        self,
        kind: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        query: Optional[DocumentQuery] = None,
        generation: Optional[int] = None,
    ) -> Subscription:
        """
        Subscribe to a collection.

        Args:
            kind: "categories", "tags" or "documents".
            on_snapshot: Called with the full parsed snapshot on every change.
            on_error: Called once with a SubscriptionError if the stream fails.
            query: Document query (documents only).
            generation: Token recorded on the handle and in logs.

        Returns:
            Subscription handle.
        """
        if kind not in MODEL_FOR_COLLECTION:
            raise ValueError(f"Unknown collection '{kind}'")

        subscription = Subscription(kind, generation)
        query_info = query.to_dict() if query is not None else None

        def handle_data(records: List[RawRecord]) -> None:
            if not subscription._accepts():
                return
            snapshot = parse_snapshot(kind, records)
            subscription.snapshot_count += 1
            on_snapshot(snapshot)

        def handle_error(exc: BaseException) -> None:
            if not subscription._fail():
                return
            error = SubscriptionError(
                f"{kind} stream failed: {exc}",
                kind=kind,
                generation=generation,
                cause=exc,
            )
            logger.error(f"{kind} subscription failed (generation={generation}): {exc}")
            log(log_subscription_event("failed", kind, generation=generation, query=query_info, error=str(exc)))
            if on_error is not None:
                on_error(error)

        store_disposer = self._store.subscribe(kind, handle_data, handle_error, query=query)
        subscription._attach(store_disposer)
        log(log_subscription_event("opened", kind, generation=generation, query=query_info))
        return subscription

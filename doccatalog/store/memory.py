"""
doccatalog In-Memory Store — dict-backed CatalogStore with synchronous pushes.

Used by the test suite and by the CLI when browsing a YAML seed file.

Extras beyond the CatalogStore contract:
- ``deferred=True`` queues pushes until ``flush()`` (simulates callbacks
  still in flight when a subscription is replaced)
- ``fail_stream(kind)`` errors every live listener of a collection
- ``fail_writes(exc)`` makes subsequent writes raise *exc*
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from doccatalog.documents.models import SortBy, normalize_category_key
from doccatalog.store.base import (
    COLLECTION_CATEGORIES,
    COLLECTION_DOCUMENTS,
    COLLECTION_TAGS,
    COLLECTIONS,
    CatalogStore,
    Disposer,
    DocumentQuery,
    OnData,
    OnError,
    RawRecord,
    new_document_id,
    source_sort_key,
    strip_none,
)

logger = logging.getLogger("doccatalog.store.memory")


@dataclass
class _Listener:
    kind: str
    on_data: OnData
    on_error: Optional[OnError]
    query: Optional[DocumentQuery] = None


class MemoryCatalogStore(CatalogStore):
    """Thread-safe in-memory catalog."""

    def __init__(self, deferred: bool = False):
        self._records: Dict[str, Dict[str, RawRecord]] = {kind: {} for kind in COLLECTIONS}
        self._listeners: Dict[int, _Listener] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self._deferred = deferred
        self._pending: List[Tuple[int, Callable[[], None]]] = []
        self._write_failure: Optional[BaseException] = None

    # ── Seeding ──

    def seed(
        self,
        categories: Optional[List[RawRecord]] = None,
        tags: Optional[List[RawRecord]] = None,
        documents: Optional[List[RawRecord]] = None,
    ) -> None:
        """Bulk-load raw records (ids required) and notify listeners once per collection."""
        for kind, records in (
            (COLLECTION_CATEGORIES, categories),
            (COLLECTION_TAGS, tags),
            (COLLECTION_DOCUMENTS, documents),
        ):
            if not records:
                continue
            with self._lock:
                for record in records:
                    record = strip_none(dict(record))
                    self._records[kind][str(record["id"])] = record
            self._notify(kind)

    @classmethod
    def from_yaml(cls, path: str) -> "MemoryCatalogStore":
        """Build a store from a YAML file with categories/tags/documents lists."""
        with open(Path(path), "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        store = cls()
        store.seed(
            categories=raw.get("categories") or [],
            tags=raw.get("tags") or [],
            documents=raw.get("documents") or [],
        )
        return store

    # ── Subscriptions ──

    def subscribe_all_categories(self, on_data: OnData, on_error: Optional[OnError] = None) -> Disposer:
        return self._listen(_Listener(COLLECTION_CATEGORIES, on_data, on_error))

    def subscribe_all_tags(self, on_data: OnData, on_error: Optional[OnError] = None) -> Disposer:
        return self._listen(_Listener(COLLECTION_TAGS, on_data, on_error))

    def subscribe_filtered_documents(
        self,
        query: DocumentQuery,
        on_data: OnData,
        on_error: Optional[OnError] = None,
    ) -> Disposer:
        return self._listen(_Listener(COLLECTION_DOCUMENTS, on_data, on_error, query))

    def _listen(self, listener: _Listener) -> Disposer:
        with self._lock:
            listener_id = next(self._ids)
            self._listeners[listener_id] = listener
        self._deliver(listener_id, listener)

        def dispose() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        return dispose

    def _snapshot(self, listener: _Listener) -> List[RawRecord]:
        with self._lock:
            records = [copy.deepcopy(r) for r in self._records[listener.kind].values()]
        if listener.kind != COLLECTION_DOCUMENTS:
            return records

        query = listener.query or DocumentQuery()
        wanted = query.normalized_category
        if wanted is not None:
            records = [r for r in records if normalize_category_key(r.get("categoryKey")) == wanted]
        if SortBy(query.sort_by) == SortBy.RECENT:
            records.sort(key=source_sort_key)
        else:
            records.sort(key=lambda r: str(r.get("title") or r.get("titleKey") or "").lower())
        return records[: query.limit]

    def _deliver(self, listener_id: int, listener: _Listener) -> None:
        snapshot = self._snapshot(listener)
        if self._deferred:
            self._pending.append((listener_id, lambda: listener.on_data(snapshot)))
        else:
            listener.on_data(snapshot)

    def _notify(self, kind: str) -> None:
        with self._lock:
            targets = [(i, l) for i, l in self._listeners.items() if l.kind == kind]
        for listener_id, listener in targets:
            self._deliver(listener_id, listener)

    def flush(self) -> int:
        """Run queued pushes in order (deferred mode). Returns how many ran."""
        pending, self._pending = self._pending, []
        for _, deliver in pending:
            deliver()
        return len(pending)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def listener_count(self, kind: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for l in self._listeners.values() if kind is None or l.kind == kind)

    def fail_stream(self, kind: str, error: Optional[BaseException] = None) -> None:
        """Error every live listener of *kind* once and drop it."""
        error = error or RuntimeError(f"{kind} stream failed")
        with self._lock:
            failed = [(i, l) for i, l in self._listeners.items() if l.kind == kind]
            for listener_id, _ in failed:
                del self._listeners[listener_id]
        for _, listener in failed:
            if listener.on_error is not None:
                listener.on_error(error)

    def fail_writes(self, error: Optional[BaseException]) -> None:
        """Make every following write raise *error* (None restores normal writes)."""
        self._write_failure = error

    # ── Writes ──

    def _check_write(self) -> None:
        if self._write_failure is not None:
            raise self._write_failure

    def _put(self, kind: str, record_id: str, data: RawRecord) -> None:
        with self._lock:
            self._records[kind][record_id] = strip_none({**data, "id": record_id})
        self._notify(kind)

    def _patch(self, kind: str, record_id: str, data: RawRecord) -> None:
        with self._lock:
            if record_id not in self._records[kind]:
                raise KeyError(f"{kind} '{record_id}' does not exist")
            merged = {**self._records[kind][record_id], **strip_none(data), "id": record_id}
            self._records[kind][record_id] = merged
        self._notify(kind)

    def _remove(self, kind: str, record_id: str) -> None:
        with self._lock:
            self._records[kind].pop(record_id, None)
        self._notify(kind)

    def create_category(self, data: RawRecord) -> str:
        self._check_write()
        category_id = str(data.get("id") or f"cat{next(self._ids)}")
        self._put(COLLECTION_CATEGORIES, category_id, data)
        return category_id

    def update_category(self, category_id: str, data: RawRecord) -> None:
        self._check_write()
        self._patch(COLLECTION_CATEGORIES, category_id, data)

    def delete_category(self, category_id: str) -> None:
        self._check_write()
        self._remove(COLLECTION_CATEGORIES, category_id)

    def create_tag(self, data: RawRecord) -> str:
        self._check_write()
        tag_id = str(data.get("id") or f"tag{next(self._ids)}")
        self._put(COLLECTION_TAGS, tag_id, data)
        return tag_id

    def update_tag(self, tag_id: str, data: RawRecord) -> None:
        self._check_write()
        self._patch(COLLECTION_TAGS, tag_id, data)

    def delete_tag(self, tag_id: str) -> None:
        self._check_write()
        self._remove(COLLECTION_TAGS, tag_id)

    def create_document(self, data: RawRecord) -> str:
        self._check_write()
        document_id = str(data.get("id") or new_document_id())
        now = datetime.now(timezone.utc).isoformat()
        record: Dict[str, Any] = {**data, "createdAt": now, "updatedAt": now}
        record.setdefault("content", {})
        self._put(COLLECTION_DOCUMENTS, document_id, record)
        return document_id

    def update_document(self, document_id: str, data: RawRecord) -> None:
        self._check_write()
        metadata = {k: v for k, v in data.items() if k != "content"}
        metadata["updatedAt"] = datetime.now(timezone.utc).isoformat()
        self._patch(COLLECTION_DOCUMENTS, document_id, metadata)

    def update_document_content(self, document_id: str, lang: str, html: str) -> None:
        self._check_write()
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            current = self._records[COLLECTION_DOCUMENTS].get(document_id)
            if current is None:
                current = {"id": document_id, "content": {}}
            content = dict(current.get("content") or {})
            content[lang] = {"html": str(html or "")}
            self._records[COLLECTION_DOCUMENTS][document_id] = {
                **current,
                "content": content,
                "updatedAt": now,
            }
        self._notify(COLLECTION_DOCUMENTS)

    def delete_document(self, document_id: str) -> None:
        self._check_write()
        self._remove(COLLECTION_DOCUMENTS, document_id)

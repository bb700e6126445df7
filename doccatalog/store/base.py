"""
doccatalog Store Interface — Persistence API consumed by the catalog core.

A store owns the authoritative catalog and pushes *full snapshots* of a
collection to listeners: once immediately after subscribing and again after
every change. Listeners receive raw dict records; parsing into models
happens at the subscriber boundary.

Writes are plain calls; failures are raised to the caller, never retried.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from doccatalog.documents.models import SortBy, coerce_timestamp, normalize_category_key

RawRecord = Dict[str, Any]
OnData = Callable[[List[RawRecord]], None]
OnError = Callable[[BaseException], None]
Disposer = Callable[[], None]

COLLECTION_CATEGORIES = "categories"
COLLECTION_TAGS = "tags"
COLLECTION_DOCUMENTS = "documents"

COLLECTIONS = (COLLECTION_CATEGORIES, COLLECTION_TAGS, COLLECTION_DOCUMENTS)

# Sentinel meaning "no category restriction"
ALL_CATEGORIES = "all"


@dataclass(frozen=True)
class DocumentQuery:
    """Server-side document query: category restriction, source order and window cap."""
    category_key: Optional[str] = None
    sort_by: SortBy = SortBy.RECENT
    limit: int = 100

    @property
    def restricts_category(self) -> bool:
        return bool(self.category_key) and self.category_key != ALL_CATEGORIES

    @property
    def normalized_category(self) -> Optional[str]:
        return normalize_category_key(self.category_key) if self.restricts_category else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category_key": self.category_key if self.restricts_category else ALL_CATEGORIES,
            "sort_by": SortBy(self.sort_by).value,
            "limit": self.limit,
        }


def strip_none(value: Any) -> Any:
    """Recursively drop None values from dicts and lists (write payload hygiene)."""
    if isinstance(value, list):
        return [strip_none(v) for v in value if v is not None]
    if isinstance(value, dict):
        return {k: strip_none(v) for k, v in value.items() if v is not None}
    return value


def new_document_id() -> str:
    """Store-side id for documents created without one."""
    return f"doc{int(time.time() * 1000)}"


def source_sort_key(record: RawRecord) -> float:
    """
    Source-side "recent" ordering key: newest first, missing timestamps last.
    Only used by stores; the refinement pipeline owns the authoritative order.
    """
    ts = coerce_timestamp(record.get("updatedAt"))
    return -ts.timestamp() if ts else float("inf")


class CatalogStore(ABC):
    """Abstract persistence API for categories, tags and documents."""

    # ── Live subscriptions ──

    @abstractmethod
    def subscribe_all_categories(self, on_data: OnData, on_error: Optional[OnError] = None) -> Disposer:
        """Push every category on subscribe and on each change."""

    @abstractmethod
    def subscribe_all_tags(self, on_data: OnData, on_error: Optional[OnError] = None) -> Disposer:
        """Push every tag on subscribe and on each change."""

    @abstractmethod
    def subscribe_filtered_documents(
        self,
        query: DocumentQuery,
        on_data: OnData,
        on_error: Optional[OnError] = None,
    ) -> Disposer:
        """Push the documents matching *query* (capped at query.limit)."""

    def subscribe(
        self,
        kind: str,
        on_data: OnData,
        on_error: Optional[OnError] = None,
        query: Optional[DocumentQuery] = None,
    ) -> Disposer:
        """Dispatch to the per-collection subscribe call."""
        if kind == COLLECTION_CATEGORIES:
            return self.subscribe_all_categories(on_data, on_error)
        if kind == COLLECTION_TAGS:
            return self.subscribe_all_tags(on_data, on_error)
        if kind == COLLECTION_DOCUMENTS:
            return self.subscribe_filtered_documents(query or DocumentQuery(), on_data, on_error)
        raise ValueError(f"Unknown collection '{kind}'. Expected one of {COLLECTIONS}")

    # ── Writes ──

    @abstractmethod
    def create_category(self, data: RawRecord) -> str: ...

    @abstractmethod
    def update_category(self, category_id: str, data: RawRecord) -> None: ...

    @abstractmethod
    def delete_category(self, category_id: str) -> None: ...

    @abstractmethod
    def create_tag(self, data: RawRecord) -> str: ...

    @abstractmethod
    def update_tag(self, tag_id: str, data: RawRecord) -> None: ...

    @abstractmethod
    def delete_tag(self, tag_id: str) -> None: ...

    @abstractmethod
    def create_document(self, data: RawRecord) -> str: ...

    @abstractmethod
    def update_document(self, document_id: str, data: RawRecord) -> None:
        """Update document metadata. Content is left untouched."""

    @abstractmethod
    def update_document_content(self, document_id: str, lang: str, html: str) -> None:
        """Replace the content body for one language."""

    @abstractmethod
    def delete_document(self, document_id: str) -> None: ...

    def close(self) -> None:
        """Release store resources."""

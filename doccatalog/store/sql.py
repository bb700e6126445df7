"""
doccatalog SQL Store — CatalogStore backed by SQLAlchemy.

Live subscriptions are in-process: after every committed write the store
re-queries each affected listener and pushes the full snapshot. A listener
whose re-query fails receives its error once and is dropped.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Type

from sqlalchemy import null, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from doccatalog.db.base import Base
from doccatalog.db.models import (
    CATEGORY_FIELDS,
    DOCUMENT_FIELDS,
    TAG_FIELDS,
    CategoryRow,
    DocumentRow,
    TagRow,
)
from doccatalog.db.session import session_scope
from doccatalog.documents.models import SortBy, coerce_timestamp, normalize_category_key
from doccatalog.store.base import (
    COLLECTION_CATEGORIES,
    COLLECTION_DOCUMENTS,
    COLLECTION_TAGS,
    CatalogStore,
    Disposer,
    DocumentQuery,
    OnData,
    OnError,
    RawRecord,
    new_document_id,
    strip_none,
)

logger = logging.getLogger("doccatalog.store.sql")


@dataclass
class _Listener:
    kind: str
    on_data: OnData
    on_error: Optional[OnError]
    query: Optional[DocumentQuery] = None


class SqlCatalogStore(CatalogStore):
    """
    SQLAlchemy-backed catalog store.

    Args:
        session_factory: sessionmaker bound to an engine whose tables exist
                         (see ``init_catalog_db(create_tables=True)``).
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._listeners: Dict[int, _Listener] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    # ── Queries ──

    def _query(self, session: Session, listener: _Listener) -> List[RawRecord]:
        if listener.kind == COLLECTION_CATEGORIES:
            rows = session.scalars(select(CategoryRow).order_by(CategoryRow.name_key)).all()
        elif listener.kind == COLLECTION_TAGS:
            rows = session.scalars(select(TagRow).order_by(TagRow.name)).all()
        else:
            query = listener.query or DocumentQuery()
            stmt = select(DocumentRow)
            wanted = query.normalized_category
            if wanted is not None:
                stmt = stmt.where(DocumentRow.category_norm == wanted)
            if SortBy(query.sort_by) == SortBy.RECENT:
                stmt = stmt.order_by(DocumentRow.updated_at.desc().nulls_last(), DocumentRow.id)
            else:
                # Advisory only; the refinement pipeline re-sorts by display title
                stmt = stmt.order_by(DocumentRow.title, DocumentRow.id)
            rows = session.scalars(stmt.limit(query.limit)).all()
        return [strip_none(row.to_record()) for row in rows]

    def _deliver(self, listener_id: int, listener: _Listener) -> None:
        try:
            with session_scope(self._session_factory) as session:
                snapshot = self._query(session, listener)
        except SQLAlchemyError as e:
            logger.error(f"{listener.kind} stream failed: {e}")
            with self._lock:
                self._listeners.pop(listener_id, None)
            if listener.on_error is not None:
                listener.on_error(e)
            return
        listener.on_data(snapshot)

    def _notify(self, kind: str) -> None:
        with self._lock:
            targets = [(i, l) for i, l in self._listeners.items() if l.kind == kind]
        for listener_id, listener in targets:
            self._deliver(listener_id, listener)

    # ── Subscriptions ──

    def _listen(self, listener: _Listener) -> Disposer:
        with self._lock:
            listener_id = next(self._ids)
            self._listeners[listener_id] = listener
        self._deliver(listener_id, listener)

        def dispose() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        return dispose

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

    def listener_count(self, kind: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for l in self._listeners.values() if kind is None or l.kind == kind)

    # ── Writes ──

    @staticmethod
    def _apply(row: Base, data: RawRecord, fields: Dict[str, str]) -> None:
        for key, attr in fields.items():
            if key in data and data[key] is not None:
                setattr(row, attr, data[key])
        if isinstance(row, DocumentRow) and "categoryKey" in data:
            row.category_norm = normalize_category_key(row.category_key)

    def _insert(self, row_cls: Type[Base], row_id: str, data: RawRecord, fields: Dict[str, str]) -> None:
        with session_scope(self._session_factory) as session:
            row = row_cls(id=row_id)
            self._apply(row, data, fields)
            session.add(row)

    def _update(self, row_cls: Type[Base], row_id: str, data: RawRecord, fields: Dict[str, str]) -> None:
        with session_scope(self._session_factory) as session:
            row = session.get(row_cls, row_id)
            if row is None:
                raise KeyError(f"{row_cls.__tablename__} '{row_id}' does not exist")
            self._apply(row, data, fields)

    def _delete(self, row_cls: Type[Base], row_id: str) -> None:
        with session_scope(self._session_factory) as session:
            row = session.get(row_cls, row_id)
            if row is not None:
                session.delete(row)

    def create_category(self, data: RawRecord) -> str:
        category_id = str(data.get("id") or f"cat{int(datetime.now(timezone.utc).timestamp() * 1000)}")
        self._insert(CategoryRow, category_id, data, CATEGORY_FIELDS)
        self._notify(COLLECTION_CATEGORIES)
        return category_id

    def update_category(self, category_id: str, data: RawRecord) -> None:
        self._update(CategoryRow, category_id, data, CATEGORY_FIELDS)
        self._notify(COLLECTION_CATEGORIES)

    def delete_category(self, category_id: str) -> None:
        self._delete(CategoryRow, category_id)
        self._notify(COLLECTION_CATEGORIES)

    def create_tag(self, data: RawRecord) -> str:
        tag_id = str(data.get("id") or f"tag{int(datetime.now(timezone.utc).timestamp() * 1000)}")
        self._insert(TagRow, tag_id, data, TAG_FIELDS)
        self._notify(COLLECTION_TAGS)
        return tag_id

    def update_tag(self, tag_id: str, data: RawRecord) -> None:
        self._update(TagRow, tag_id, data, TAG_FIELDS)
        self._notify(COLLECTION_TAGS)

    def delete_tag(self, tag_id: str) -> None:
        self._delete(TagRow, tag_id)
        self._notify(COLLECTION_TAGS)

    def create_document(self, data: RawRecord) -> str:
        document_id = str(data.get("id") or new_document_id())
        payload = dict(data)
        payload.setdefault("content", {})
        self._insert(DocumentRow, document_id, payload, DOCUMENT_FIELDS)
        self._notify(COLLECTION_DOCUMENTS)
        return document_id

    def update_document(self, document_id: str, data: RawRecord) -> None:
        metadata = {k: v for k, v in data.items() if k != "content"}
        with session_scope(self._session_factory) as session:
            row = session.get(DocumentRow, document_id)
            if row is None:
                raise KeyError(f"documents '{document_id}' does not exist")
            self._apply(row, metadata, DOCUMENT_FIELDS)
            row.updated_at = datetime.now(timezone.utc)
        self._notify(COLLECTION_DOCUMENTS)

    def update_document_content(self, document_id: str, lang: str, html: str) -> None:
        with session_scope(self._session_factory) as session:
            row = session.get(DocumentRow, document_id)
            if row is None:
                row = DocumentRow(id=document_id, content={})
                session.add(row)
            content = dict(row.content or {})
            content[lang] = {"html": str(html or "")}
            # JSON columns are not mutation-tracked; assign a new dict
            row.content = content
            row.updated_at = datetime.now(timezone.utc)
        self._notify(COLLECTION_DOCUMENTS)

    def delete_document(self, document_id: str) -> None:
        self._delete(DocumentRow, document_id)
        self._notify(COLLECTION_DOCUMENTS)

    # ── Bulk import ──

    def import_records(
        self,
        categories: Optional[List[RawRecord]] = None,
        tags: Optional[List[RawRecord]] = None,
        documents: Optional[List[RawRecord]] = None,
    ) -> Dict[str, int]:
        """
        Upsert raw records in one transaction, keeping their timestamps.
        Returns per-collection counts.
        """
        counts = {COLLECTION_CATEGORIES: 0, COLLECTION_TAGS: 0, COLLECTION_DOCUMENTS: 0}
        with session_scope(self._session_factory) as session:
            for kind, row_cls, fields, records in (
                (COLLECTION_CATEGORIES, CategoryRow, CATEGORY_FIELDS, categories),
                (COLLECTION_TAGS, TagRow, TAG_FIELDS, tags),
                (COLLECTION_DOCUMENTS, DocumentRow, DOCUMENT_FIELDS, documents),
            ):
                for record in records or []:
                    row = session.get(row_cls, str(record["id"])) or row_cls(id=str(record["id"]))
                    self._apply(row, record, fields)
                    if isinstance(row, DocumentRow):
                        updated_at = coerce_timestamp(record.get("updatedAt"))
                        # null() keeps the column default from stamping missing timestamps
                        row.updated_at = updated_at if updated_at is not None else null()
                        row.created_at = coerce_timestamp(record.get("createdAt")) or datetime.now(
                            timezone.utc
                        )
                    session.add(row)
                    counts[kind] += 1
        for kind, count in counts.items():
            if count:
                self._notify(kind)
        return counts

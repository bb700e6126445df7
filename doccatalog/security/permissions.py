"""
doccatalog Permissions — Role-based visibility for categories and documents.

Visibility is OR-composed. A role sees a document when:
    1. the document's category is known and grants the role, or
    2. the document's own view_permissions list the role, or
    3. the role is admin.

Document-level permissions only extend access. A document whose category
key matches no known category (an orphan) fails rule 1 for every role, so
unless it grants the role itself it is visible to admin only.

Any document whose permission data cannot be evaluated is excluded.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from doccatalog.documents.models import Category, Document, Role, normalize_category_key
from doccatalog.engine.logging import log, log_access_event

logger = logging.getLogger("doccatalog.security.permissions")


def is_admin(role: Optional[Role]) -> bool:
    return role == Role.ADMIN


def can_view(role: Optional[Role], category: Category) -> bool:
    """True iff the category grants *role*, or *role* is admin."""
    if role is None:
        return False
    if is_admin(role):
        return True
    return role in category.view_permissions


def index_categories(categories: Iterable[Category]) -> Dict[str, Category]:
    """Map normalized category key → category. First occurrence wins."""
    index: Dict[str, Category] = {}
    for category in categories:
        index.setdefault(category.normalized_key, category)
    return index


def _document_visible(role: Role, doc: Document, by_key: Dict[str, Category]) -> bool:
    if is_admin(role):
        return True
    if role in doc.view_permissions:
        return True
    category = by_key.get(normalize_category_key(doc.category_key))
    if category is None:
        logger.debug(f"Document {doc.id} references unknown category {doc.category_key!r}")
        return False
    return can_view(role, category)


def can_view_document(
    role: Optional[Role],
    doc: Document,
    categories: Iterable[Category],
) -> bool:
    """Single-document form of resolve_visible."""
    if role is None:
        return False
    return _document_visible(role, doc, index_categories(categories))


def resolve_visible(
    role: Optional[Role],
    documents: Sequence[Any],
    categories: Iterable[Category],
    by_key: Optional[Dict[str, Category]] = None,
) -> Tuple[Document, ...]:
    """
    Return the documents *role* may see, in input order.

    Args:
        role: Viewer role. None grants nothing.
        documents: Current document window.
        categories: Current category snapshot.
        by_key: Pre-built category index (skips re-indexing).

    Returns:
        Tuple of visible documents — always a subset of *documents*.
    """
    if role is None:
        return ()
    if by_key is None:
        by_key = index_categories(categories)

    visible: List[Document] = []
    for doc in documents:
        try:
            allowed = _document_visible(role, doc, by_key)
        except (AttributeError, TypeError) as e:
            doc_id = getattr(doc, "id", "?")
            logger.warning(f"Cannot evaluate access for document {doc_id}: {e} — excluding")
            log(log_access_event("access_unevaluable", str(doc_id), role.value, str(e)))
            continue
        if allowed:
            visible.append(doc)
    return tuple(visible)


def visible_categories(role: Optional[Role], categories: Iterable[Category]) -> Tuple[Category, ...]:
    """Categories shown to *role* in navigation."""
    return tuple(c for c in categories if can_view(role, c))


def can_download(
    role: Optional[Role],
    doc: Document,
    categories: Iterable[Category],
) -> bool:
    """
    Download needs view access; a non-empty download_permissions set further
    restricts it to the listed roles. Admin can always download.
    """
    if role is None:
        return False
    if is_admin(role):
        return True
    if not can_view_document(role, doc, categories):
        return False
    if doc.download_permissions:
        return role in doc.download_permissions
    return True


def orphan_documents(
    documents: Iterable[Document],
    categories: Iterable[Category],
) -> Tuple[Document, ...]:
    """Documents whose category key matches no known category."""
    by_key = index_categories(categories)
    return tuple(d for d in documents if d.normalized_category_key not in by_key)


class VisibilityResolver:
    """
    Memoizing front for resolve_visible.

    Results are cached for the last (role, documents, categories) triple,
    keyed by identity of the two snapshots. Snapshots are replaced, never
    mutated, so identity is a sound version marker.
    """

    def __init__(self):
        self._key: Optional[Tuple[Role, int, int]] = None
        self._documents_ref: Optional[Sequence[Document]] = None
        self._categories_ref: Optional[Sequence[Category]] = None
        self._by_key: Dict[str, Category] = {}
        self._result: Tuple[Document, ...] = ()
        self.hits = 0
        self.misses = 0

    def resolve(
        self,
        role: Optional[Role],
        documents: Sequence[Document],
        categories: Sequence[Category],
    ) -> Tuple[Document, ...]:
        if role is None:
            return ()
        key = (role, id(documents), id(categories))
        if key == self._key:
            self.hits += 1
            return self._result

        self.misses += 1
        if categories is not self._categories_ref:
            self._by_key = index_categories(categories)
        self._result = resolve_visible(role, documents, categories, by_key=self._by_key)
        self._key = key
        # Hold references so the ids in the key cannot be recycled
        self._documents_ref = documents
        self._categories_ref = categories
        return self._result

    def clear(self) -> None:
        """Drop the cached result."""
        self._key = None
        self._documents_ref = None
        self._categories_ref = None
        self._by_key = {}
        self._result = ()

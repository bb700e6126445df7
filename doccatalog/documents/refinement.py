"""
doccatalog Refinement Pipeline — client-side narrowing and ordering of the
server-fetched document window.

Stages, always in this order:
    1. access filter   — resolve_visible for the viewer's role
    2. category facet  — only when several categories are selected
    3. search          — substring of display title or description
    4. tag filter      — document must carry every selected tag
    5. target roles    — document visible to at least one selected role
    6. sort            — "recent" or locale-aware "alpha"

Every stage is a pure function. RefinementPipeline memoizes the whole chain
on its inputs so that paging through an unchanged result is free.
"""

from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from doccatalog.documents.models import (
    Category,
    Document,
    Role,
    SortBy,
    Translate,
    identity_translate,
    normalize_category_key,
)
from doccatalog.security.permissions import VisibilityResolver, index_categories, resolve_visible

logger = logging.getLogger("doccatalog.documents.refinement")


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def filter_by_categories(documents: Sequence[Document], category_keys: Iterable[str]) -> Tuple[Document, ...]:
    """Keep documents in any of *category_keys*. Fewer than two keys is a no-op."""
    wanted = {normalize_category_key(k) for k in category_keys}
    if len(wanted) < 2:
        return tuple(documents)
    return tuple(d for d in documents if d.normalized_category_key in wanted)


def matches_search(doc: Document, needle: str, translate: Translate) -> bool:
    if needle in doc.display_title(translate).casefold():
        return True
    return bool(doc.description) and needle in doc.description.casefold()


def filter_by_search(
    documents: Sequence[Document],
    search: str,
    translate: Translate = identity_translate,
) -> Tuple[Document, ...]:
    """Case-insensitive substring match on display title OR description."""
    needle = (search or "").casefold()
    if not needle:
        return tuple(documents)
    return tuple(d for d in documents if matches_search(d, needle, translate))


def filter_by_tags(documents: Sequence[Document], tag_ids: Iterable[str]) -> Tuple[Document, ...]:
    """AND semantics: every selected tag must be present."""
    wanted = set(tag_ids)
    if not wanted:
        return tuple(documents)
    return tuple(d for d in documents if wanted.issubset(d.tag_ids))


def filter_by_target_roles(
    documents: Sequence[Document],
    roles: Iterable[Role],
    categories: Sequence[Category],
    by_key: Optional[Dict[str, Category]] = None,
) -> Tuple[Document, ...]:
    """
    Audience facet: keep documents that at least one selected role could see.
    Evaluated with the same rule as the viewer access filter.
    """
    selected = [r for r in roles if r is not None]
    if not selected:
        return tuple(documents)
    if by_key is None:
        by_key = index_categories(categories)
    keep = set()
    for role in selected:
        keep.update(d.id for d in resolve_visible(role, documents, categories, by_key=by_key))
    return tuple(d for d in documents if d.id in keep)


def collation_key(text: str) -> Tuple[str, str, str]:
    """
    Locale-aware sort key: accents and case are ignored first, then used to
    break ties, so "Émile" sorts with "emile" rather than after "z".
    """
    decomposed = unicodedata.normalize("NFKD", text)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return (base.casefold(), text.casefold(), text)


def _recent_key(doc: Document) -> Tuple[int, float]:
    if doc.updated_at is None:
        return (0, 0.0)
    return (1, doc.updated_at.timestamp())


def sort_documents(
    documents: Sequence[Document],
    sort_by: SortBy,
    translate: Translate = identity_translate,
) -> Tuple[Document, ...]:
    """
    "recent": updated_at descending, missing timestamps last.
    "alpha": ascending by collated display title.
    Both sorts are stable.
    """
    if SortBy(sort_by) == SortBy.RECENT:
        return tuple(sorted(documents, key=_recent_key, reverse=True))
    return tuple(sorted(documents, key=lambda d: collation_key(d.display_title(translate))))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RefinementInputs:
    """Everything the refinement chain depends on."""
    viewer_role: Optional[Role]
    documents: Sequence[Document]
    categories: Sequence[Category]
    search: str = ""
    category_keys: Tuple[str, ...] = ()
    tag_ids: Tuple[str, ...] = ()
    target_roles: Tuple[Role, ...] = ()
    sort_by: SortBy = SortBy.RECENT
    translate: Translate = field(default=identity_translate, compare=False)

    def cache_key(self) -> Tuple[Any, ...]:
        # Snapshots by identity, facets by value
        return (
            self.viewer_role,
            id(self.documents),
            id(self.categories),
            self.search,
            frozenset(normalize_category_key(k) for k in self.category_keys),
            frozenset(self.tag_ids),
            frozenset(self.target_roles),
            SortBy(self.sort_by),
            id(self.translate),
        )


def refine(inputs: RefinementInputs, resolver: Optional[VisibilityResolver] = None) -> Tuple[Document, ...]:
    """Run every stage once over *inputs*."""
    if resolver is not None:
        visible = resolver.resolve(inputs.viewer_role, inputs.documents, inputs.categories)
    else:
        visible = resolve_visible(inputs.viewer_role, inputs.documents, inputs.categories)
    result = filter_by_categories(visible, inputs.category_keys)
    result = filter_by_search(result, inputs.search, inputs.translate)
    result = filter_by_tags(result, inputs.tag_ids)
    result = filter_by_target_roles(result, inputs.target_roles, inputs.categories)
    return sort_documents(result, inputs.sort_by, inputs.translate)


class RefinementPipeline:
    """Memoizing runner for refine()."""

    def __init__(self):
        self._resolver = VisibilityResolver()
        self._key: Optional[Tuple[Any, ...]] = None
        self._inputs: Optional[RefinementInputs] = None
        self._result: Tuple[Document, ...] = ()
        self.runs = 0

    def run(self, inputs: RefinementInputs) -> Tuple[Document, ...]:
        key = inputs.cache_key()
        if key == self._key:
            return self._result
        self._result = refine(inputs, self._resolver)
        self._key = key
        # Keep the snapshots referenced so the ids in the key stay unique
        self._inputs = inputs
        self.runs += 1
        return self._result

    @property
    def resolver(self) -> VisibilityResolver:
        return self._resolver

    def clear(self) -> None:
        self._resolver.clear()
        self._key = None
        self._inputs = None
        self._result = ()

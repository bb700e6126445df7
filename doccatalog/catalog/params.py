"""
doccatalog Filter Params — the shareable, URL-style part of catalog state.

Wire form (flat, repeated keys allowed):

    q         0..1   free-text search
    category  0..N   selected category keys
    role      0..N   selected target-role facet values
    tag       0..N   selected tag ids
    page      0..1   1-based page, omitted when 1

Sort order and view mode are deliberately not part of this form.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl, urlencode

from doccatalog.documents.models import Role

logger = logging.getLogger("doccatalog.catalog.params")

PARAM_SEARCH = "q"
PARAM_CATEGORY = "category"
PARAM_ROLE = "role"
PARAM_TAG = "tag"
PARAM_PAGE = "page"

SHAREABLE_KEYS = (PARAM_SEARCH, PARAM_CATEGORY, PARAM_ROLE, PARAM_TAG, PARAM_PAGE)

RawParams = Union[str, Mapping[str, Any], Iterable[Tuple[str, str]], None]


def _dedupe(values: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def toggle(values: Tuple[Any, ...], value: Any) -> Tuple[Any, ...]:
    """XOR toggle: remove *value* if present, otherwise append it."""
    if value in values:
        return tuple(v for v in values if v != value)
    return values + (value,)


@dataclass(frozen=True)
class FilterParams:
    """Immutable shareable state. Multi-valued facets keep selection order."""
    q: str = ""
    categories: Tuple[str, ...] = ()
    roles: Tuple[Role, ...] = ()
    tags: Tuple[str, ...] = ()
    page: int = 1

    # ── Mutations (each returns a new FilterParams) ──

    def with_search(self, text: str) -> "FilterParams":
        return replace(self, q=text or "", page=1)

    def toggle_category(self, key: str) -> "FilterParams":
        return replace(self, categories=toggle(self.categories, key), page=1)

    def with_categories(self, keys: Iterable[str]) -> "FilterParams":
        return replace(self, categories=_dedupe(keys), page=1)

    def toggle_role(self, role: Role) -> "FilterParams":
        return replace(self, roles=toggle(self.roles, role), page=1)

    def toggle_tag(self, tag_id: str) -> "FilterParams":
        return replace(self, tags=toggle(self.tags, tag_id), page=1)

    def with_page(self, page: int) -> "FilterParams":
        return replace(self, page=max(1, int(page)))

    def cleared(self) -> "FilterParams":
        return FilterParams()

    @property
    def has_filters(self) -> bool:
        return bool(self.q or self.categories or self.roles or self.tags)

    # ── Wire form ──

    def to_query_string(self) -> str:
        return urlencode(serialize_params(self))


def _iter_pairs(raw: RawParams) -> List[Tuple[str, str]]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return parse_qsl(raw.lstrip("?"), keep_blank_values=False)
    if isinstance(raw, Mapping):
        pairs: List[Tuple[str, str]] = []
        for key, value in raw.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                pairs.extend((key, str(v)) for v in value)
            elif value is not None:
                pairs.append((key, str(value)))
        return pairs
    return [(str(k), str(v)) for k, v in raw]


def parse_params(raw: RawParams) -> FilterParams:
    """
    Build FilterParams from a query string, a mapping (values may be lists)
    or (key, value) pairs. Unknown keys are ignored; unknown roles are
    dropped; a missing or invalid page becomes 1.
    """
    q: Optional[str] = None
    categories: List[str] = []
    roles: List[Role] = []
    tags: List[str] = []
    page = 1

    for key, value in _iter_pairs(raw):
        if key == PARAM_SEARCH:
            if q is None:
                q = value
        elif key == PARAM_CATEGORY:
            categories.append(value)
        elif key == PARAM_ROLE:
            role = Role.coerce(value)
            if role is None:
                logger.debug(f"Ignoring unknown role facet {value!r}")
            elif role not in roles:
                roles.append(role)
        elif key == PARAM_TAG:
            tags.append(value)
        elif key == PARAM_PAGE:
            try:
                page = max(1, int(value))
            except ValueError:
                page = 1

    return FilterParams(
        q=q or "",
        categories=_dedupe(categories),
        roles=tuple(roles),
        tags=_dedupe(tags),
        page=page,
    )


def serialize_params(params: FilterParams) -> List[Tuple[str, str]]:
    """Flat (key, value) pairs; empty search and page 1 are omitted."""
    pairs: List[Tuple[str, str]] = []
    if params.q:
        pairs.append((PARAM_SEARCH, params.q))
    pairs.extend((PARAM_CATEGORY, c) for c in params.categories)
    pairs.extend((PARAM_ROLE, Role(r).value) for r in params.roles)
    pairs.extend((PARAM_TAG, t) for t in params.tags)
    if params.page != 1:
        pairs.append((PARAM_PAGE, str(params.page)))
    return pairs

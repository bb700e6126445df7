"""
doccatalog Catalog State Controller — owns filter/sort/page state, drives the
query coordinator and the refinement pipeline, and exposes the paginated view.

Lifecycle:
    controller = CatalogStateController(store, role=Role.FOREMAN, params="tag=t1&page=2")
    controller.open()            # categories, tags and documents subscriptions
    view = controller.view       # CatalogView for the current page
    controller.toggle_tag("t2")  # page resets to 1, view recomputed
    controller.close()           # every subscription disposed exactly once

The controller is also a context manager.

Shareable state lives in FilterParams (see catalog.params). Sort order and
view mode are ephemeral: they never appear in the serialized params and
survive reset_filters().
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from doccatalog.catalog.params import FilterParams, RawParams, parse_params
from doccatalog.documents.models import (
    Category,
    Document,
    Role,
    SortBy,
    Tag,
    Translate,
    ViewMode,
    identity_translate,
)
from doccatalog.documents.query import DocumentQueryCoordinator
from doccatalog.documents.refinement import RefinementInputs, RefinementPipeline
from doccatalog.engine.config import CatalogConfig, get_config
from doccatalog.engine.errors import SubscriptionError
from doccatalog.engine.subscriptions import LiveCollectionSubscriber, Subscription
from doccatalog.security import permissions
from doccatalog.store.base import COLLECTION_CATEGORIES, COLLECTION_TAGS, CatalogStore

logger = logging.getLogger("doccatalog.catalog.controller")

ViewObserver = Callable[["CatalogView"], None]


def total_pages_for(count: int, page_size: int) -> int:
    """ceil(count / page_size), never negative."""
    if count <= 0:
        return 0
    return math.ceil(count / page_size)


@dataclass(frozen=True)
class CatalogView:
    """What a renderer needs for one page of the catalog."""
    documents: Tuple[Document, ...]
    total_count: int
    page: int
    total_pages: int
    page_size: int
    loading: bool
    error: Optional[SubscriptionError]
    sort_by: SortBy
    view_mode: ViewMode
    categories: Tuple[Category, ...]
    tags: Tuple[Tag, ...]
    params: FilterParams

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def is_empty(self) -> bool:
        return not self.loading and self.total_count == 0


class CatalogStateController:
    """
    Role-aware, paginated view over a live catalog.

    Args:
        store: Persistence API.
        role: Viewer role (unknown values are treated as guest).
        params: Initial shareable state (query string, mapping or FilterParams).
        translate: Title-key lookup used for display titles.
        config: Catalog config; defaults to the loaded doccatalog.yaml.
        sort_by / view_mode: Initial ephemeral state; defaults from config.
    """

    def __init__(
        self,
        store: CatalogStore,
        role: Any = Role.GUEST,
        *,
        params: Optional[RawParams] = None,
        translate: Optional[Translate] = None,
        config: Optional[CatalogConfig] = None,
        sort_by: Optional[SortBy] = None,
        view_mode: Optional[ViewMode] = None,
    ):
        settings = (config or get_config()).catalog
        self._page_size = settings.page_size
        self._role = Role.viewer(role)
        self._params = params if isinstance(params, FilterParams) else parse_params(params)
        self._translate: Translate = translate or identity_translate
        self._sort_by = SortBy(sort_by or settings.default_sort)
        self._view_mode = ViewMode(view_mode or settings.default_view_mode)

        self._subscriber = LiveCollectionSubscriber(store)
        self._coordinator = DocumentQueryCoordinator(self._subscriber, limit=settings.fetch_limit)
        self._pipeline = RefinementPipeline()

        self._categories: Tuple[Category, ...] = ()
        self._tags: Tuple[Tag, ...] = ()
        self._categories_loaded = False
        self._tags_loaded = False
        self._categories_sub: Optional[Subscription] = None
        self._tags_sub: Optional[Subscription] = None
        self._remove_window_listener: Optional[Callable[[], None]] = None
        self._stream_errors: List[SubscriptionError] = []

        self._refined: Tuple[Document, ...] = ()
        self._observers: List[ViewObserver] = []
        self._opened = False
        self._closed = False

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    def open(self) -> "CatalogStateController":
        """Open the categories, tags and documents subscriptions."""
        if self._closed:
            raise RuntimeError("CatalogStateController is closed")
        if self._opened:
            return self
        self._opened = True
        self._remove_window_listener = self._coordinator.add_listener(lambda _c: self._recompute())
        self._categories_sub = self._subscribe_categories()
        self._tags_sub = self._subscribe_tags()
        self._sync_query()
        self._recompute()
        logger.info(f"Catalog opened for role={self._role.value} params={self.query_string!r}")
        return self

    def close(self) -> None:
        """Dispose every subscription exactly once."""
        if self._closed:
            return
        self._closed = True
        if self._remove_window_listener is not None:
            self._remove_window_listener()
            self._remove_window_listener = None
        for sub in (self._categories_sub, self._tags_sub):
            if sub is not None:
                sub.dispose()
        self._categories_sub = None
        self._tags_sub = None
        self._coordinator.close()
        self._observers.clear()
        logger.info("Catalog closed")

    def __enter__(self) -> "CatalogStateController":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------------
    # Stream callbacks
    # -------------------------------------------------------------------

    def _subscribe_categories(self) -> Subscription:
        return self._subscriber.subscribe(COLLECTION_CATEGORIES, self._on_categories, self._on_stream_error)

    def _subscribe_tags(self) -> Subscription:
        return self._subscriber.subscribe(COLLECTION_TAGS, self._on_tags, self._on_stream_error)

    def _on_categories(self, snapshot: Tuple[Category, ...]) -> None:
        if self._closed:
            return
        self._categories = snapshot
        self._categories_loaded = True
        self._recompute()

    def _on_tags(self, snapshot: Tuple[Tag, ...]) -> None:
        if self._closed:
            return
        self._tags = snapshot
        self._tags_loaded = True
        self._recompute()

    def _on_stream_error(self, error: SubscriptionError) -> None:
        if self._closed:
            return
        self._stream_errors.append(error)
        if error.kind == COLLECTION_CATEGORIES:
            self._categories = ()
            self._categories_loaded = True
        elif error.kind == COLLECTION_TAGS:
            self._tags = ()
            self._tags_loaded = True
        self._recompute()

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------

    def _server_category(self) -> Optional[str]:
        # A single selection is pushed to the store; several are filtered client-side
        if len(self._params.categories) == 1:
            return self._params.categories[0]
        return None

    def _sync_query(self) -> None:
        if self._opened and not self._closed:
            self._coordinator.configure(self._server_category(), self._sort_by)

    def _inputs(self) -> RefinementInputs:
        return RefinementInputs(
            viewer_role=self._role,
            documents=self._coordinator.window,
            categories=self._categories,
            search=self._params.q,
            category_keys=self._params.categories,
            tag_ids=self._params.tags,
            target_roles=self._params.roles,
            sort_by=self._sort_by,
            translate=self._translate,
        )

    @property
    def ready(self) -> bool:
        """True once documents and categories have both delivered (or failed)."""
        return (
            self._opened
            and self._categories_loaded
            and self._coordinator.generation > 0
            and not self._coordinator.loading
        )

    def _recompute(self) -> None:
        if self._closed:
            return
        self._refined = self._pipeline.run(self._inputs())
        total_pages = total_pages_for(len(self._refined), self._page_size)
        # Hold deep-linked pages until the first data arrives
        if self.ready and self._params.page > max(total_pages, 1):
            clamped = max(total_pages, 1)
            logger.debug(f"Clamping page {self._params.page} → {clamped}")
            self._params = self._params.with_page(clamped)
        self._notify()

    def _notify(self) -> None:
        if not self._observers:
            return
        view = self.view
        for observer in list(self._observers):
            observer(view)

    def subscribe(self, observer: ViewObserver) -> Callable[[], None]:
        """Call *observer* with the new view after every recompute."""
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    # -------------------------------------------------------------------
    # Read API
    # -------------------------------------------------------------------

    @property
    def role(self) -> Role:
        return self._role

    @property
    def params(self) -> FilterParams:
        return self._params

    @property
    def query_string(self) -> str:
        return self._params.to_query_string()

    @property
    def sort_by(self) -> SortBy:
        return self._sort_by

    @property
    def view_mode(self) -> ViewMode:
        return self._view_mode

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def current_page(self) -> int:
        return self._params.page

    @property
    def refined_documents(self) -> Tuple[Document, ...]:
        """Every document passing the refinement chain, in display order."""
        return self._refined

    @property
    def total_count(self) -> int:
        return len(self._refined)

    @property
    def total_pages(self) -> int:
        return total_pages_for(len(self._refined), self._page_size)

    @property
    def page_documents(self) -> Tuple[Document, ...]:
        start = (self._params.page - 1) * self._page_size
        return self._refined[start:start + self._page_size]

    @property
    def categories(self) -> Tuple[Category, ...]:
        return self._categories

    @property
    def visible_categories(self) -> Tuple[Category, ...]:
        return permissions.visible_categories(self._role, self._categories)

    @property
    def tags(self) -> Tuple[Tag, ...]:
        return self._tags

    @property
    def loading(self) -> bool:
        return not self.ready

    @property
    def error(self) -> Optional[SubscriptionError]:
        """Current documents-stream error, else the latest categories/tags error."""
        if self._coordinator.error is not None:
            return self._coordinator.error
        return self._stream_errors[-1] if self._stream_errors else None

    @property
    def coordinator(self) -> DocumentQueryCoordinator:
        return self._coordinator

    @property
    def pipeline(self) -> RefinementPipeline:
        return self._pipeline

    @property
    def view(self) -> CatalogView:
        return CatalogView(
            documents=self.page_documents,
            total_count=self.total_count,
            page=self._params.page,
            total_pages=self.total_pages,
            page_size=self._page_size,
            loading=self.loading,
            error=self.error,
            sort_by=self._sort_by,
            view_mode=self._view_mode,
            categories=self.visible_categories,
            tags=self._tags,
            params=self._params,
        )

    def find_document(self, document_id: str) -> Optional[Document]:
        """A document from the current window, if the viewer may see it."""
        for doc in self._coordinator.window:
            if doc.id == document_id:
                if permissions.can_view_document(self._role, doc, self._categories):
                    return doc
                return None
        return None

    def can_download(self, doc: Document) -> bool:
        return permissions.can_download(self._role, doc, self._categories)

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    def _apply(self, params: FilterParams, requery: bool = False) -> None:
        self._params = params
        if requery:
            self._sync_query()
        self._recompute()

    def set_search(self, text: str) -> None:
        self._apply(self._params.with_search(text))

    def toggle_category(self, key: str) -> None:
        if not key:
            return
        self._apply(self._params.toggle_category(key), requery=True)

    def select_category(self, key: Optional[str]) -> None:
        """Single-select shortcut: one category, or none for "all"."""
        keys = [key] if key and key != "all" else []
        self._apply(self._params.with_categories(keys), requery=True)

    def toggle_tag(self, tag_id: str) -> None:
        if not tag_id:
            return
        self._apply(self._params.toggle_tag(tag_id))

    def toggle_role(self, role: Any) -> None:
        coerced = Role.coerce(role)
        if coerced is None:
            logger.warning(f"Ignoring unknown role facet {role!r}")
            return
        self._apply(self._params.toggle_role(coerced))

    def go_to_page(self, page: int) -> None:
        """Explicit navigation; touches nothing but the page."""
        self._apply(self._params.with_page(page))

    def next_page(self) -> None:
        self.go_to_page(min(self._params.page + 1, max(self.total_pages, 1)))

    def previous_page(self) -> None:
        self.go_to_page(max(self._params.page - 1, 1))

    def reset_filters(self) -> None:
        """Clear every shareable key and return to page 1. Sort and view mode stay."""
        self._apply(self._params.cleared(), requery=True)

    def load_params(self, raw: RawParams) -> None:
        """Replace the shareable state wholesale (e.g. history navigation)."""
        params = raw if isinstance(raw, FilterParams) else parse_params(raw)
        self._apply(params, requery=True)

    def set_sort(self, sort_by: SortBy) -> None:
        sort_by = SortBy(sort_by)
        if sort_by == self._sort_by:
            return
        self._sort_by = sort_by
        self._sync_query()
        self._recompute()

    def set_view_mode(self, view_mode: ViewMode) -> None:
        self._view_mode = ViewMode(view_mode)
        self._notify()

    def set_viewer_role(self, role: Any) -> None:
        """Switch viewer (login/logout); the whole chain is recomputed."""
        self._role = Role.viewer(role)
        self._recompute()

    def set_translate(self, translate: Optional[Translate]) -> None:
        """Swap the title lookup (language change)."""
        self._translate = translate or identity_translate
        self._recompute()

    def retry(self) -> None:
        """
        Re-open the documents stream, plus the categories and tags streams
        when they have failed. Healthy categories/tags subscriptions are kept.
        """
        if self._closed:
            raise RuntimeError("CatalogStateController is closed")
        self._stream_errors.clear()
        if self._categories_sub is not None and self._categories_sub.failed:
            self._categories_sub.dispose()
            self._categories_loaded = False
            self._categories_sub = self._subscribe_categories()
        if self._tags_sub is not None and self._tags_sub.failed:
            self._tags_sub.dispose()
            self._tags_loaded = False
            self._tags_sub = self._subscribe_tags()
        self._coordinator.refresh()
        self._recompute()

"""doccatalog Stores — persistence API plus in-memory and SQLAlchemy backends."""

from doccatalog.store.base import CatalogStore, DocumentQuery
from doccatalog.store.memory import MemoryCatalogStore

__all__ = ["CatalogStore", "DocumentQuery", "MemoryCatalogStore"]

"""doccatalog Catalog — state controller and shareable filter params."""

from doccatalog.catalog.controller import CatalogStateController, CatalogView
from doccatalog.catalog.params import FilterParams, parse_params, serialize_params

__all__ = [
    "CatalogStateController",
    "CatalogView",
    "FilterParams",
    "parse_params",
    "serialize_params",
]

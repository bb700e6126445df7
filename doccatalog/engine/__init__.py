"""doccatalog Engine — config, errors, structured logging and live subscriptions."""

from doccatalog.engine.errors import (  # noqa: F401
    CatalogConfigError,
    CatalogError,
    CatalogValidationError,
    SubscriptionError,
    WriteError,
)

__all__ = [
    "CatalogError",
    "SubscriptionError",
    "WriteError",
    "CatalogValidationError",
    "CatalogConfigError",
]

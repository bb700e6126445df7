"""
doccatalog Error Hierarchy — Structured exceptions for the catalog layer.

Every error carries its context as keyword arguments and serializes to a
JSON-compatible dict, so failures can be written straight into the
structured event log.

Hierarchy:
    CatalogError
    ├── SubscriptionError        — Remote stream failed (non-fatal)
    ├── WriteError               — Create/update/delete rejected
    │   └── CatalogValidationError — Write payload failed validation
    └── CatalogConfigError       — Invalid doccatalog.yaml

Documents that reference an unknown category are never raised: the access
resolver treats them as admin-only.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class CatalogError(Exception):
    """
    Base error for all doccatalog failures.
    All context is kept serializable to JSON.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "timestamp": self.timestamp,
            "context": {k: str(v) for k, v in self.context.items()},
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        for key in ("kind", "entity_id", "operation"):
            if self.context.get(key) is not None:
                parts.append(f"{key}={self.context[key]}")
        return " | ".join(parts)


class SubscriptionError(CatalogError):
    """
    A live collection stream failed.
    Surfaced as an empty window plus an error flag; never retried automatically.
    """

    def __init__(self, message: str, **context: Any):
        self.kind: Optional[str] = context.get("kind")
        self.generation: Optional[int] = context.get("generation")
        self.cause: Optional[BaseException] = context.get("cause")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["kind"] = self.kind
        d["generation"] = self.generation
        return d


class WriteError(CatalogError):
    """Create/update/delete call rejected by the store. Propagated to the caller."""

    def __init__(self, message: str, **context: Any):
        self.kind: Optional[str] = context.get("kind")
        self.entity_id: Optional[str] = context.get("entity_id")
        self.operation: Optional[str] = context.get("operation")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["kind"] = self.kind
        d["entity_id"] = self.entity_id
        d["operation"] = self.operation
        return d


class CatalogValidationError(WriteError):
    """
    Write payload validation failed before reaching the store.
    Includes field-level error details.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class CatalogConfigError(CatalogError):
    """Configuration error — invalid doccatalog.yaml."""
    pass

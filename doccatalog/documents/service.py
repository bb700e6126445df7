"""
doccatalog Catalog Service — validated writes for categories, tags and documents.

Handles:
- payload validation through the catalog models (unknown roles rejected)
- camelCase wire payloads with None values stripped
- store failures surfaced as WriteError, never retried
- one structured log entry per write

Reads never go through this service; the live subscriptions pick up the
change from the store push that follows every successful write.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ValidationError

from doccatalog.documents.models import Category, Document, Role, Tag
from doccatalog.engine.errors import CatalogError, CatalogValidationError, WriteError
from doccatalog.engine.logging import log, log_write_operation
from doccatalog.store.base import CatalogStore, RawRecord, strip_none

logger = logging.getLogger("doccatalog.documents.service")

# Fields the store owns on documents
_STORE_MANAGED = ("id", "createdAt", "updatedAt")
_PERMISSION_FIELDS = ("viewPermissions", "downloadPermissions")
_PLACEHOLDER_ID = "__pending__"


def _aliased(model: Type[BaseModel], data: RawRecord) -> RawRecord:
    """Re-key python field names to their wire aliases."""
    out: RawRecord = {}
    for key, value in data.items():
        field = model.model_fields.get(key)
        out[(field.alias if field is not None and field.alias else key)] = value
    return out


def _unknown_roles(values: Any) -> List[str]:
    if values is None:
        return []
    if isinstance(values, (str, bytes, dict)):
        return [repr(values)]
    return [str(v) for v in values if Role.coerce(v) is None]


class CatalogService:
    """
    Write facade over a CatalogStore.

    Usage:
        service = CatalogService(store)
        doc_id = service.create_document({"categoryKey": "safety", "title": "Helmets"})
        service.update_document_content(doc_id, "uk", "<p>...</p>")
    """

    def __init__(self, store: CatalogStore):
        self._store = store

    @property
    def store(self) -> CatalogStore:
        return self._store

    # -------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------

    def _validate(
        self,
        model: Type[BaseModel],
        kind: str,
        operation: str,
        data: RawRecord,
        partial: bool,
        entity_id: Optional[str] = None,
    ) -> RawRecord:
        """
        Validate *data* against *model* and return the wire payload.

        Partial payloads (updates) are checked field by field; required
        fields that are absent get placeholders and are not written.
        """
        if not isinstance(data, dict):
            raise CatalogValidationError(
                f"{kind} payload must be a mapping",
                kind=kind,
                operation=operation,
                entity_id=entity_id,
            )
        payload = _aliased(model, data)

        problems = []
        for field in _PERMISSION_FIELDS:
            bad = _unknown_roles(payload.get(field)) if field in payload else []
            if bad:
                problems.append({"loc": [field], "msg": f"unknown roles: {', '.join(bad)}"})
        if problems:
            raise CatalogValidationError(
                f"Invalid {kind} payload",
                kind=kind,
                operation=operation,
                entity_id=entity_id,
                validation_errors=problems,
            )

        candidate: Dict[str, Any] = {"id": entity_id or payload.get("id") or _PLACEHOLDER_ID}
        if partial and model is Category:
            candidate["nameKey"] = _PLACEHOLDER_ID
        if partial and model is Tag:
            candidate["name"] = _PLACEHOLDER_ID
        candidate.update(payload)

        try:
            instance = model.model_validate(candidate)
        except ValidationError as e:
            raise CatalogValidationError(
                f"Invalid {kind} payload",
                kind=kind,
                operation=operation,
                entity_id=entity_id,
                validation_errors=e.errors(include_url=False, include_context=False),
            ) from e

        dumped = instance.model_dump(by_alias=True, mode="json", exclude_none=True)
        for field in _PERMISSION_FIELDS:
            if field in dumped:
                dumped[field] = sorted(dumped[field])
        for field in _STORE_MANAGED:
            dumped.pop(field, None)
        if payload.get("id") and operation == "create":
            dumped["id"] = str(payload["id"])
        if partial:
            dumped = {k: v for k, v in dumped.items() if k in payload}
        return strip_none(dumped)

    # -------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------

    def _run(
        self,
        kind: str,
        operation: str,
        entity_id: Optional[str],
        call: Any,
        fields: Optional[Iterable[str]] = None,
    ) -> Any:
        start = time.monotonic()
        try:
            result = call()
        except CatalogError:
            raise
        except Exception as e:
            duration = (time.monotonic() - start) * 1000
            logger.error(f"{kind} {operation} failed for {entity_id}: {e}")
            log(log_write_operation(operation, kind, entity_id, False, duration, error=str(e)))
            raise WriteError(
                f"{kind} {operation} failed: {e}",
                kind=kind,
                entity_id=entity_id,
                operation=operation,
            ) from e

        duration = (time.monotonic() - start) * 1000
        if operation == "create":
            entity_id = result
        logger.info(f"{kind} {operation}: {entity_id} ({duration:.1f}ms)")
        log(log_write_operation(operation, kind, entity_id, True, duration, list(fields or [])))
        return result

    # ── Categories ──

    def create_category(self, data: RawRecord) -> str:
        payload = self._validate(Category, "category", "create", data, partial=False)
        return self._run("category", "create", None, lambda: self._store.create_category(payload), payload)

    def update_category(self, category_id: str, data: RawRecord) -> None:
        payload = self._validate(Category, "category", "update", data, partial=True, entity_id=category_id)
        self._run("category", "update", category_id, lambda: self._store.update_category(category_id, payload), payload)

    def delete_category(self, category_id: str) -> None:
        self._run("category", "delete", category_id, lambda: self._store.delete_category(category_id))

    # ── Tags ──

    def create_tag(self, data: RawRecord) -> str:
        payload = self._validate(Tag, "tag", "create", data, partial=False)
        return self._run("tag", "create", None, lambda: self._store.create_tag(payload), payload)

    def update_tag(self, tag_id: str, data: RawRecord) -> None:
        payload = self._validate(Tag, "tag", "update", data, partial=True, entity_id=tag_id)
        self._run("tag", "update", tag_id, lambda: self._store.update_tag(tag_id, payload), payload)

    def delete_tag(self, tag_id: str) -> None:
        self._run("tag", "delete", tag_id, lambda: self._store.delete_tag(tag_id))

    # ── Documents ──

    def create_document(self, data: RawRecord) -> str:
        payload = self._validate(Document, "document", "create", data, partial=False)
        return self._run("document", "create", None, lambda: self._store.create_document(payload), payload)

    def update_document(self, document_id: str, data: RawRecord) -> None:
        """Update metadata only. Use update_document_content for bodies."""
        metadata = {k: v for k, v in (data or {}).items() if k != "content"}
        payload = self._validate(Document, "document", "update", metadata, partial=True, entity_id=document_id)
        self._run(
            "document", "update", document_id,
            lambda: self._store.update_document(document_id, payload),
            payload,
        )

    def update_document_content(self, document_id: str, lang: str, html: str) -> None:
        if not lang:
            raise CatalogValidationError(
                "Content language is required",
                kind="document",
                operation="update_content",
                entity_id=document_id,
            )
        self._run(
            "document", "update_content", document_id,
            lambda: self._store.update_document_content(document_id, lang, html or ""),
            [f"content.{lang}"],
        )

    def delete_document(self, document_id: str) -> None:
        self._run("document", "delete", document_id, lambda: self._store.delete_document(document_id))

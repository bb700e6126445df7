"""
doccatalog Models — Role, Category, Tag and Document snapshots.

Category: grouping of documents carrying a role-level view permission set.
Tag: free label, many-to-many with Document through ``tag_ids``.
Document: catalog entry; its own view permissions only *extend* access.

All models are frozen. The catalog never edits a snapshot in place; the
next store push replaces it wholesale. Raw store payloads are coerced here:
numbers in text fields become strings, and permission values that are not
known roles are dropped, so malformed permission data can only ever narrow
access.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger("doccatalog.documents.models")

Translate = Callable[[str], str]


class Role(str, Enum):
    """Closed set of access levels."""
    GUEST = "guest"
    FOREMAN = "foreman"
    ENGINEER = "engineer"
    ARCHITECT = "architect"
    ADMIN = "admin"
    EMPLOYEE = "employee"
    WORKER = "worker"
    DISPATCHER = "dispatcher"
    HR = "hr"

    @classmethod
    def coerce(cls, value: Any) -> Optional["Role"]:
        """Return the Role for *value*, or None when it is not a known role."""
        if isinstance(value, Role):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return None
        return None

    @classmethod
    def viewer(cls, value: Any) -> "Role":
        """Coerce a viewer role; unknown values get the lowest privilege."""
        role = cls.coerce(value)
        if role is None:
            logger.warning(f"Unknown viewer role {value!r} — treating as guest")
            return cls.GUEST
        return role


ALL_ROLES: Tuple[Role, ...] = tuple(Role)


class SortBy(str, Enum):
    RECENT = "recent"
    ALPHA = "alpha"


class ViewMode(str, Enum):
    GRID = "grid"
    LIST = "list"


# ---------------------------------------------------------------------------
# Boundary coercion helpers
# ---------------------------------------------------------------------------

def normalize_category_key(key: Any) -> str:
    """Canonical form used whenever two category keys are compared."""
    if not isinstance(key, str):
        return ""
    return key.strip().casefold()


def coerce_text(value: Any) -> Any:
    """Numbers become strings (unquoted YAML ids, numeric titles); other values pass through."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def coerce_roles(value: Any) -> FrozenSet[Role]:
    """
    Coerce a raw permission list into a set of Roles.

    Anything that is not an iterable of strings yields an empty set, and
    unknown role names are dropped. Both outcomes grant nothing.
    """
    if value is None:
        return frozenset()
    if isinstance(value, (str, bytes, dict)):
        logger.warning(f"Malformed permission list {value!r} — ignoring")
        return frozenset()
    try:
        items = list(value)
    except TypeError:
        logger.warning(f"Malformed permission list {value!r} — ignoring")
        return frozenset()

    roles = set()
    for item in items:
        role = Role.coerce(item)
        if role is None:
            logger.debug(f"Dropping unknown role {item!r} from permission list")
            continue
        roles.add(role)
    return frozenset(roles)


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """
    Coerce a stored timestamp to an aware datetime.

    Accepts datetimes, epoch seconds, ISO-8601 strings and
    ``{"seconds": ..., "nanoseconds": ...}`` maps. Anything else is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, dict) and "seconds" in value:
        try:
            seconds = float(value["seconds"]) + float(value.get("nanoseconds", 0)) / 1e9
        except (TypeError, ValueError):
            return None
        return coerce_timestamp(seconds)
    return None


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class Category(BaseModel):
    """Document grouping with a role-level view permission set."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(description="Store identifier")
    name_key: str = Field(alias="nameKey", min_length=1, description="Stable unique key")
    view_permissions: FrozenSet[Role] = Field(
        default_factory=frozenset,
        alias="viewPermissions",
        description="Roles allowed to see the category and its documents",
    )
    icon_name: Optional[str] = Field(default=None, alias="iconName")

    @field_validator("id", "name_key", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        return coerce_text(v)

    @field_validator("view_permissions", mode="before")
    @classmethod
    def _coerce_permissions(cls, v: Any) -> FrozenSet[Role]:
        return coerce_roles(v)

    @property
    def normalized_key(self) -> str:
        return normalize_category_key(self.name_key)


class Tag(BaseModel):
    """Free label attached to documents."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: Optional[str] = None

    @field_validator("id", "name", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        return coerce_text(v)


class Document(BaseModel):
    """
    Catalog document snapshot.

    ``view_permissions`` is an optional per-document grant on top of the
    category grant; it cannot take access away.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    category_key: str = Field(default="", alias="categoryKey")
    tag_ids: Tuple[str, ...] = Field(default=(), alias="tagIds")
    view_permissions: FrozenSet[Role] = Field(default_factory=frozenset, alias="viewPermissions")
    download_permissions: FrozenSet[Role] = Field(
        default_factory=frozenset, alias="downloadPermissions"
    )
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    title: Optional[str] = None
    title_key: Optional[str] = Field(default=None, alias="titleKey")
    description: Optional[str] = None
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl")
    content: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    @field_validator("id", "title", "title_key", "description", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        return coerce_text(v)

    @field_validator("category_key", mode="before")
    @classmethod
    def _coerce_category_key(cls, v: Any) -> str:
        v = coerce_text(v)
        return v if isinstance(v, str) else ""

    @field_validator("tag_ids", mode="before")
    @classmethod
    def _coerce_tag_ids(cls, v: Any) -> Tuple[str, ...]:
        if v is None or isinstance(v, (str, bytes, dict)):
            return ()
        try:
            return tuple(str(t) for t in v)
        except TypeError:
            return ()

    @field_validator("view_permissions", "download_permissions", mode="before")
    @classmethod
    def _coerce_permissions(cls, v: Any) -> FrozenSet[Role]:
        return coerce_roles(v)

    @field_validator("updated_at", "created_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, v: Any) -> Optional[datetime]:
        return coerce_timestamp(v)

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, v: Any) -> Dict[str, Dict[str, str]]:
        if not isinstance(v, dict):
            return {}
        content: Dict[str, Dict[str, str]] = {}
        for lang, body in v.items():
            if isinstance(body, dict):
                content[str(lang)] = {"html": str(body.get("html") or "")}
        return content

    @property
    def normalized_category_key(self) -> str:
        return normalize_category_key(self.category_key)

    def display_title(self, translate: Optional[Translate] = None) -> str:
        """Localized title when a title key is present, else the literal title."""
        if self.title_key:
            return translate(self.title_key) if translate else self.title_key
        return self.title or ""

    def html(self, lang: str) -> str:
        """Content body for *lang*, empty when there is none."""
        return self.content.get(lang, {}).get("html", "")


def identity_translate(key: str) -> str:
    """Fallback translator: the key itself."""
    return key

"""
doccatalog Tables — SQLAlchemy rows for categories, tags and documents.

Permission sets, tag ids and per-language content are JSON columns. Rows
convert to the raw camelCase records that stores push to subscribers.
"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import JSON, Column, Index, String, Text

from doccatalog.db.base import Base, TimestampMixin


def _iso(value: Any) -> Any:
    return value.isoformat() if value is not None else None


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(String(100), primary_key=True)
    name_key = Column(String(255), nullable=False, unique=True)
    view_permissions = Column(JSON, nullable=False, default=list)
    icon_name = Column(String(100), nullable=True)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "nameKey": self.name_key,
            "viewPermissions": list(self.view_permissions or []),
            "iconName": self.icon_name,
        }


class TagRow(Base):
    __tablename__ = "tags"

    id = Column(String(100), primary_key=True)
    name = Column(String(255), nullable=False)
    color = Column(String(50), nullable=True)

    def to_record(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color}


class DocumentRow(TimestampMixin, Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_category_updated", "category_norm", "updated_at"),
    )

    id = Column(String(100), primary_key=True)
    category_key = Column(String(255), nullable=False, default="")
    # normalized copy of category_key, used for server-side filtering
    category_norm = Column(String(255), nullable=False, default="", index=True)
    tag_ids = Column(JSON, nullable=False, default=list)
    view_permissions = Column(JSON, nullable=False, default=list)
    download_permissions = Column(JSON, nullable=False, default=list)
    title = Column(String(500), nullable=True)
    title_key = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    thumbnail_url = Column(String(1000), nullable=True)
    content = Column(JSON, nullable=False, default=dict)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "categoryKey": self.category_key,
            "tagIds": list(self.tag_ids or []),
            "viewPermissions": list(self.view_permissions or []),
            "downloadPermissions": list(self.download_permissions or []),
            "title": self.title,
            "titleKey": self.title_key,
            "description": self.description,
            "thumbnailUrl": self.thumbnail_url,
            "content": dict(self.content or {}),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# Raw record field → column attribute, per table
CATEGORY_FIELDS = {"nameKey": "name_key", "viewPermissions": "view_permissions", "iconName": "icon_name"}
TAG_FIELDS = {"name": "name", "color": "color"}
DOCUMENT_FIELDS = {
    "categoryKey": "category_key",
    "tagIds": "tag_ids",
    "viewPermissions": "view_permissions",
    "downloadPermissions": "download_permissions",
    "title": "title",
    "titleKey": "title_key",
    "description": "description",
    "thumbnailUrl": "thumbnail_url",
    "content": "content",
}

"""Unit tests for doccatalog.documents.models — Role coercion and record parsing."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from doccatalog.documents.models import (
    ALL_ROLES,
    Category,
    Document,
    Role,
    SortBy,
    Tag,
    coerce_roles,
    coerce_timestamp,
    identity_translate,
    normalize_category_key,
)


class TestRole:
    def test_closed_set(self):
        assert len(ALL_ROLES) == 9
        assert Role("foreman") is Role.FOREMAN

    def test_coerce_known(self):
        assert Role.coerce("Engineer ") == Role.ENGINEER
        assert Role.coerce(Role.HR) == Role.HR

    def test_coerce_unknown_is_none(self):
        assert Role.coerce("superuser") is None
        assert Role.coerce(42) is None
        assert Role.coerce(None) is None

    def test_viewer_unknown_is_guest(self):
        assert Role.viewer("superuser") == Role.GUEST
        assert Role.viewer(None) == Role.GUEST
        assert Role.viewer("admin") == Role.ADMIN


class TestCoercion:
    def test_normalize_category_key(self):
        assert normalize_category_key(" Categories.Safety ") == "categories.safety"
        assert normalize_category_key(None) == ""
        assert normalize_category_key(7) == ""

    def test_coerce_roles_drops_unknown(self):
        assert coerce_roles(["foreman", "pilot", "HR"]) == frozenset({Role.FOREMAN, Role.HR})

    def test_coerce_roles_malformed_grants_nothing(self):
        assert coerce_roles("foreman") == frozenset()
        assert coerce_roles({"foreman": True}) == frozenset()
        assert coerce_roles(12) == frozenset()
        assert coerce_roles(None) == frozenset()

    def test_coerce_timestamp_forms(self):
        expected = datetime.fromtimestamp(100, tz=timezone.utc)
        assert coerce_timestamp(100) == expected
        assert coerce_timestamp({"seconds": 100, "nanoseconds": 0}) == expected
        assert coerce_timestamp("1970-01-01T00:01:40Z") == expected
        assert coerce_timestamp(datetime(1970, 1, 1, 0, 1, 40)) == expected

    def test_coerce_timestamp_garbage(self):
        assert coerce_timestamp("yesterday") is None
        assert coerce_timestamp(True) is None
        assert coerce_timestamp([1]) is None


class TestCategory:
    def test_parse_aliases(self):
        c = Category.model_validate({"id": "c1", "nameKey": "docs", "viewPermissions": ["foreman"]})
        assert c.name_key == "docs"
        assert c.view_permissions == frozenset({Role.FOREMAN})

    def test_name_key_required(self):
        with pytest.raises(ValidationError):
            Category.model_validate({"id": "c1"})

    def test_frozen(self):
        c = Category(id="c1", name_key="docs")
        with pytest.raises(ValidationError):
            c.name_key = "other"

    def test_normalized_key(self):
        assert Category(id="c1", name_key=" Docs").normalized_key == "docs"


class TestDocument:
    def test_defaults(self):
        d = Document(id="d1")
        assert d.category_key == ""
        assert d.tag_ids == ()
        assert d.view_permissions == frozenset()
        assert d.updated_at is None

    def test_malformed_fields_coerced(self):
        d = Document.model_validate({
            "id": "d1",
            "categoryKey": ["docs"],
            "tagIds": "t1",
            "viewPermissions": "admin",
            "updatedAt": "not a date",
            "content": {"uk": {"html": "<p>x</p>"}, "en": "bad"},
        })
        assert d.category_key == ""
        assert d.tag_ids == ()
        assert d.view_permissions == frozenset()
        assert d.updated_at is None
        assert d.content == {"uk": {"html": "<p>x</p>"}}

    def test_numeric_text_fields_become_strings(self):
        d = Document.model_validate({"id": 10, "categoryKey": 7, "title": 2024, "description": 1.5})
        assert d.id == "10"
        assert d.category_key == "7"
        assert d.title == "2024"
        assert d.description == "1.5"

    def test_bool_text_field_rejected(self):
        with pytest.raises(ValidationError):
            Document.model_validate({"id": True})

    def test_display_title_prefers_title_key(self):
        d = Document(id="d1", title="Literal", title_key="docs.helmets")
        assert d.display_title() == "docs.helmets"
        assert d.display_title(lambda k: "Helmets") == "Helmets"

    def test_display_title_literal(self):
        assert Document(id="d1", title="Literal").display_title(identity_translate) == "Literal"
        assert Document(id="d1").display_title() == ""

    def test_html(self):
        d = Document.model_validate({"id": "d1", "content": {"uk": {"html": "<p>uk</p>"}}})
        assert d.html("uk") == "<p>uk</p>"
        assert d.html("en") == ""


def test_tag_parse():
    t = Tag.model_validate({"id": "t1", "name": "Concrete"})
    assert t.color is None


def test_sort_values():
    assert SortBy("recent") == SortBy.RECENT
    assert SortBy("alpha") == SortBy.ALPHA


def test_numeric_ids_from_yaml():
    c = Category.model_validate({"id": 1, "nameKey": 2024, "viewPermissions": ["foreman"]})
    assert (c.id, c.name_key) == ("1", "2024")
    t = Tag.model_validate({"id": 3, "name": 42})
    assert (t.id, t.name) == ("3", "42")

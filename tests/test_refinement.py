"""Unit tests for doccatalog.documents.refinement — client-side narrowing and sort."""

import pytest

from doccatalog.documents.models import Category, Document, Role, SortBy
from doccatalog.documents.refinement import (
    RefinementInputs,
    RefinementPipeline,
    collation_key,
    filter_by_categories,
    filter_by_search,
    filter_by_tags,
    filter_by_target_roles,
    refine,
    sort_documents,
)


def _docs(records):
    return tuple(Document.model_validate(r) for r in records)


def _cats(records):
    return tuple(Category.model_validate(r) for r in records)


class TestSort:
    def test_recent_missing_last(self):
        docs = _docs([
            {"id": "a", "updatedAt": 5},
            {"id": "b", "updatedAt": 3},
            {"id": "c", "updatedAt": 9},
            {"id": "d"},
        ])
        assert [d.id for d in sort_documents(docs, SortBy.RECENT)] == ["c", "a", "b", "d"]

    def test_recent_is_stable(self):
        docs = _docs([{"id": "x", "updatedAt": 1}, {"id": "y", "updatedAt": 1}, {"id": "z"}, {"id": "w"}])
        assert [d.id for d in sort_documents(docs, SortBy.RECENT)] == ["x", "y", "z", "w"]

    def test_alpha_locale_aware(self):
        docs = _docs([
            {"id": "1", "title": "zebra"},
            {"id": "2", "title": "Émile"},
            {"id": "3", "title": "apple"},
            {"id": "4", "title": "Banana"},
        ])
        assert [d.title for d in sort_documents(docs, SortBy.ALPHA)] == ["apple", "Banana", "Émile", "zebra"]

    def test_alpha_uses_display_title(self):
        docs = _docs([{"id": "1", "titleKey": "k.b"}, {"id": "2", "titleKey": "k.a"}])
        table = {"k.a": "Zeta", "k.b": "Alpha"}
        ordered = sort_documents(docs, SortBy.ALPHA, lambda k: table[k])
        assert [d.id for d in ordered] == ["1", "2"]

    def test_collation_key_ignores_accents_and_case(self):
        assert collation_key("Émile")[0] == collation_key("emile")[0]


class TestFilters:
    def setup_method(self):
        self.docs = _docs([
            {"id": "d1", "categoryKey": "a", "title": "Concrete Mixing", "tagIds": ["t1", "t2"]},
            {"id": "d2", "categoryKey": "b", "title": "Helmets", "description": "Mixing zone rules",
             "tagIds": ["t1"]},
            {"id": "d3", "categoryKey": "c", "title": "Vacation", "tagIds": []},
        ])

    def test_search_empty_returns_input(self):
        assert filter_by_search(self.docs, "") == self.docs

    def test_search_whitespace_is_literal(self):
        assert [d.id for d in filter_by_search(self.docs, "mixing ")] == ["d2"]
        assert filter_by_search(self.docs, "   ") == ()

    def test_search_no_match_is_empty(self):
        assert filter_by_search(self.docs, "nothing-like-this") == ()

    def test_search_title_or_description_case_insensitive(self):
        assert [d.id for d in filter_by_search(self.docs, "MIXING")] == ["d1", "d2"]

    def test_search_uses_translated_title(self):
        docs = _docs([{"id": "d1", "titleKey": "docs.helmets"}])
        assert filter_by_search(docs, "каски", lambda k: "Каски") == docs
        assert filter_by_search(docs, "каски") == ()

    def test_tags_and_semantics(self):
        assert [d.id for d in filter_by_tags(self.docs, ["t1"])] == ["d1", "d2"]
        assert [d.id for d in filter_by_tags(self.docs, ["t1", "t2"])] == ["d1"]
        assert filter_by_tags(self.docs, []) == self.docs

    def test_categories_single_is_noop(self):
        assert filter_by_categories(self.docs, ["a"]) == self.docs

    def test_categories_multi_select(self):
        assert [d.id for d in filter_by_categories(self.docs, ["A", "c"])] == ["d1", "d3"]

    def test_target_roles_any_semantics(self):
        cats = _cats([
            {"id": "1", "nameKey": "a", "viewPermissions": ["foreman"]},
            {"id": "2", "nameKey": "b", "viewPermissions": ["engineer"]},
            {"id": "3", "nameKey": "c", "viewPermissions": ["hr"]},
        ])
        result = filter_by_target_roles(self.docs, [Role.FOREMAN, Role.ENGINEER], cats)
        assert [d.id for d in result] == ["d1", "d2"]
        assert filter_by_target_roles(self.docs, [], cats) == self.docs


class TestRefine:
    def setup_method(self):
        self.categories = _cats([
            {"id": "1", "nameKey": "safety", "viewPermissions": ["foreman", "worker"]},
            {"id": "2", "nameKey": "hr", "viewPermissions": ["hr"]},
        ])
        self.documents = _docs([
            {"id": "d1", "categoryKey": "safety", "title": "Helmets", "tagIds": ["t1"], "updatedAt": 5},
            {"id": "d2", "categoryKey": "safety", "title": "Gloves", "updatedAt": 3},
            {"id": "d3", "categoryKey": "hr", "title": "Helmet allowance", "updatedAt": 9},
            {"id": "d4", "categoryKey": "safety", "title": "Harness"},
        ])

    def _inputs(self, **overrides):
        base = dict(viewer_role=Role.FOREMAN, documents=self.documents, categories=self.categories)
        base.update(overrides)
        return RefinementInputs(**base)

    def test_access_filter_first(self):
        assert [d.id for d in refine(self._inputs())] == ["d1", "d2", "d4"]

    def test_search_after_access(self):
        assert [d.id for d in refine(self._inputs(search="helmet"))] == ["d1"]

    def test_admin_search(self):
        result = refine(self._inputs(viewer_role=Role.ADMIN, search="helmet"))
        assert [d.id for d in result] == ["d3", "d1"]

    def test_alpha(self):
        result = refine(self._inputs(sort_by=SortBy.ALPHA))
        assert [d.title for d in result] == ["Gloves", "Harness", "Helmets"]

    def test_no_role_is_empty(self):
        assert refine(self._inputs(viewer_role=None)) == ()


class TestRefinementPipeline:
    def setup_method(self):
        self.categories = _cats([{"id": "1", "nameKey": "safety", "viewPermissions": ["foreman"]}])
        self.documents = _docs([{"id": "d1", "categoryKey": "safety", "title": "Helmets", "tagIds": ["t1"]}])

    def test_memoized_on_unchanged_inputs(self):
        pipeline = RefinementPipeline()
        inputs = RefinementInputs(Role.FOREMAN, self.documents, self.categories, tag_ids=("t1",))
        first = pipeline.run(inputs)
        again = pipeline.run(RefinementInputs(Role.FOREMAN, self.documents, self.categories, tag_ids=("t1",)))
        assert first is again
        assert pipeline.runs == 1

    def test_facet_order_does_not_matter(self):
        pipeline = RefinementPipeline()
        pipeline.run(RefinementInputs(Role.FOREMAN, self.documents, self.categories, tag_ids=("t1", "t2")))
        pipeline.run(RefinementInputs(Role.FOREMAN, self.documents, self.categories, tag_ids=("t2", "t1")))
        assert pipeline.runs == 1

    def test_new_snapshot_reruns(self):
        pipeline = RefinementPipeline()
        pipeline.run(RefinementInputs(Role.FOREMAN, self.documents, self.categories))
        pipeline.run(RefinementInputs(Role.FOREMAN, tuple(self.documents), self.categories))
        # tuple() of a tuple is the same object
        assert pipeline.runs == 1
        pipeline.run(RefinementInputs(Role.FOREMAN, list(self.documents), self.categories))
        assert pipeline.runs == 2

    def test_search_change_reruns_without_access_recompute(self):
        pipeline = RefinementPipeline()
        pipeline.run(RefinementInputs(Role.FOREMAN, self.documents, self.categories))
        result = pipeline.run(RefinementInputs(Role.FOREMAN, self.documents, self.categories, search="zzz"))
        assert result == ()
        assert pipeline.runs == 2
        assert pipeline.resolver.misses == 1
        assert pipeline.resolver.hits == 1

    @pytest.mark.parametrize("sort_by", [SortBy.RECENT, SortBy.ALPHA])
    def test_clear(self, sort_by):
        pipeline = RefinementPipeline()
        inputs = RefinementInputs(Role.FOREMAN, self.documents, self.categories, sort_by=sort_by)
        pipeline.run(inputs)
        pipeline.clear()
        pipeline.run(inputs)
        assert pipeline.runs == 2

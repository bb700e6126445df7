"""Unit tests for doccatalog.engine.errors — Error hierarchy & serialization."""

import json

from doccatalog.engine.errors import (
    CatalogConfigError,
    CatalogError,
    CatalogValidationError,
    SubscriptionError,
    WriteError,
)


class TestCatalogError:
    def test_basic_creation(self):
        err = CatalogError("something broke")
        assert err.message == "something broke"
        assert str(err) == "something broke"
        assert err.error_type == "CatalogError"
        assert err.timestamp

    def test_to_dict(self):
        err = CatalogError("fail", kind="documents")
        d = err.to_dict()
        assert d["error_type"] == "CatalogError"
        assert d["message"] == "fail"
        assert d["context"]["kind"] == "documents"

    def test_to_json(self):
        parsed = json.loads(CatalogError("fail", cause=RuntimeError("x")).to_json())
        assert parsed["message"] == "fail"
        assert parsed["context"]["cause"] == "x"

    def test_repr(self):
        r = repr(WriteError("fail", kind="tag", entity_id="t1", operation="delete"))
        assert "WriteError" in r
        assert "entity_id=t1" in r


class TestSubclasses:
    def test_subscription_error(self):
        cause = RuntimeError("denied")
        err = SubscriptionError("stream failed", kind="tags", generation=3, cause=cause)
        assert err.kind == "tags"
        assert err.generation == 3
        assert err.cause is cause
        assert err.to_dict()["generation"] == 3

    def test_write_error(self):
        err = WriteError("rejected", kind="document", entity_id="d1", operation="update")
        d = err.to_dict()
        assert (d["kind"], d["entity_id"], d["operation"]) == ("document", "d1", "update")

    def test_validation_error(self):
        err = CatalogValidationError("bad", kind="tag", validation_errors=[{"loc": ["name"]}])
        assert isinstance(err, WriteError)
        assert err.to_dict()["validation_errors"] == [{"loc": ["name"]}]

    def test_hierarchy(self):
        for cls in (SubscriptionError, WriteError, CatalogValidationError, CatalogConfigError):
            assert issubclass(cls, CatalogError)

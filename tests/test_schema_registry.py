"""
Tests for the schema registry: loading, defaults, validation side effects.
"""

import json

import pytest
from jsonschema import SchemaError

from joauth.services.schema_registry import SchemaRegistry
from joauth.utils.exceptions import SchemaNotFoundError

PACKAGED_IDS = ["/Password", "/Query", "/User", "/UserEdit", "/UserPreRegister"]


class TestInit:
    def test_loads_packaged_documents(self, registry):
        assert registry.ids == PACKAGED_IDS

    def test_init_is_idempotent(self):
        registry = SchemaRegistry()
        registry.init()
        registry.init([{"$id": "/Extra", "type": "object"}])
        assert registry.ids == PACKAGED_IDS

    def test_init_from_directory(self, tmp_path):
        (tmp_path / "thing.json").write_text(json.dumps({
            "$schema": "http://json-schema.org/draft-07/schema#",
            "$id": "/Thing",
            "type": "object",
            "properties": {"size": {"type": "integer", "default": 3}},
        }))
        registry = SchemaRegistry()
        registry.init(tmp_path)
        assert registry.ids == ["/Thing"]
        assert registry.defaults("/Thing") == {"size": 3}

    def test_add_schema_requires_id(self):
        with pytest.raises(ValueError):
            SchemaRegistry().add_schema({"type": "object"})

    def test_add_schema_rejects_invalid_schema(self):
        with pytest.raises(SchemaError):
            SchemaRegistry().add_schema({"$id": "/Broken", "type": 12})

    def test_unknown_schema(self, registry):
        with pytest.raises(SchemaNotFoundError):
            registry.validate("/Nope", {})


class TestDefaults:
    def test_user_defaults(self, registry):
        assert registry.defaults("/User") == {"verified": False}

    def test_defaults_follow_refs(self, registry):
        assert registry.defaults("/UserPreRegister") == {"verified": False}

    def test_scalar_schema_has_no_defaults(self, registry):
        assert registry.defaults("/Password") is None

    def test_copies_are_independent(self, registry):
        first = registry.defaults("/User")
        second = registry.defaults("/User")
        assert first == second
        assert first is not second

        first["verified"] = True
        first["username"] = "mallory"
        assert second == {"verified": False}
        assert registry.defaults("/User") == {"verified": False}

    def test_nested_defaults_are_deep_copies(self):
        registry = SchemaRegistry()
        registry.add_schema({
            "$id": "/Prefs",
            "type": "object",
            "properties": {"tags": {"type": "array", "default": ["a"]}},
        })
        first = registry.defaults("/Prefs")
        first["tags"].append("b")
        assert registry.defaults("/Prefs") == {"tags": ["a"]}

    def test_ref_to_later_schema_is_resolved_lazily(self):
        registry = SchemaRegistry()
        registry.add_schema({
            "$id": "/Outer",
            "type": "object",
            "properties": {"inner": {"$ref": "/Inner"}},
        })
        registry.add_schema({
            "$id": "/Inner",
            "type": "object",
            "properties": {"flag": {"type": "boolean", "default": True}},
        })
        assert registry.defaults("/Outer") == {"inner": {"flag": True}}


class TestValidate:
    def test_valid_pre_register_user(self, registry):
        user = {"username": "alice", "email": "alice@example.com", "creation": "2026-01-01T00:00:00+00:00"}
        result = registry.validate("/UserPreRegister", user)
        assert result
        assert result.errors == []

    def test_collects_every_error(self, registry):
        result = registry.validate("/UserPreRegister", {"username": "x", "email": "not-an-email"})
        assert not result
        assert set(result.properties) == {"username", "email", "creation"}

    def test_strips_unknown_properties_in_place(self, registry):
        edit = {"username": "bob", "isAdmin": True}
        assert registry.validate("/UserEdit", edit)
        assert edit == {"username": "bob"}

    def test_coerces_scalars_in_place(self, registry):
        edit = {"verified": "false"}
        assert registry.validate("/UserEdit", edit)
        assert edit == {"verified": False}

    def test_top_level_scalar_is_returned_coerced(self, registry):
        result = registry.validate("/Password", 1234567890)
        assert result
        assert result.data == "1234567890"

    def test_uncoercible_value_fails(self, registry):
        result = registry.validate("/UserEdit", {"verified": "maybe"})
        assert not result
        assert result.errors[0]["property"] == "verified"
        assert result.errors[0]["keyword"] == "type"

    def test_password_bounds(self, registry):
        assert not registry.validate("/Password", "short")
        assert not registry.validate("/Password", "x" * 73)
        assert registry.validate("/Password", "long enough")

    def test_errors_reports_last_validation(self, registry):
        registry.validate("/Password", "short")
        assert registry.errors()[0]["keyword"] == "minLength"
        registry.validate("/Password", "long enough")
        assert registry.errors() == []

    def test_query_requires_a_non_empty_or(self, registry):
        assert not registry.validate("/Query", {"filter": {"$or": []}})
        assert registry.validate("/Query", {"filter": {"$or": [{"username": "alice"}]}, "fields": ["_id"]})
        assert registry.validate("/Query", {"filter": {"username": "alice"}, "fields": True})
        assert not registry.validate("/Query", {"filter": {"username": "alice"}, "fields": False})


def test_fields_safe_private(registry):
    assert registry.fields_safe_private("/User") == ["_id", "username", "email", "creation", "verified"]
    assert registry.fields_safe_private("/Password") == []

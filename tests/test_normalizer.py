"""Tests for SchemaNormalizer and SchemaActionManager."""

import copy

import pytest

from schemacrud.schema.actions import SchemaActionManager
from schemacrud.schema.normalizer import SchemaNormalizer

from conftest import GROUPS, ROLES, USERS

# Legacy boolean type with an explicit widget hint
LEGACY_WIDGET = {
    "model": "items",
    "table": "items",
    "fields": {"id": {}, "active": {"type": "boolean-tgl", "ui": {"widget": "select"}}},
}


@pytest.fixture
def normalizer() -> SchemaNormalizer:
    return SchemaNormalizer()


class TestDefaults:
    """Top-level defaults are only applied when absent."""

    def test_defaults_applied(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({"model": "tags", "table": "tags", "fields": {"id": {}}})
        assert schema["primary_key"] == "id"
        assert schema["timestamps"] is True
        assert schema["soft_delete"] is False

    def test_explicit_values_kept(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({
            "model": "tags",
            "table": "tags",
            "primary_key": "tag_id",
            "timestamps": False,
            "soft_delete": True,
            "fields": {"tag_id": {}},
        })
        assert schema["primary_key"] == "tag_id"
        assert schema["timestamps"] is False
        assert schema["soft_delete"] is True

    def test_input_not_mutated(self, normalizer: SchemaNormalizer) -> None:
        raw = copy.deepcopy(USERS)
        normalizer.normalize(raw)
        assert raw == USERS


class TestFieldFlags:
    """listable defaults to false, viewable to true, editable derived."""

    def test_secure_defaults(self, normalizer: SchemaNormalizer) -> None:
        fields = normalizer.normalize(USERS)["fields"]
        assert fields["password"]["listable"] is False
        assert fields["password"]["viewable"] is True
        assert fields["user_name"]["listable"] is True

    def test_editable_derived(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({
            "model": "posts",
            "table": "posts",
            "fields": {
                "id": {"type": "integer", "auto_increment": True},
                "slug": {"type": "string", "readonly": True},
                "score": {"type": "integer", "computed": True},
                "title": {"type": "string"},
                "locked": {"type": "string", "readonly": True, "editable": True},
            },
        })
        fields = schema["fields"]
        assert fields["id"]["editable"] is False
        assert fields["slug"]["editable"] is False
        assert fields["score"]["editable"] is False
        assert fields["title"]["editable"] is True
        assert fields["locked"]["editable"] is True

    def test_show_in_drives_flags(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({
            "model": "posts",
            "table": "posts",
            "fields": {
                "id": {"type": "integer"},
                "title": {"type": "string", "show_in": ["list", "form"]},
                "body": {"type": "text", "show_in": ["detail"]},
            },
        })
        title = schema["fields"]["title"]
        assert title["show_in"] == ["list", "create", "edit"]
        assert (title["listable"], title["editable"], title["viewable"]) == (True, True, False)
        body = schema["fields"]["body"]
        assert (body["listable"], body["editable"], body["viewable"]) == (False, False, True)


class TestLookup:
    """All lookup shapes end up in field["lookup"]."""

    def _lookup(self, normalizer: SchemaNormalizer, field_def: dict) -> dict:
        schema = normalizer.normalize({
            "model": "orders",
            "table": "orders",
            "fields": {"id": {"type": "integer"}, "customer_id": {"type": "smartlookup", **field_def}},
        })
        return schema["fields"]["customer_id"]["lookup"]

    def test_nested(self, normalizer: SchemaNormalizer) -> None:
        lookup = self._lookup(normalizer, {"lookup": {"model": "customers", "id": "id", "desc": "name"}})
        assert lookup == {"model": "customers", "id": "id", "desc": "name"}

    def test_flat(self, normalizer: SchemaNormalizer) -> None:
        lookup = self._lookup(normalizer, {"lookup_model": "customers", "lookup_id": "id", "lookup_desc": "name"})
        assert lookup == {"model": "customers", "id": "id", "desc": "name"}

    def test_shorthand(self, normalizer: SchemaNormalizer) -> None:
        lookup = self._lookup(normalizer, {"model": "customers", "id": "id", "desc": "name"})
        assert lookup == {"model": "customers", "id": "id", "desc": "name"}

    def test_nested_promoted_to_flat(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({
            "model": "orders",
            "table": "orders",
            "fields": {"id": {}, "customer_id": {"type": "smartlookup", "lookup": {"model": "customers", "desc": "name"}}},
        })
        field_def = schema["fields"]["customer_id"]
        assert (field_def["lookup_model"], field_def["lookup_desc"]) == ("customers", "name")
        assert "lookup_id" not in field_def

    def test_precedence_flat_then_nested_then_shorthand(self, normalizer: SchemaNormalizer) -> None:
        lookup = self._lookup(normalizer, {
            "lookup_model": "flat_customers",
            "lookup": {"model": "nested_customers", "id": "nested_id"},
            "model": "short_customers",
            "id": "short_id",
            "desc": "short_desc",
        })
        assert lookup == {"model": "flat_customers", "id": "nested_id", "desc": "short_desc"}

    def test_references_become_lookup(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({
            "model": "orders",
            "table": "orders",
            "fields": {
                "id": {"type": "integer"},
                "customer_id": {
                    "type": "integer",
                    "references": {"table": "customers", "key": "id", "display": "name"},
                },
            },
        })
        field_def = schema["fields"]["customer_id"]
        assert field_def["type"] == "smartlookup"
        assert field_def["lookup"] == {"model": "customers", "id": "id", "desc": "name"}


class TestOrmAttributes:
    """ORM-style spellings map onto native attributes."""

    def test_aliases(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({
            "model": "items",
            "table": "items",
            "fields": {
                "id": {"type": "integer", "autoIncrement": True, "primaryKey": True},
                "code": {"type": "string", "nullable": False, "unique": True, "length": 20},
                "qty": {"type": "integer", "defaultValue": 1, "validate": {"min": 0}},
                "label": {"type": "string", "ui": {"label": "Label", "show_in": ["list"], "sortable": True}},
            },
        })
        fields = schema["fields"]
        assert fields["id"]["auto_increment"] is True
        assert fields["id"]["primary"] is True
        assert fields["id"]["editable"] is False
        assert fields["code"]["required"] is True
        assert fields["code"]["validation"] == {"unique": True, "length": {"max": 20}}
        assert fields["qty"]["default"] == 1
        assert fields["qty"]["validation"] == {"min": 0}
        assert fields["label"]["label"] == "Label"
        assert fields["label"]["sortable"] is True
        assert fields["label"]["listable"] is True

    def test_legacy_boolean_types(self, normalizer: SchemaNormalizer) -> None:
        fields = normalizer.normalize(USERS)["fields"]
        assert fields["flag_enabled"]["type"] == "boolean"
        assert fields["flag_enabled"]["ui"] == "toggle"

    def test_boolean_widget(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({
            "model": "items",
            "table": "items",
            "fields": {"id": {}, "active": {"type": "boolean", "ui": {"widget": "toggle"}}},
        })
        assert schema["fields"]["active"]["ui"] == "toggle"

    def test_widget_overrides_legacy_type(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize(LEGACY_WIDGET)
        assert schema["fields"]["active"]["type"] == "boolean"
        assert schema["fields"]["active"]["ui"] == "select"


class TestStructure:
    """Relationships and detail sections take one canonical shape."""

    def test_relationship_map_becomes_list(self, normalizer: SchemaNormalizer) -> None:
        relationships = normalizer.normalize(ROLES)["relationships"]
        assert isinstance(relationships, list)
        assert relationships[0]["name"] == "permissions"
        assert relationships[0]["pivot_table"] == "permission_roles"

    def test_detail_becomes_details_list(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize(GROUPS)
        assert "detail" not in schema
        assert schema["details"] == [GROUPS["detail"]]

    def test_detail_and_details_merged(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({
            "model": "orders",
            "table": "orders",
            "fields": {"id": {}},
            "detail": {"model": "lines", "foreign_key": "order_id"},
            "details": [{"model": "notes", "foreign_key": "order_id"}],
        })
        assert [section["model"] for section in schema["details"]] == ["lines", "notes"]


class TestIdempotence:
    """Normalizing a normalized schema changes nothing."""

    @pytest.mark.parametrize("raw", [GROUPS, USERS, ROLES, LEGACY_WIDGET])
    def test_normalize_twice(self, normalizer: SchemaNormalizer, raw: dict) -> None:
        once = normalizer.normalize(raw)
        twice = normalizer.normalize(once)
        assert twice == once

    def test_lookup_idempotent(self, normalizer: SchemaNormalizer) -> None:
        raw = {
            "model": "orders",
            "table": "orders",
            "fields": {"id": {}, "customer_id": {"type": "smartlookup", "lookup_model": "customers", "desc": "name"}},
        }
        once = normalizer.normalize(raw)
        assert normalizer.normalize(once) == once


class TestActions:
    """Default and toggle actions."""

    def test_default_actions_follow_permissions(self, normalizer: SchemaNormalizer) -> None:
        actions = normalizer.normalize(GROUPS)["actions"]
        assert [action["key"] for action in actions] == ["create_action", "edit_action", "delete_action"]
        assert actions[0]["permission"] == "create_group"

    def test_default_actions_disabled(self, normalizer: SchemaNormalizer) -> None:
        schema = normalizer.normalize({**GROUPS, "default_actions": False})
        assert "actions" not in schema

    def test_custom_action_kept_after_defaults(self, normalizer: SchemaNormalizer) -> None:
        custom = {"key": "toggle_enabled", "type": "field_update", "field": "flag_enabled", "toggle": True}
        schema = normalizer.normalize({**USERS, "actions": [custom]})
        keys = [action["key"] for action in schema["actions"]]
        assert keys == ["edit_action", "toggle_enabled"]
        toggle = schema["actions"][1]
        assert "Flag enabled" in toggle["confirm"]
        assert toggle["modal_config"]["type"] == "confirm"

    def test_filter_actions_by_scope(self) -> None:
        actions = [
            {"key": "a", "scope": ["list"]},
            {"key": "b", "scope": "detail"},
            {"key": "c"},
        ]
        filtered = SchemaActionManager().filter_actions_by_scope(actions, "detail")
        assert [action["key"] for action in filtered] == ["b", "c"]

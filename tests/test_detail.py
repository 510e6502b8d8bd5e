"""Tests for DetailResolver: detail sections, relationships and failure isolation."""

import pytest
from sqlalchemy import event, text

from schemacrud.core.errors import ConfigurationError, RecordNotFoundError, ValidationError
from schemacrud.runtime.detail import DetailResolver
from schemacrud.schema.service import SchemaService

from conftest import USERS, write_schema


@pytest.fixture
def resolver(service: SchemaService) -> DetailResolver:
    return DetailResolver(service)


class TestDetailSections:
    """One-to-many sections are scoped by the foreign key."""

    def test_group_users(self, seeded, resolver: DetailResolver) -> None:
        response = resolver.resolve(seeded, "groups", 1)
        users = response["details"]["users"]
        assert users.error is None
        assert users.count == 3
        assert users.rows == [
            {"user_name": "alice", "email": "alice@example.com"},
            {"user_name": "bob", "email": "bob@example.com"},
            {"user_name": "carol", "email": "carol@test.org"},
        ]
        assert response["relationships"] == {}

    def test_untyped_primary_key_parent(self, seeded, service: SchemaService, schema_dir) -> None:
        write_schema(schema_dir, {
            "model": "groups",
            "table": "groups",
            "fields": {"id": {"listable": True}, "name": {"type": "string", "listable": True}},
            "detail": {"model": "users", "foreign_key": "group_id", "list_fields": ["user_name", "email"]},
        })
        service.reload("groups")
        users = DetailResolver(service).resolve(seeded, "groups", "1")["details"]["users"]
        assert users.count == 3
        assert [row["user_name"] for row in users.rows] == ["alice", "bob", "carol"]

    def test_soft_deleted_children_hidden(self, seeded, resolver: DetailResolver, models) -> None:
        models["activities"].find_or_fail(seeded, 2).soft_delete(seeded)
        activities = resolver.resolve(seeded, "users", 1)["details"]["activities"]
        assert activities.rows == [{"description": "Logged in"}]

    def test_params_apply_to_sections(self, seeded, resolver: DetailResolver) -> None:
        users = resolver.list_detail(seeded, "groups", 1, "users", {"search": "car"})
        assert users.count == 1

    def test_unknown_section(self, seeded, resolver: DetailResolver) -> None:
        with pytest.raises(ConfigurationError, match="no detail section"):
            resolver.list_detail(seeded, "groups", 1, "invoices")

    def test_missing_parent(self, seeded, resolver: DetailResolver) -> None:
        with pytest.raises(RecordNotFoundError):
            resolver.resolve(seeded, "groups", 42)


class TestRelationships:
    """Relationships are listed through their pivots."""

    def test_all_relationships(self, seeded, resolver: DetailResolver) -> None:
        relationships = resolver.resolve(seeded, "users", 1)["relationships"]
        assert [row["slug"] for row in relationships["roles"].rows] == ["admin", "editor"]
        assert relationships["permissions"].count == 2
        assert [row["slug"] for row in relationships["permissions"].rows] == ["manage", "edit"]

    def test_list_relationship(self, seeded, resolver: DetailResolver) -> None:
        roles = resolver.list_relationship(seeded, "users", 1, "roles", {"sort": {"slug": "desc"}})
        assert [row["slug"] for row in roles.rows] == ["editor", "admin"]

    def test_list_relationship_validates_params(self, seeded, resolver: DetailResolver) -> None:
        with pytest.raises(ValidationError):
            resolver.list_relationship(seeded, "users", 1, "roles", {"sort": {"name": "sideways"}})

    def test_list_relationship_errors_propagate(self, seeded, resolver: DetailResolver) -> None:
        with pytest.raises(ConfigurationError, match="not defined"):
            resolver.list_relationship(seeded, "users", 1, "teams")


class TestIsolation:
    """A failing relationship does not take its siblings down."""

    def test_broken_relationship(self, seeded, service: SchemaService, schema_dir) -> None:
        broken = {
            **USERS,
            "relationships": USERS["relationships"] + [
                {"name": "teams", "type": "many_to_many", "foreign_key": "user_id", "related_key": "team_id"},
            ],
        }
        write_schema(schema_dir, broken)
        service.reload("users")

        relationships = DetailResolver(service).resolve(seeded, "users", 1)["relationships"]

        teams = relationships["teams"]
        assert teams.rows == []
        assert teams.count == 0
        assert teams.error["kind"] == "relationship_query_error"
        assert teams.error["relationship"] == "teams"
        assert "pivot_table" in teams.error["message"]

        assert relationships["roles"].error is None
        assert relationships["roles"].count == 2
        assert relationships["permissions"].count == 2

    def test_missing_related_schema(self, seeded, service: SchemaService, schema_dir) -> None:
        (schema_dir / "activities.json").unlink()
        service.reload()

        response = DetailResolver(service).resolve(seeded, "users", 1)
        assert response["details"]["activities"].error["cause"] == "not_found"
        assert response["relationships"]["roles"].count == 2

    def test_missing_table(self, seeded, service: SchemaService, schema_dir) -> None:
        write_schema(schema_dir, {
            **USERS,
            "relationships": [
                {"name": "tags", "type": "many_to_many", "pivot_table": "tag_users", "foreign_key": "user_id", "related_key": "tag_id"},
                USERS["relationships"][0],
            ],
        })
        write_schema(schema_dir, {"model": "tags", "table": "tags", "fields": {"id": {"type": "integer", "listable": True}}})
        service.reload()

        relationships = DetailResolver(service).resolve(seeded, "users", 1)["relationships"]
        assert relationships["tags"].error["cause"] == "OperationalError"
        assert relationships["roles"].count == 2

    def test_failure_rolled_back_to_savepoint(self, seeded, service: SchemaService, schema_dir) -> None:
        write_schema(schema_dir, {
            **USERS,
            "relationships": [
                {"name": "tags", "type": "many_to_many", "pivot_table": "tag_users", "foreign_key": "user_id", "related_key": "tag_id"},
                USERS["relationships"][0],
            ],
        })
        write_schema(schema_dir, {"model": "tags", "table": "tags", "fields": {"id": {"type": "integer", "listable": True}}})
        service.reload()

        savepoints: dict[str, list[str]] = {"begun": [], "rolled_back": [], "released": []}
        event.listen(seeded, "savepoint", lambda conn, name: savepoints["begun"].append(name))
        event.listen(seeded, "rollback_savepoint", lambda conn, name, context: savepoints["rolled_back"].append(name))
        event.listen(seeded, "release_savepoint", lambda conn, name, context: savepoints["released"].append(name))

        response = DetailResolver(service).resolve(seeded, "users", 1)

        # activities, tags and roles each get their own savepoint
        assert len(savepoints["begun"]) == 3
        assert len(savepoints["rolled_back"]) == 1
        assert len(savepoints["released"]) == 2
        assert response["relationships"]["roles"].count == 2
        assert response["details"]["activities"].count == 2

        # The outer transaction survives the failed statement
        assert seeded.in_transaction()
        assert not seeded.in_nested_transaction()
        assert seeded.execute(text("SELECT count(*) FROM users")).scalar() == 4

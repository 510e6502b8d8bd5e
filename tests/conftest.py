"""Shared fixtures: schema documents on disk and an in-memory SQLite database."""

import json
from pathlib import Path
from typing import Any, Optional

import pytest
from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, create_engine, insert
from sqlalchemy.pool import StaticPool

from schemacrud.config import CrudSettings
from schemacrud.runtime.crud import CrudRuntime
from schemacrud.schema.cache import SchemaCache
from schemacrud.schema.service import SchemaService
from schemacrud.service.database import ConnectionManager


GROUPS = {
    "model": "groups",
    "table": "groups",
    "title": "Groups",
    "permissions": {"read": "uri_groups", "create": "create_group", "update": "update_group", "delete": "delete_group"},
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "listable": True},
        "name": {"type": "string", "listable": True, "sortable": True, "filterable": True, "searchable": True},
        "description": {"type": "text"},
    },
    "detail": {"model": "users", "foreign_key": "group_id", "list_fields": ["user_name", "email"]},
}

USERS = {
    "model": "users",
    "table": "users",
    "default_sort": {"user_name": "asc"},
    "permissions": {"read": "uri_users", "update": "update_user_field"},
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "listable": True, "sortable": True},
        "user_name": {"type": "string", "listable": True, "sortable": True, "filterable": True, "searchable": True},
        "email": {"type": "string", "listable": True, "filterable": True, "searchable": True},
        "group_id": {"type": "integer", "listable": True, "sortable": True, "filterable": True},
        "age": {"type": "integer", "listable": True, "sortable": True, "filterable": True},
        "password": {"type": "password", "filterable": True},
        "flag_enabled": {"type": "boolean-tgl", "listable": True, "filterable": True},
    },
    "relationships": [
        {
            "name": "roles",
            "type": "many_to_many",
            "pivot_table": "role_users",
            "foreign_key": "user_id",
            "related_key": "role_id",
        },
        {
            "name": "permissions",
            "type": "belongs_to_many_through",
            "through": "roles",
            "first_pivot_table": "role_users",
            "first_foreign_key": "user_id",
            "first_related_key": "role_id",
            "second_pivot_table": "permission_roles",
            "second_foreign_key": "role_id",
            "second_related_key": "permission_id",
        },
    ],
    "details": [
        {"model": "activities", "foreign_key": "user_id", "list_fields": ["description"]},
    ],
}

ROLES = {
    "model": "roles",
    "table": "roles",
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "listable": True},
        "slug": {"type": "string", "listable": True, "sortable": True, "filterable": True},
        "name": {"type": "string", "listable": True, "sortable": True, "searchable": True},
    },
    "relationships": {
        "permissions": {
            "type": "many_to_many",
            "pivot_table": "permission_roles",
            "foreign_key": "role_id",
            "related_key": "permission_id",
        },
    },
}

PERMISSIONS = {
    "model": "permissions",
    "table": "permissions",
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "listable": True},
        "slug": {"type": "string", "listable": True, "sortable": True, "filterable": True, "searchable": True},
    },
}

ACTIVITIES = {
    "model": "activities",
    "table": "activities",
    "soft_delete": True,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "listable": True},
        "user_id": {"type": "integer", "listable": True, "filterable": True},
        "description": {"type": "string", "listable": True, "searchable": True},
    },
}

SCHEMAS = {
    "groups": GROUPS,
    "users": USERS,
    "roles": ROLES,
    "permissions": PERMISSIONS,
    "activities": ACTIVITIES,
}

PIVOTS = MetaData()

ROLE_USERS = Table(
    "role_users",
    PIVOTS,
    Column("user_id", Integer, nullable=False),
    Column("role_id", Integer, nullable=False),
    Column("created_at", DateTime, nullable=True),
)

PERMISSION_ROLES = Table(
    "permission_roles",
    PIVOTS,
    Column("role_id", Integer, nullable=False),
    Column("permission_id", Integer, nullable=False),
)


def write_schema(directory: Path, document: dict[str, Any], connection: Optional[str] = None) -> Path:
    """Write a schema document as JSON, into the connection folder if given."""
    target = directory / connection if connection else directory
    target.mkdir(parents=True, exist_ok=True)
    path = target / f"{document['model']}.json"
    path.write_text(json.dumps(document))
    return path


def insert_rows(conn, table, rows: list[dict[str, Any]]) -> None:
    conn.execute(insert(table), rows)


@pytest.fixture
def schema_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "schema"
    directory.mkdir()
    for document in SCHEMAS.values():
        write_schema(directory, document)
    return directory


@pytest.fixture
def settings(schema_dir: Path) -> CrudSettings:
    return CrudSettings(schema_path=str(schema_dir))


@pytest.fixture
def service(settings: CrudSettings) -> SchemaService:
    return SchemaService.from_settings(settings, cache=SchemaCache())


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def database(service: SchemaService, engine):
    """Engine with every model table and pivot table created."""
    for name in SCHEMAS:
        service.get_model_instance(name).table.metadata.create_all(engine)
    PIVOTS.create_all(engine)
    return engine


@pytest.fixture
def conn(database):
    with database.begin() as connection:
        yield connection


@pytest.fixture
def runtime(service: SchemaService, settings: CrudSettings, database) -> CrudRuntime:
    return CrudRuntime(service, ConnectionManager(settings, engines={"default": database}))


@pytest.fixture
def models(service: SchemaService) -> dict[str, Any]:
    return {name: service.get_model_instance(name) for name in SCHEMAS}


def seed(conn, models: dict[str, Any]) -> None:
    """
    Two groups, four users, three roles, three permissions.

    alice: roles admin + editor   -> permissions manage, edit (distinct)
    bob:   role editor            -> permission edit
    """
    insert_rows(conn, models["groups"].table, [
        {"id": 1, "name": "Staff"},
        {"id": 2, "name": "Guests"},
    ])
    insert_rows(conn, models["users"].table, [
        {"id": 1, "user_name": "alice", "email": "alice@example.com", "group_id": 1, "age": 31, "password": "x", "flag_enabled": True},
        {"id": 2, "user_name": "bob", "email": "bob@example.com", "group_id": 1, "age": 25, "password": "x", "flag_enabled": True},
        {"id": 3, "user_name": "carol", "email": "carol@test.org", "group_id": 1, "age": 42, "password": "x", "flag_enabled": False},
        {"id": 4, "user_name": "dave", "email": "dave@test.org", "group_id": 2, "age": 19, "password": "x", "flag_enabled": True},
    ])
    insert_rows(conn, models["roles"].table, [
        {"id": 1, "slug": "admin", "name": "Administrator"},
        {"id": 2, "slug": "editor", "name": "Editor"},
        {"id": 3, "slug": "viewer", "name": "Viewer"},
    ])
    insert_rows(conn, models["permissions"].table, [
        {"id": 1, "slug": "manage"},
        {"id": 2, "slug": "edit"},
        {"id": 3, "slug": "view"},
    ])
    insert_rows(conn, ROLE_USERS, [
        {"user_id": 1, "role_id": 1},
        {"user_id": 1, "role_id": 2},
        {"user_id": 2, "role_id": 2},
    ])
    insert_rows(conn, PERMISSION_ROLES, [
        {"role_id": 1, "permission_id": 1},
        {"role_id": 1, "permission_id": 2},
        {"role_id": 2, "permission_id": 2},
        {"role_id": 3, "permission_id": 3},
    ])
    insert_rows(conn, models["activities"].table, [
        {"id": 1, "user_id": 1, "description": "Logged in"},
        {"id": 2, "user_id": 1, "description": "Changed password"},
        {"id": 3, "user_id": 2, "description": "Logged in"},
    ])


@pytest.fixture
def seeded(conn, models):
    seed(conn, models)
    return conn

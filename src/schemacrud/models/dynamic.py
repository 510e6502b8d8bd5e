"""
Runtime-configured model.

A DynamicModel is bound to one normalized schema: it builds a SQLAlchemy
``Table`` from the schema's fields and exposes fill/cast/persist operations
plus soft-delete scopes. One instance doubles as the "model" (configuration)
and as a record (attributes); ``new_instance`` creates a record sharing the
configuration.

Usage:
    users = DynamicModel().configure(schema)
    user = users.new_instance().fill({"user_name": "alice"})
    user.save(conn)
    same = users.find(conn, user.get_key())
"""

from __future__ import annotations

import copy
import json
from datetime import date, datetime
from typing import Any, Iterable, Optional

import bcrypt
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection
from sqlalchemy.sql import Select

from ..core.errors import ConfigurationError, RecordNotFoundError, ValidationError
from ..core.utils import is_truthy
from .relationships import RelationshipResolver


CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
DELETED_AT = "deleted_at"

PASSWORD_TYPE = "password"

# bcrypt ignores input past this length
BCRYPT_MAX_BYTES = 72


# Schema field type -> storage cast
CAST_TYPES = {
    "integer": "integer",
    "smartlookup": "integer",
    "float": "float",
    "decimal": "float",
    "boolean": "boolean",
    "json": "array",
    "date": "date",
    "datetime": "datetime",
}

# Schema field type -> column type
COLUMN_TYPES = {
    "integer": Integer,
    "smartlookup": Integer,
    "float": Float,
    "decimal": Numeric,
    "boolean": Boolean,
    "json": JSON,
    "date": Date,
    "datetime": DateTime,
    "text": Text,
}


class DynamicModel:
    """A model whose table, fillable set and casts come from a schema."""

    def __init__(self, attributes: Optional[dict[str, Any]] = None, default_connection: str = "default"):
        self.default_connection = default_connection
        self.schema: dict[str, Any] = {}
        self.model_name: Optional[str] = None
        self.table_name: Optional[str] = None
        self.table: Optional[Table] = None
        self.connection: str = default_connection
        self.primary_key = "id"
        self.timestamps = False
        self.soft_deletes = False
        self.fillable: list[str] = []
        self.casts: dict[str, str] = {}
        self.relationship_defs: dict[str, dict[str, Any]] = {}

        self.attributes: dict[str, Any] = dict(attributes or {})
        self.exists = False

    # =========================================================================
    # Configuration
    # =========================================================================

    def configure(self, schema: dict[str, Any]) -> "DynamicModel":
        """Bind this model to a normalized schema."""
        self.schema = copy.deepcopy(schema)
        self.model_name = schema["model"]
        self.table_name = schema["table"]
        self.connection = schema.get("connection") or self.default_connection
        self.primary_key = schema.get("primary_key", "id")
        self.timestamps = bool(schema.get("timestamps", True))
        self.soft_deletes = bool(schema.get("soft_delete", False))

        fields = schema.get("fields", {})
        self.fillable = [
            name
            for name, field_def in fields.items()
            if not field_def.get("auto_increment")
            and not field_def.get("readonly")
            and not field_def.get("computed")
            and field_def.get("editable", True) is not False
        ]
        self.casts = {
            name: CAST_TYPES[self.field_type(name)]
            for name in fields
            if self.field_type(name) in CAST_TYPES
        }
        self.relationship_defs = {
            rel["name"]: rel
            for rel in schema.get("relationships") or []
            if isinstance(rel, dict) and rel.get("name")
        }

        self._build_table()
        return self

    def set_table(self, table_name: str) -> "DynamicModel":
        """Point the model at another table with the same shape."""
        self.table_name = table_name
        self._build_table()
        return self

    def _build_table(self) -> None:
        columns = []
        for name, field_def in self.schema.get("fields", {}).items():
            if field_def.get("computed"):
                continue
            column_type = COLUMN_TYPES.get(self.field_type(name), String)
            if name == self.primary_key:
                columns.append(Column(
                    name,
                    column_type,
                    primary_key=True,
                    autoincrement=bool(field_def.get("auto_increment", column_type is Integer)),
                ))
            else:
                columns.append(Column(name, column_type, nullable=True))

        names = {column.name for column in columns}
        if self.timestamps:
            for name in (CREATED_AT, UPDATED_AT):
                if name not in names:
                    columns.append(Column(name, DateTime, nullable=True))
        if self.soft_deletes and DELETED_AT not in names:
            columns.append(Column(DELETED_AT, DateTime, nullable=True))

        self.table = Table(self.table_name, MetaData(), *columns)

    def field_type(self, name: str) -> str:
        """Declared type of a field; an untyped primary key is an integer."""
        field_def = self.schema.get("fields", {}).get(name, {})
        return field_def.get("type") or ("integer" if name == self.primary_key else "string")

    def has_soft_deletes(self) -> bool:
        return self.soft_deletes

    def column(self, name: str):
        """Table column by name."""
        if name not in self.table.c:
            raise ConfigurationError(
                f"Column '{name}' does not exist on table '{self.table_name}'",
                model=self.model_name,
                field=name,
            )
        return self.table.c[name]

    def new_instance(self, attributes: Optional[dict[str, Any]] = None, exists: bool = False) -> "DynamicModel":
        """A new record sharing this model's configuration."""
        instance = copy.copy(self)
        instance.attributes = dict(attributes or {})
        instance.exists = exists
        return instance

    # =========================================================================
    # Attributes
    # =========================================================================

    def cast_attribute(self, key: str, value: Any) -> Any:
        """
        Cast a value according to the storage cast of ``key``.

        Raises:
            ValidationError: the value cannot be read as the field's type
        """
        cast = self.casts.get(key)
        if cast is None or value is None:
            return value

        try:
            return self._cast(cast, value)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                [f"Invalid {cast} value for '{key}': {value!r}"],
                model=self.model_name,
                field=key,
                cause=type(e).__name__,
            ) from e

    @staticmethod
    def _cast(cast: str, value: Any) -> Any:
        if cast == "integer":
            if isinstance(value, str):
                value = value.strip()
                return int(value) if value else None
            return int(value)
        if cast == "float":
            if isinstance(value, str) and not value.strip():
                return None
            return float(value)
        if cast == "boolean":
            return is_truthy(value)
        if cast == "array":
            return json.loads(value) if isinstance(value, str) else value
        if cast == "date":
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, str):
                return date.fromisoformat(value[:10])
            return value
        if cast == "datetime":
            if isinstance(value, str):
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            return value
        return value

    def fill(self, data: dict[str, Any]) -> "DynamicModel":
        """
        Assign fillable attributes, dropping everything else.

        Password fields are stored as bcrypt hashes; a blank password is
        skipped so an update keeps the stored one.
        """
        for key, value in data.items():
            if key not in self.fillable:
                continue
            if self.field_type(key) == PASSWORD_TYPE:
                if value is None or value == "":
                    continue
                value = self.hash_password(key, value)
            self.attributes[key] = self.cast_attribute(key, value)
        return self

    def hash_password(self, key: str, value: Any) -> str:
        encoded = str(value).encode()
        if len(encoded) > BCRYPT_MAX_BYTES:
            raise ValidationError(
                [f"Password '{key}' is longer than {BCRYPT_MAX_BYTES} bytes"],
                model=self.model_name,
                field=key,
            )
        return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode()

    def get_key(self) -> Any:
        return self.attributes.get(self.primary_key)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.attributes[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def to_dict(self, fields: Optional[Iterable[str]] = None) -> dict[str, Any]:
        if fields is None:
            return dict(self.attributes)
        return {name: self.attributes[name] for name in fields if name in self.attributes}

    def is_soft_deleted(self) -> bool:
        return self.attributes.get(DELETED_AT) is not None

    # =========================================================================
    # Queries
    # =========================================================================

    def select(self, with_deleted: bool = False, only_deleted: bool = False) -> Select:
        """
        Base SELECT over the model's table.

        Soft-deleted rows are excluded unless ``with_deleted`` or
        ``only_deleted`` is given.
        """
        stmt = select(self.table)
        if not self.soft_deletes:
            return stmt

        marker = self.table.c[DELETED_AT]
        if only_deleted:
            return stmt.where(marker.is_not(None))
        if with_deleted:
            return stmt
        return stmt.where(marker.is_(None))

    def find(self, conn: Connection, id: Any, with_deleted: bool = False) -> Optional["DynamicModel"]:
        """Load one record by primary key, or None."""
        stmt = self.select(with_deleted=with_deleted).where(
            self.table.c[self.primary_key] == self.cast_attribute(self.primary_key, id)
        )
        row = conn.execute(stmt).mappings().first()
        if row is None:
            return None
        return self.new_instance(dict(row), exists=True)

    def find_or_fail(self, conn: Connection, id: Any, with_deleted: bool = False) -> "DynamicModel":
        """
        Load one record by primary key.

        Raises:
            RecordNotFoundError: no such record
        """
        record = self.find(conn, id, with_deleted=with_deleted)
        if record is None:
            raise RecordNotFoundError(self.model_name, id)
        return record

    # =========================================================================
    # Persistence
    # =========================================================================

    def save(self, conn: Connection) -> "DynamicModel":
        """Insert or update the record, maintaining timestamps."""
        now = datetime.now()
        values = {key: value for key, value in self.attributes.items() if key in self.table.c}

        if self.exists:
            values.pop(self.primary_key, None)
            if self.timestamps:
                values[UPDATED_AT] = now
                self.attributes[UPDATED_AT] = now
            conn.execute(
                update(self.table)
                .where(self.table.c[self.primary_key] == self.get_key())
                .values(**values)
            )
            return self

        if self.timestamps:
            for name in (CREATED_AT, UPDATED_AT):
                if values.get(name) is None:
                    values[name] = now
                    self.attributes[name] = now

        result = conn.execute(insert(self.table).values(**values))
        if self.get_key() is None and result.inserted_primary_key:
            self.attributes[self.primary_key] = result.inserted_primary_key[0]
        self.exists = True
        return self

    def delete(self, conn: Connection) -> int:
        """Hard delete the record."""
        result = conn.execute(
            delete(self.table).where(self.table.c[self.primary_key] == self.get_key())
        )
        self.exists = False
        return result.rowcount

    def soft_delete(self, conn: Connection) -> "DynamicModel":
        return self._set_deleted_marker(conn, datetime.now())

    def restore(self, conn: Connection) -> "DynamicModel":
        """Clear the delete marker of a soft-deleted record."""
        return self._set_deleted_marker(conn, None)

    def _set_deleted_marker(self, conn: Connection, value: Optional[datetime]) -> "DynamicModel":
        if not self.soft_deletes:
            raise ConfigurationError(
                f"Model '{self.model_name}' does not use soft deletes",
                model=self.model_name,
            )
        self.attributes[DELETED_AT] = value
        return self.save(conn)

    # =========================================================================
    # Relationships
    # =========================================================================

    def relation(self, name: str, related: "DynamicModel", through: Optional["DynamicModel"] = None):
        """
        Build the relationship ``name`` against configured related (and
        intermediate) model instances.
        """
        return RelationshipResolver().build(self, self.relationship_definition(name), related, through)

    def relationship_definition(self, name: str) -> dict[str, Any]:
        definition = self.relationship_defs.get(name)
        if definition is None:
            raise ConfigurationError(
                f"Relationship '{name}' is not defined on model '{self.model_name}'",
                model=self.model_name,
                relationship=name,
            )
        return definition

    def __repr__(self) -> str:
        return f"<DynamicModel {self.model_name} {self.get_key()!r}>"

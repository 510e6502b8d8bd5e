"""
CrudRuntime - the facade the calling layer talks to.

Owns the transaction boundary: reads run on ``connect()``, writes inside
``begin()``, both on the engine of the model's connection. Every component
underneath takes a plain ``Connection`` and never commits on its own.

Usage:
    settings = load_settings()
    runtime = CrudRuntime.from_settings(settings)

    runtime.schema("users", context="list,form")
    runtime.list("users", {"page": 1, "sort[user_name]": "asc"})
    runtime.detail("groups", 1)
    runtime.attach("users", 1, "roles", [2, 3])
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence, Union

from ..config import CrudSettings
from ..core.query_types import ListResult
from ..models.dynamic import DynamicModel
from ..schema.cache import SchemaCache
from ..schema.service import SchemaService
from ..service.database import ConnectionManager
from .detail import DetailResolver, ListParams
from .mutations import MasterDetailWriter, RelationshipMutator
from .query_engine import QueryEngine

logger = logging.getLogger(__name__)


class CrudRuntime:
    """Schema-driven CRUD over named database connections."""

    def __init__(self, schema_service: SchemaService, connections: Optional[ConnectionManager] = None):
        self.schema_service = schema_service
        self.settings = schema_service.settings
        self.connections = connections or ConnectionManager(self.settings)
        self.details = DetailResolver(schema_service, self.settings)
        self.mutator = RelationshipMutator(schema_service)
        self.writer = MasterDetailWriter(schema_service)

    @classmethod
    def from_settings(cls, settings: CrudSettings, cache: Optional[SchemaCache] = None) -> "CrudRuntime":
        return cls(SchemaService.from_settings(settings, cache=cache), ConnectionManager(settings))

    # =========================================================================
    # Schemas and models
    # =========================================================================

    def schema(
        self,
        model: str,
        context: Union[str, Sequence[str], None] = None,
        connection: Optional[str] = None,
    ) -> dict[str, Any]:
        return self.schema_service.get_schema(model, connection, context)

    def model(self, model: str, connection: Optional[str] = None) -> DynamicModel:
        return self.schema_service.get_model_instance(model, connection)

    # =========================================================================
    # Reads
    # =========================================================================

    def list(self, model: str, params: ListParams = None, connection: Optional[str] = None) -> ListResult:
        """One page of rows restricted to the model's list allow-lists."""
        instance = self.model(model, connection)
        engine = QueryEngine.for_projection(
            instance,
            self.schema_service.get_schema(model, connection, "list"),
            self.settings,
        )
        with self.connections.connect(instance.connection) as conn:
            return engine.list(conn, params)

    def read(self, model: str, id: Any, connection: Optional[str] = None) -> dict[str, Any]:
        """One record restricted to its viewable fields."""
        instance = self.model(model, connection)
        fields = self.schema_service.get_schema(model, connection, "detail")["fields"]
        with self.connections.connect(instance.connection) as conn:
            return instance.find_or_fail(conn, id).to_dict(fields)

    def detail(
        self,
        model: str,
        id: Any,
        params: ListParams = None,
        connection: Optional[str] = None,
    ) -> dict[str, dict[str, ListResult]]:
        instance = self.model(model, connection)
        with self.connections.connect(instance.connection) as conn:
            return self.details.resolve(conn, model, id, params, connection)

    def list_relationship(
        self,
        model: str,
        id: Any,
        name: str,
        params: ListParams = None,
        connection: Optional[str] = None,
    ) -> ListResult:
        instance = self.model(model, connection)
        with self.connections.connect(instance.connection) as conn:
            return self.details.list_relationship(conn, model, id, name, params, connection)

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, model: str, data: dict[str, Any], connection: Optional[str] = None) -> dict[str, Any]:
        """Insert a record and run its on_create relationship hooks."""
        instance = self.model(model, connection)
        with self.connections.begin(instance.connection) as conn:
            record = instance.new_instance().fill(data).save(conn)
            self.mutator.process_actions(conn, model, record, "on_create", data, connection=connection)
            logger.info(f"Created {model} {record.get_key()!r}")
            return record.to_dict()

    def update(self, model: str, id: Any, data: dict[str, Any], connection: Optional[str] = None) -> dict[str, Any]:
        """Update a record and run its on_update relationship hooks."""
        instance = self.model(model, connection)
        with self.connections.begin(instance.connection) as conn:
            record = instance.find_or_fail(conn, id).fill(data).save(conn)
            self.mutator.process_actions(conn, model, record, "on_update", data, connection=connection)
            return record.to_dict()

    def delete(self, model: str, id: Any, connection: Optional[str] = None) -> dict[str, int]:
        """
        Delete a record: on_delete hooks, cascade to detail rows, then the
        record itself (soft when the model uses soft deletes).
        """
        instance = self.model(model, connection)
        with self.connections.begin(instance.connection) as conn:
            record = instance.find_or_fail(conn, id)
            soft = record.has_soft_deletes()

            self.mutator.process_actions(conn, model, record, "on_delete", connection=connection)
            affected = self.mutator.cascade_delete(conn, model, record, soft_delete=soft, connection=connection)

            if soft:
                record.soft_delete(conn)
            else:
                record.delete(conn)
            logger.info(f"Deleted {model} {id!r} ({'soft' if soft else 'hard'})")
            return affected

    def save_master_detail(
        self,
        model: str,
        data: dict[str, Any],
        detail_rows: Iterable[dict[str, Any]],
        id: Any = None,
        connection: Optional[str] = None,
    ) -> dict[str, Any]:
        instance = self.model(model, connection)
        with self.connections.begin(instance.connection) as conn:
            return self.writer.save(conn, model, data, detail_rows, id=id, connection=connection)

    def attach(
        self,
        model: str,
        id: Any,
        relationship: str,
        ids: Iterable[Any],
        pivot_data: Optional[dict[str, Any]] = None,
        connection: Optional[str] = None,
    ) -> list[Any]:
        instance = self.model(model, connection)
        with self.connections.begin(instance.connection) as conn:
            return self.mutator.attach(conn, model, id, relationship, ids, pivot_data, connection)

    def detach(
        self,
        model: str,
        id: Any,
        relationship: str,
        ids: Optional[Iterable[Any]] = None,
        connection: Optional[str] = None,
    ) -> int:
        instance = self.model(model, connection)
        with self.connections.begin(instance.connection) as conn:
            return self.mutator.detach(conn, model, id, relationship, ids, connection)

    def sync(
        self,
        model: str,
        id: Any,
        relationship: str,
        ids: Iterable[Any],
        connection: Optional[str] = None,
    ) -> dict[str, list[Any]]:
        instance = self.model(model, connection)
        with self.connections.begin(instance.connection) as conn:
            return self.mutator.sync(conn, model, id, relationship, ids, connection)

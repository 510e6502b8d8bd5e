"""
Detail response resolution.

For one parent record, lists every one-to-many detail section and every
relationship declared in its schema. Related schemas are loaded once per
call, and each section / relationship runs in its own SAVEPOINT: a failure is
rolled back to it and recorded as ``ListResult(rows=[], count=0, error={...})``
while the others still resolve.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ..config import CrudSettings
from ..core.defs import DetailSectionDef, RelationshipDef
from ..core.errors import ConfigurationError, RelationshipQueryError, SchemaCrudError
from ..core.query_types import ListQuery, ListResult
from ..models.dynamic import DynamicModel
from ..models.relationships import RelationshipResolver
from ..schema.service import SchemaService
from .query_engine import QueryEngine

logger = logging.getLogger(__name__)


ListParams = Union[ListQuery, Mapping[str, Any], None]


class DetailResolver:
    """
    Resolves detail sections and relationships of a parent record.

    Usage:
        resolver = DetailResolver(schema_service, settings)
        response = resolver.resolve(conn, "groups", 1)
        users = response["details"]["users"]
    """

    def __init__(self, schema_service: SchemaService, settings: Optional[CrudSettings] = None):
        self.schema_service = schema_service
        self.settings = settings or schema_service.settings
        self.resolver = RelationshipResolver(schema_service)

    def resolve(
        self,
        conn: Connection,
        model: str,
        parent_id: Any,
        params: ListParams = None,
        connection: Optional[str] = None,
    ) -> dict[str, dict[str, ListResult]]:
        """
        List all detail sections and relationships of one record.

        ``params`` applies to every section and relationship.

        Returns:
            {"details": {model: ListResult}, "relationships": {name: ListResult}}

        Raises:
            SchemaNotFoundError / RecordNotFoundError: for the parent itself
        """
        parent_model = self.schema_service.get_model_instance(model, connection)
        parent = parent_model.find_or_fail(conn, parent_id)
        schema = parent_model.schema

        sections = schema.get("details") or []
        relationships = [rel for rel in schema.get("relationships") or [] if rel.get("name")]

        names: list[str] = [section["model"] for section in sections]
        for rel in relationships:
            names.append(rel.get("model") or rel["name"])
            if rel.get("through"):
                names.append(rel["through"])
        schemas = self._preload(names, connection)

        response: dict[str, dict[str, ListResult]] = {"details": {}, "relationships": {}}

        for raw in sections:
            name = raw["model"]
            response["details"][name] = self._isolated(
                conn,
                model,
                name,
                lambda raw=raw: self._list_section(
                    conn, parent, DetailSectionDef.from_dict(raw, model=model), schemas, params
                ),
            )

        for raw in relationships:
            name = raw["name"]
            response["relationships"][name] = self._isolated(
                conn,
                model,
                name,
                lambda raw=raw: self._list_relationship(
                    conn, parent, RelationshipDef.from_dict(raw, model=model), schemas, params
                ),
            )

        return response

    def list_detail(
        self,
        conn: Connection,
        model: str,
        parent_id: Any,
        detail_model: str,
        params: ListParams = None,
        connection: Optional[str] = None,
    ) -> ListResult:
        """List a single detail section. Errors propagate."""
        parent_model = self.schema_service.get_model_instance(model, connection)
        parent = parent_model.find_or_fail(conn, parent_id)

        for raw in parent_model.schema.get("details") or []:
            if raw.get("model") == detail_model:
                section = DetailSectionDef.from_dict(raw, model=model)
                schemas = self._preload([section.model], connection, isolate=False)
                return self._list_section(conn, parent, section, schemas, params)

        raise ConfigurationError(
            f"Model '{model}' has no detail section for '{detail_model}'",
            model=model,
            relationship=detail_model,
        )

    def list_relationship(
        self,
        conn: Connection,
        model: str,
        parent_id: Any,
        name: str,
        params: ListParams = None,
        connection: Optional[str] = None,
    ) -> ListResult:
        """List a single relationship. Errors propagate."""
        parent_model = self.schema_service.get_model_instance(model, connection)
        parent = parent_model.find_or_fail(conn, parent_id)

        definition = RelationshipDef.from_dict(parent.relationship_definition(name), model=model)
        names = [definition.model] + ([definition.through] if definition.through else [])
        schemas = self._preload(names, connection, isolate=False)
        return self._list_relationship(conn, parent, definition, schemas, params)

    # =========================================================================
    # Internals
    # =========================================================================

    def _preload(
        self,
        names: list[str],
        connection: Optional[str],
        isolate: bool = True,
    ) -> dict[str, Union[dict[str, Any], SchemaCrudError]]:
        """Load each referenced schema once; with ``isolate`` failures are kept per name."""
        schemas: dict[str, Union[dict[str, Any], SchemaCrudError]] = {}
        for name in dict.fromkeys(names):
            try:
                schemas[name] = self.schema_service.get_full_schema(name, connection)
            except SchemaCrudError as e:
                if not isolate:
                    raise
                logger.warning(f"Failed to load related schema {name}: {e.message}")
                schemas[name] = e
        return schemas

    def _instance(self, schemas: dict[str, Any], name: str) -> DynamicModel:
        schema = schemas[name]
        if isinstance(schema, SchemaCrudError):
            raise schema
        return DynamicModel(default_connection=self.settings.default_connection).configure(schema)

    def _list_section(
        self,
        conn: Connection,
        parent: DynamicModel,
        section: DetailSectionDef,
        schemas: dict[str, Any],
        params: ListParams,
    ) -> ListResult:
        related = self._instance(schemas, section.model)
        foreign_key = related.column(section.foreign_key)
        parent_key = parent.get_key()

        engine = QueryEngine.for_projection(
            related,
            self.schema_service.context_filter.project(related.schema, "list"),
            self.settings,
            list_fields=section.list_fields,
        )
        engine.extend_query(lambda stmt: stmt.where(foreign_key == parent_key))
        return engine.list(conn, params)

    def _list_relationship(
        self,
        conn: Connection,
        parent: DynamicModel,
        definition: RelationshipDef,
        schemas: dict[str, Any],
        params: ListParams,
    ) -> ListResult:
        related = self._instance(schemas, definition.model)
        through = self._instance(schemas, definition.through) if definition.through else None
        relation = self.resolver.build(parent, definition, related, through)

        engine = QueryEngine.for_projection(
            related,
            self.schema_service.context_filter.project(related.schema, "list"),
            self.settings,
            base_query=relation.select(),
        )
        return engine.list(conn, params)

    def _isolated(self, conn: Connection, model: str, name: str, run) -> ListResult:
        """Run one section or relationship query inside its own SAVEPOINT."""
        try:
            with conn.begin_nested():
                return run()
        except (SchemaCrudError, SQLAlchemyError) as e:
            logger.error(f"Failed to resolve {name} for {model}: {e}", exc_info=True)
            marker = RelationshipQueryError(
                f"Failed to resolve '{name}': {getattr(e, 'message', None) or e}",
                relationship=name,
                model=model,
                cause=getattr(e, "kind", type(e).__name__),
            )
            return ListResult(rows=[], count=0, error=marker.to_dict())

"""
schemacrud - schema-driven CRUD and query runtime.

A JSON (or YAML) document describes a table; schemacrud builds the model,
the context projections (list / detail / form) and the list/detail queries
from it, without per-table code.

Usage:
    from schemacrud import CrudRuntime, load_settings

    runtime = CrudRuntime.from_settings(load_settings())
    page = runtime.list("users", {"page": 1, "sort[user_name]": "asc"})
    detail = runtime.detail("groups", 1)
"""

from __future__ import annotations

from .config import CrudSettings, load_settings
from .core import (
    ConfigurationError,
    DetailSectionDef,
    ListQuery,
    ListResult,
    LookupDef,
    NotFoundError,
    RecordNotFoundError,
    RelationshipDef,
    RelationshipQueryError,
    SchemaCrudError,
    SchemaNotFoundError,
    ValidationError,
)
from .models import BelongsToManyThroughRelation, DynamicModel, ManyToManyRelation, RelationshipResolver
from .runtime import CrudRuntime, DetailResolver, MasterDetailWriter, QueryEngine, RelationshipMutator
from .schema import (
    SchemaActionManager,
    SchemaCache,
    SchemaContextFilter,
    SchemaLoader,
    SchemaNormalizer,
    SchemaService,
    SchemaValidator,
    is_multi_context,
)
from .service import ConnectionManager

__version__ = "0.1.0"

__all__ = [
    # Config
    "CrudSettings",
    "load_settings",
    # Errors
    "SchemaCrudError",
    "ConfigurationError",
    "NotFoundError",
    "SchemaNotFoundError",
    "RecordNotFoundError",
    "ValidationError",
    "RelationshipQueryError",
    # Definitions and query types
    "RelationshipDef",
    "DetailSectionDef",
    "LookupDef",
    "ListQuery",
    "ListResult",
    # Schema pipeline
    "SchemaLoader",
    "SchemaValidator",
    "SchemaNormalizer",
    "SchemaActionManager",
    "SchemaCache",
    "SchemaContextFilter",
    "SchemaService",
    "is_multi_context",
    # Models
    "DynamicModel",
    "RelationshipResolver",
    "ManyToManyRelation",
    "BelongsToManyThroughRelation",
    # Runtime
    "QueryEngine",
    "DetailResolver",
    "RelationshipMutator",
    "MasterDetailWriter",
    "CrudRuntime",
    # Database
    "ConnectionManager",
]

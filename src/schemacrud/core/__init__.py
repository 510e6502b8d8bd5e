"""
Core module - definitions, errors, query types and request parsing.
"""

from __future__ import annotations

from .defs import (
    RELATIONSHIP_TYPES,
    DetailSectionDef,
    HopDef,
    LookupDef,
    RelationshipDef,
)
from .errors import (
    ConfigurationError,
    NotFoundError,
    RecordNotFoundError,
    RelationshipQueryError,
    SchemaCrudError,
    SchemaNotFoundError,
    ValidationError,
)
from .query_types import (
    FILTER_STRATEGIES,
    ListQuery,
    ListResult,
    NormalizedFilter,
    NormalizedOrder,
)
from .request_parser import parse_context, parse_list_params
from .utils import humanize, is_truthy, split_csv, ucfirst

__all__ = [
    # Definitions
    "RELATIONSHIP_TYPES",
    "RelationshipDef",
    "HopDef",
    "DetailSectionDef",
    "LookupDef",
    # Errors
    "SchemaCrudError",
    "ConfigurationError",
    "NotFoundError",
    "SchemaNotFoundError",
    "RecordNotFoundError",
    "ValidationError",
    "RelationshipQueryError",
    # Query types
    "FILTER_STRATEGIES",
    "ListQuery",
    "ListResult",
    "NormalizedFilter",
    "NormalizedOrder",
    # Request parser
    "parse_list_params",
    "parse_context",
    # Utils
    "ucfirst",
    "humanize",
    "is_truthy",
    "split_csv",
]

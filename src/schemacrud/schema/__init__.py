"""
Schema module - loading, validation, normalization, caching and projection.
"""

from __future__ import annotations

from .actions import SchemaActionManager
from .cache import SchemaCache
from .filter import AllowLists, SchemaContextFilter, is_multi_context, list_allow_lists
from .loader import LoadedSchema, SchemaLoader
from .normalizer import SchemaNormalizer
from .service import SchemaService
from .validator import SchemaValidator

__all__ = [
    "SchemaLoader",
    "LoadedSchema",
    "SchemaValidator",
    "SchemaNormalizer",
    "SchemaActionManager",
    "SchemaCache",
    "SchemaContextFilter",
    "AllowLists",
    "is_multi_context",
    "list_allow_lists",
    "SchemaService",
]

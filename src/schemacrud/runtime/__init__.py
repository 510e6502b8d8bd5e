"""
Runtime module - list/detail queries, mutations and the CRUD facade.
"""

from __future__ import annotations

from .crud import CrudRuntime
from .detail import DetailResolver
from .mutations import MasterDetailWriter, RelationshipMutator, expand_pivot_data
from .query_engine import QueryEngine

__all__ = [
    "QueryEngine",
    "DetailResolver",
    "RelationshipMutator",
    "MasterDetailWriter",
    "expand_pivot_data",
    "CrudRuntime",
]

"""
Models module - runtime-configured models and their relationships.
"""

from __future__ import annotations

from .dynamic import DynamicModel
from .relationships import BelongsToManyThroughRelation, ManyToManyRelation, RelationshipResolver

__all__ = [
    "DynamicModel",
    "RelationshipResolver",
    "ManyToManyRelation",
    "BelongsToManyThroughRelation",
]

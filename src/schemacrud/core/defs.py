"""
Core dataclass definitions for schemacrud.

These are the typed views over the relationship, detail-section and lookup
parts of a normalized schema document. Each ``from_dict`` validates the shape
it needs and raises ``ConfigurationError`` naming the offending entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from .errors import ConfigurationError


RELATIONSHIP_TYPES = ("many_to_many", "belongs_to_many_through")


@dataclass(frozen=True)
class LookupDef:
    """Canonical lookup configuration of a ``smartlookup`` field."""
    model: Optional[str] = None
    id: Optional[str] = None
    desc: Optional[str] = None

    @classmethod
    def from_field(cls, field_def: dict[str, Any]) -> Optional["LookupDef"]:
        """Read the canonical ``lookup`` entry written by the normalizer."""
        lookup = field_def.get("lookup")
        if not isinstance(lookup, dict):
            return None
        return cls(model=lookup.get("model"), id=lookup.get("id"), desc=lookup.get("desc"))

    def to_dict(self) -> dict[str, Optional[str]]:
        return {"model": self.model, "id": self.id, "desc": self.desc}


@dataclass(frozen=True)
class HopDef:
    """
    One pivot hop of a two-hop relationship.

    Example: users -> role_users(user_id, role_id) -> roles
    """
    pivot_table: str
    foreign_key: str  # pivot column pointing at the near side
    related_key: str  # pivot column pointing at the far side


@dataclass(frozen=True)
class RelationshipDef:
    """Definition of a dynamic relationship declared in a schema."""
    name: str
    type: Literal["many_to_many", "belongs_to_many_through"]
    model: str  # related model name
    pivot_table: Optional[str] = None
    foreign_key: Optional[str] = None
    related_key: Optional[str] = None
    through: Optional[str] = None  # intermediate model name
    first: Optional[HopDef] = None
    second: Optional[HopDef] = None
    actions: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], model: Optional[str] = None) -> "RelationshipDef":
        """
        Build and validate a relationship definition.

        Raises:
            ConfigurationError: missing keys for the declared type or an
                unsupported type.
        """
        name = data.get("name")
        if not name:
            raise ConfigurationError("Relationship definition is missing 'name'", model=model)

        rel_type = data.get("type", "many_to_many")
        related_model = data.get("model") or name
        actions = data.get("actions") or {}

        if rel_type == "many_to_many":
            missing = [key for key in ("pivot_table", "foreign_key", "related_key") if not data.get(key)]
            if missing:
                raise ConfigurationError(
                    f"Relationship '{name}' is missing required configuration: {', '.join(missing)}",
                    model=model,
                    relationship=name,
                )
            return cls(
                name=name,
                type=rel_type,
                model=related_model,
                pivot_table=data["pivot_table"],
                foreign_key=data["foreign_key"],
                related_key=data["related_key"],
                actions=actions,
            )

        if rel_type == "belongs_to_many_through":
            through = data.get("through")
            if not through:
                raise ConfigurationError(
                    f"Relationship '{name}' of type 'belongs_to_many_through' requires a 'through' model",
                    model=model,
                    relationship=name,
                )
            first = cls._hop(data, "first", name, model)
            second = cls._hop(data, "second", name, model)
            return cls(
                name=name,
                type=rel_type,
                model=related_model,
                through=through,
                first=first,
                second=second,
                actions=actions,
            )

        raise ConfigurationError(
            f"Unsupported relationship type '{rel_type}' for relationship '{name}'",
            model=model,
            relationship=name,
            type=rel_type,
        )

    @staticmethod
    def _hop(data: dict[str, Any], prefix: str, name: str, model: Optional[str]) -> HopDef:
        keys = {
            "pivot_table": data.get(f"{prefix}_pivot_table"),
            "foreign_key": data.get(f"{prefix}_foreign_key"),
            "related_key": data.get(f"{prefix}_related_key"),
        }
        missing = [f"{prefix}_{key}" for key, value in keys.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Relationship '{name}' is missing required configuration: {', '.join(missing)}",
                model=model,
                relationship=name,
            )
        return HopDef(**keys)


@dataclass(frozen=True)
class DetailSectionDef:
    """One-to-many related table displayed alongside a parent record."""
    model: str
    foreign_key: str
    list_fields: list[str] = field(default_factory=list)
    title: Optional[str] = None
    cascade_delete: bool = True
    cascade_delete_mode: Literal["auto", "hard"] = "auto"

    @classmethod
    def from_dict(cls, data: dict[str, Any], model: Optional[str] = None) -> "DetailSectionDef":
        related = data.get("model")
        foreign_key = data.get("foreign_key")
        if not related or not foreign_key:
            raise ConfigurationError(
                "Detail section requires 'model' and 'foreign_key'",
                model=model,
                relationship=related,
            )
        return cls(
            model=related,
            foreign_key=foreign_key,
            list_fields=list(data.get("list_fields") or []),
            title=data.get("title"),
            cascade_delete=data.get("cascade_delete", True) is not False,
            cascade_delete_mode="hard" if data.get("cascade_delete_mode") == "hard" else "auto",
        )

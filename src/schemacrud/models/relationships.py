"""
Dynamic relationships between DynamicModels.

Relationships are looked up by name in the parent's explicit
name -> definition map and built by RelationshipResolver:

- many_to_many:            parent -> pivot -> related
- belongs_to_many_through: parent -> first pivot -> intermediate -> second pivot -> related

Example (permissions reachable from a user via roles):
    {
        "name": "permissions",
        "type": "belongs_to_many_through",
        "through": "roles",
        "first_pivot_table": "role_users",
        "first_foreign_key": "user_id",
        "first_related_key": "role_id",
        "second_pivot_table": "permission_roles",
        "second_foreign_key": "role_id",
        "second_related_key": "permission_id"
    }
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Optional, Protocol, Union

from sqlalchemy import column, delete, insert, select, table
from sqlalchemy.engine import Connection
from sqlalchemy.sql import Select

from ..core.defs import RelationshipDef
from ..core.errors import ConfigurationError
from ..core.utils import split_csv

if TYPE_CHECKING:
    from .dynamic import DynamicModel

logger = logging.getLogger(__name__)


class ModelFactory(Protocol):
    """Anything that hands out configured models by name (SchemaService)."""

    def get_model_instance(self, model: str, connection: Optional[str] = None) -> "DynamicModel":
        ...


def _pivot_table(name: str, *columns: str):
    return table(name, *(column(col) for col in dict.fromkeys(columns)))


class ManyToManyRelation:
    """Records of ``related`` linked to ``parent`` through a pivot table."""

    def __init__(self, parent: "DynamicModel", related: "DynamicModel", definition: RelationshipDef):
        self.parent = parent
        self.related = related
        self.definition = definition
        self.pivot = _pivot_table(definition.pivot_table, definition.foreign_key, definition.related_key)

    @property
    def name(self) -> str:
        return self.definition.name

    def _parent_key(self) -> Any:
        key = self.parent.get_key()
        if key is None:
            raise ConfigurationError(
                f"Relationship '{self.name}' requires a saved parent record",
                model=self.parent.model_name,
                relationship=self.name,
            )
        return key

    def _cast_ids(self, ids: Union[Iterable[Any], Any]) -> list[Any]:
        cast = [self.related.cast_attribute(self.related.primary_key, value) for value in split_csv(ids)]
        return [value for value in dict.fromkeys(cast) if value is not None]

    def select(self) -> Select:
        """Related rows joined through the pivot, scoped to the parent."""
        related_key = self.related.column(self.related.primary_key)
        return (
            self.related.select()
            .join(self.pivot, self.pivot.c[self.definition.related_key] == related_key)
            .where(self.pivot.c[self.definition.foreign_key] == self._parent_key())
        )

    def related_ids(self, conn: Connection) -> list[Any]:
        stmt = select(self.pivot.c[self.definition.related_key]).where(
            self.pivot.c[self.definition.foreign_key] == self._parent_key()
        )
        return [row[0] for row in conn.execute(stmt)]

    def attach(
        self,
        conn: Connection,
        ids: Union[Iterable[Any], Any],
        pivot_data: Optional[dict[str, Any]] = None,
    ) -> list[Any]:
        """
        Link related ids to the parent. Ids already linked are skipped, so
        attaching twice yields one pivot row.

        Returns:
            The ids actually attached
        """
        parent_key = self._parent_key()
        existing = set(self.related_ids(conn))
        to_attach = [value for value in self._cast_ids(ids) if value not in existing]
        if not to_attach:
            return []

        pivot_data = dict(pivot_data or {})
        pivot = _pivot_table(
            self.definition.pivot_table,
            self.definition.foreign_key,
            self.definition.related_key,
            *pivot_data,
        )
        conn.execute(
            insert(pivot),
            [
                {
                    **pivot_data,
                    self.definition.foreign_key: parent_key,
                    self.definition.related_key: value,
                }
                for value in to_attach
            ],
        )
        logger.debug(f"Attached {self.name} {to_attach} to {self.parent.model_name} {parent_key}")
        return to_attach

    def detach(self, conn: Connection, ids: Union[Iterable[Any], Any, None] = None) -> int:
        """Unlink the given related ids, or all of them when ids is None."""
        stmt = delete(self.pivot).where(self.pivot.c[self.definition.foreign_key] == self._parent_key())
        if ids is not None:
            stmt = stmt.where(self.pivot.c[self.definition.related_key].in_(self._cast_ids(ids)))
        result = conn.execute(stmt)
        logger.debug(f"Detached {result.rowcount} {self.name} from {self.parent.model_name} {self.parent.get_key()}")
        return result.rowcount

    def sync(self, conn: Connection, ids: Union[Iterable[Any], Any]) -> dict[str, list[Any]]:
        """Make the linked ids exactly ``ids``."""
        wanted = self._cast_ids(ids)
        current = self.related_ids(conn)

        detached = [value for value in current if value not in wanted]
        if detached:
            self.detach(conn, detached)
        attached = self.attach(conn, [value for value in wanted if value not in current])

        return {"attached": attached, "detached": detached}


class BelongsToManyThroughRelation:
    """Records of ``related`` reachable from ``parent`` via an intermediate model."""

    def __init__(
        self,
        parent: "DynamicModel",
        related: "DynamicModel",
        through: "DynamicModel",
        definition: RelationshipDef,
    ):
        self.parent = parent
        self.related = related
        self.through = through
        self.definition = definition

        first, second = definition.first, definition.second
        self.first_pivot = _pivot_table(first.pivot_table, first.foreign_key, first.related_key)
        self.second_pivot = _pivot_table(second.pivot_table, second.foreign_key, second.related_key)

    @property
    def name(self) -> str:
        return self.definition.name

    def select(self) -> Select:
        """Distinct related rows reachable through both pivots."""
        first, second = self.definition.first, self.definition.second
        parent_key = self.parent.get_key()
        if parent_key is None:
            raise ConfigurationError(
                f"Relationship '{self.name}' requires a saved parent record",
                model=self.parent.model_name,
                relationship=self.name,
            )

        related_key = self.related.column(self.related.primary_key)
        through_key = self.through.column(self.through.primary_key)

        stmt = (
            self.related.select()
            .join(self.second_pivot, self.second_pivot.c[second.related_key] == related_key)
            .join(self.through.table, through_key == self.second_pivot.c[second.foreign_key])
            .join(self.first_pivot, self.first_pivot.c[first.related_key] == through_key)
            .where(self.first_pivot.c[first.foreign_key] == parent_key)
        )
        if self.through.has_soft_deletes():
            stmt = stmt.where(self.through.column("deleted_at").is_(None))
        return stmt.distinct()

    def _read_only(self, operation: str):
        raise ConfigurationError(
            f"Relationship '{self.name}' is a through relationship and does not support {operation}",
            model=self.parent.model_name,
            relationship=self.name,
        )

    def attach(self, conn: Connection, ids: Any, pivot_data: Optional[dict[str, Any]] = None):
        self._read_only("attach")

    def detach(self, conn: Connection, ids: Any = None):
        self._read_only("detach")

    def sync(self, conn: Connection, ids: Any):
        self._read_only("sync")


Relation = Union[ManyToManyRelation, BelongsToManyThroughRelation]


class RelationshipResolver:
    """
    Builds relationship accessors from schema declarations.

    Usage:
        resolver = RelationshipResolver(schema_service)
        roles = resolver.resolve(user, "roles")
        roles.attach(conn, [1, 2])
    """

    def __init__(self, model_factory: Optional[ModelFactory] = None):
        self.model_factory = model_factory

    def build(
        self,
        parent: "DynamicModel",
        definition: Union[RelationshipDef, dict[str, Any]],
        related: "DynamicModel",
        through: Optional["DynamicModel"] = None,
    ) -> Relation:
        """
        Build a relationship against configured model instances.

        Raises:
            ConfigurationError: invalid definition, unsupported type or a
                through relationship without its intermediate model
        """
        if not isinstance(definition, RelationshipDef):
            definition = RelationshipDef.from_dict(definition, model=parent.model_name)

        if definition.type == "many_to_many":
            return ManyToManyRelation(parent, related, definition)

        if through is None:
            raise ConfigurationError(
                f"Relationship '{definition.name}' requires a configured '{definition.through}' model",
                model=parent.model_name,
                relationship=definition.name,
            )
        return BelongsToManyThroughRelation(parent, related, through, definition)

    def resolve(self, parent: "DynamicModel", name: str, connection: Optional[str] = None) -> Relation:
        """Build relationship ``name`` of ``parent``, obtaining models from the factory."""
        if self.model_factory is None:
            raise ConfigurationError(
                "RelationshipResolver.resolve() needs a model factory",
                model=parent.model_name,
                relationship=name,
            )

        definition = RelationshipDef.from_dict(parent.relationship_definition(name), model=parent.model_name)
        related = self.model_factory.get_model_instance(definition.model, connection)
        through = None
        if definition.through:
            through = self.model_factory.get_model_instance(definition.through, connection)
        return self.build(parent, definition, related, through)

"""
Relationship and master-detail writes.

All operations take a caller-owned ``Connection`` and never commit: the
calling layer wraps them in one transaction so that a master record, its
pivot rows and its detail rows are saved (or rolled back) together.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import delete, update
from sqlalchemy.engine import Connection

from ..core.defs import DetailSectionDef
from ..core.errors import ConfigurationError
from ..core.utils import split_csv
from ..models.dynamic import DELETED_AT, DynamicModel
from ..models.relationships import RelationshipResolver
from ..schema.service import SchemaService

logger = logging.getLogger(__name__)


RELATIONSHIP_EVENTS = ("on_create", "on_update", "on_delete")


def expand_pivot_data(pivot_data: dict[str, Any], current_user_id: Any = None) -> dict[str, Any]:
    """
    Expand placeholder values in pivot data.

    - "now"          -> current timestamp
    - "current_date" -> today's date
    - "current_user" -> ``current_user_id``
    """
    expanded = {}
    for key, value in pivot_data.items():
        if value == "now":
            expanded[key] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        elif value == "current_date":
            expanded[key] = datetime.now().strftime("%Y-%m-%d")
        elif value == "current_user":
            expanded[key] = current_user_id
        else:
            expanded[key] = value
    return expanded


class RelationshipMutator:
    """
    Attach / detach / sync relationships and run schema-declared hooks.

    Usage:
        mutator = RelationshipMutator(schema_service)
        with engine.begin() as conn:
            mutator.attach(conn, "users", 1, "roles", [2, 3])
    """

    def __init__(self, schema_service: SchemaService):
        self.schema_service = schema_service
        self.resolver = RelationshipResolver(schema_service)

    def _relation(self, conn: Connection, model: str, id: Any, relationship: str, connection: Optional[str]):
        parent = self.schema_service.get_model_instance(model, connection).find_or_fail(conn, id)
        return self.resolver.resolve(parent, relationship, connection)

    def attach(
        self,
        conn: Connection,
        model: str,
        id: Any,
        relationship: str,
        ids: Iterable[Any],
        pivot_data: Optional[dict[str, Any]] = None,
        connection: Optional[str] = None,
    ) -> list[Any]:
        """Attach related ids; returns the ids that were newly attached."""
        relation = self._relation(conn, model, id, relationship, connection)
        return relation.attach(conn, ids, pivot_data)

    def detach(
        self,
        conn: Connection,
        model: str,
        id: Any,
        relationship: str,
        ids: Optional[Iterable[Any]] = None,
        connection: Optional[str] = None,
    ) -> int:
        """Detach related ids (all when ids is None); returns removed pivot rows."""
        relation = self._relation(conn, model, id, relationship, connection)
        return relation.detach(conn, ids)

    def sync(
        self,
        conn: Connection,
        model: str,
        id: Any,
        relationship: str,
        ids: Iterable[Any],
        connection: Optional[str] = None,
    ) -> dict[str, list[Any]]:
        relation = self._relation(conn, model, id, relationship, connection)
        return relation.sync(conn, ids)

    def process_actions(
        self,
        conn: Connection,
        model_name: str,
        record: DynamicModel,
        event: str,
        data: Optional[dict[str, Any]] = None,
        current_user_id: Any = None,
        connection: Optional[str] = None,
    ) -> None:
        """
        Run relationship hooks declared for ``event``.

        Per relationship, in order: ``attach`` (list of {related_id,
        pivot_data}), ``sync`` (on_update only; field name or true for
        ``<name>_ids``), ``detach`` ("all" or a list of ids).
        """
        if event not in RELATIONSHIP_EVENTS:
            raise ConfigurationError(f"Unknown relationship event '{event}'", model=model_name, event=event)

        data = data or {}
        for name, definition in record.relationship_defs.items():
            action = (definition.get("actions") or {}).get(event)
            if not isinstance(action, dict):
                continue

            try:
                relation = self.resolver.resolve(record, name, connection)

                for item in action.get("attach") or []:
                    if not isinstance(item, dict) or "related_id" not in item:
                        logger.warning(f"Invalid attach configuration for {model_name}.{name} ({event})")
                        continue
                    relation.attach(
                        conn,
                        [item["related_id"]],
                        expand_pivot_data(item.get("pivot_data") or {}, current_user_id),
                    )

                sync = action.get("sync")
                if event == "on_update" and sync:
                    field = sync if isinstance(sync, str) else f"{name}_ids"
                    if data.get(field) is not None:
                        ids = [value for value in split_csv(data[field]) if value not in (None, "")]
                        relation.sync(conn, ids)

                detach = action.get("detach")
                if detach == "all":
                    relation.detach(conn)
                elif isinstance(detach, list):
                    relation.detach(conn, detach)
                elif detach is not None:
                    logger.warning(f"Invalid detach configuration for {model_name}.{name}: {detach!r}")

            except Exception as e:
                logger.error(f"Failed to process {event} action for {model_name}.{name}: {e}", exc_info=True)
                raise

    def cascade_delete(
        self,
        conn: Connection,
        model_name: str,
        record: DynamicModel,
        soft_delete: bool = False,
        connection: Optional[str] = None,
    ) -> dict[str, int]:
        """
        Delete the detail rows of a record before the record itself goes.

        Soft deletes cascade as soft deletes when the child model supports
        them and the section's mode is not ``hard``.

        Returns:
            Number of affected rows per child model
        """
        affected: dict[str, int] = {}
        parent_key = record.get_key()

        for raw in record.schema.get("details") or []:
            section = DetailSectionDef.from_dict(raw, model=model_name)
            if not section.cascade_delete:
                logger.debug(f"Cascade delete disabled for {model_name} -> {section.model}")
                continue

            child = self.schema_service.get_model_instance(section.model, connection)
            foreign_key = child.column(section.foreign_key)

            if soft_delete and child.has_soft_deletes() and section.cascade_delete_mode != "hard":
                stmt = (
                    update(child.table)
                    .where(foreign_key == parent_key)
                    .where(child.column(DELETED_AT).is_(None))
                    .values({DELETED_AT: datetime.now()})
                )
                affected[section.model] = conn.execute(stmt).rowcount
            else:
                stmt = delete(child.table).where(foreign_key == parent_key)
                affected[section.model] = conn.execute(stmt).rowcount

            logger.info(f"Cascade deleted {affected[section.model]} {section.model} rows of {model_name} {parent_key}")

        return affected


class MasterDetailWriter:
    """
    Saves a master record together with the rows of its editable detail table.

    Usage:
        writer = MasterDetailWriter(schema_service)
        with engine.begin() as conn:
            order = writer.save(conn, "orders", {"customer": "ACME"}, [
                {"sku": "A-1", "qty": 2},
                {"id": 7, "_action": "delete"},
            ])
    """

    def __init__(self, schema_service: SchemaService):
        self.schema_service = schema_service

    def save(
        self,
        conn: Connection,
        model: str,
        data: dict[str, Any],
        detail_rows: Iterable[dict[str, Any]],
        id: Any = None,
        connection: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Save master + detail rows inside the caller's transaction.

        Rows carrying the detail primary key are updated (or deleted when
        ``_action`` is ``delete``); rows without it are inserted.

        Returns:
            {"master": {...}, "created": n, "updated": n, "deleted": n}
        """
        master_model = self.schema_service.get_model_instance(model, connection)
        config = master_model.schema.get("detail_editable")
        if not isinstance(config, dict) or not config.get("model") or not config.get("foreign_key"):
            raise ConfigurationError(
                f"Model '{model}' has no detail_editable configuration",
                model=model,
            )

        if id is None:
            master = master_model.new_instance().fill(data)
        else:
            master = master_model.find_or_fail(conn, id).fill(data)
        master.save(conn)
        master_key = master.get_key()

        detail_model = self.schema_service.get_model_instance(config["model"], connection)
        foreign_key = config["foreign_key"]
        allowed = config.get("fields")
        counts = {"created": 0, "updated": 0, "deleted": 0}

        for row in detail_rows:
            row = dict(row)
            action = row.pop("_action", None)
            if allowed:
                row = {key: value for key, value in row.items() if key in allowed or key == detail_model.primary_key}
            row_key = row.pop(detail_model.primary_key, None)

            if row_key is not None:
                existing = detail_model.find_or_fail(conn, row_key)
                if existing.get(foreign_key) != master_key:
                    raise ConfigurationError(
                        f"{config['model']} {row_key!r} does not belong to {model} {master_key!r}",
                        model=config["model"],
                    )
                if action == "delete":
                    existing.delete(conn)
                    counts["deleted"] += 1
                    continue
                existing.fill(row).save(conn)
                counts["updated"] += 1
            elif action != "delete":
                record = detail_model.new_instance().fill(row)
                record[foreign_key] = master_key
                record.save(conn)
                counts["created"] += 1

        logger.info(f"Saved {model} {master_key!r} with detail rows {counts}")
        return {"master": master.to_dict(), **counts}

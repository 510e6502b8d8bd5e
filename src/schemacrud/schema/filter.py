"""
Context projection of normalized schemas.

Each UI surface only receives the part of a schema it needs:

- list:   listable fields, default_sort, sort/filter/search metadata, permissions.read
- detail: viewable fields, relationships, details, actions, permissions, title_field
- form:   editable fields with validation, permissions.create / permissions.update
- create / edit: form restricted to fields whose show_in names that context
- meta:   base metadata only

The primary-key field is kept in every projection. Projections are new
values; the input schema is never touched.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union

from ..core.errors import ValidationError
from ..core.request_parser import parse_context
from ..core.utils import ucfirst
from .actions import SchemaActionManager


CONTEXTS = ("list", "detail", "form", "create", "edit", "meta")

# Types searched / filtered with "like" unless the field says otherwise
TEXT_TYPES = ("string", "text", "email", "url", "password", "phone", "textarea")

LIST_FIELD_KEYS = (
    "type",
    "label",
    "sortable",
    "filterable",
    "searchable",
    "filter_type",
    "width",
    "field_template",
    "lookup",
    "ui",
)


def default_filter_strategy(field_def: dict[str, Any]) -> str:
    """filter_type if declared, else like for text-like types, else equals."""
    if field_def.get("filter_type"):
        return field_def["filter_type"]
    if field_def.get("type", "string") in TEXT_TYPES:
        return "like"
    return "equals"


def is_multi_context(projection: dict[str, Any]) -> bool:
    """True when ``projection`` is a multi-context map rather than one schema."""
    return projection.get("multi_context") is True


@dataclass
class AllowLists:
    """What a list query may sort on, filter on, search and return."""
    sortable: list[str] = field(default_factory=list)
    filterable: dict[str, str] = field(default_factory=dict)  # name -> default strategy
    searchable: list[str] = field(default_factory=list)
    list_fields: list[str] = field(default_factory=list)


def list_allow_lists(list_projection: dict[str, Any]) -> AllowLists:
    """Derive query allow-lists from a ``list`` projection."""
    fields = list_projection.get("fields", {})
    return AllowLists(
        sortable=[name for name, field_def in fields.items() if field_def.get("sortable")],
        filterable={
            name: default_filter_strategy(field_def)
            for name, field_def in fields.items()
            if field_def.get("filterable")
        },
        searchable=[name for name, field_def in fields.items() if field_def.get("searchable")],
        list_fields=list(fields),
    )


class SchemaContextFilter:
    """
    Projects normalized schemas for one or more contexts.

    Usage:
        projection = SchemaContextFilter().project(schema, "list")
        combined = SchemaContextFilter().project(schema, "list,form")
        if is_multi_context(combined):
            list_view = combined["contexts"]["list"]
    """

    def __init__(self, action_manager: Optional[SchemaActionManager] = None):
        self.action_manager = action_manager or SchemaActionManager()

    def project(
        self,
        schema: dict[str, Any],
        contexts: Union[str, Sequence[str], None] = None,
    ) -> dict[str, Any]:
        """
        Project a schema for the requested context(s).

        Args:
            schema: Full normalized schema
            contexts: "list", "detail,form", ["list", "form"], None or "full"

        Returns:
            The projected schema, or for several contexts a map
            ``{"multi_context": True, "contexts": {name: projection}, ...}``

        Raises:
            ValidationError: unknown context name
        """
        names = parse_context(contexts)
        if names is None:
            return copy.deepcopy(schema)

        unknown = [name for name in names if name not in CONTEXTS]
        if unknown:
            raise ValidationError(
                [f"Unknown context '{name}'. Available: {', '.join(CONTEXTS)}" for name in unknown],
                model=schema.get("model"),
            )

        if len(names) == 1:
            return self.project_context(schema, names[0])

        result = self._base_metadata(schema)
        result["multi_context"] = True
        result["contexts"] = {name: self.project_context(schema, name) for name in names}
        return result

    def project_context(self, schema: dict[str, Any], context: str) -> dict[str, Any]:
        """Project a schema for exactly one context."""
        projection = self._base_metadata(schema)
        primary_key = projection["primary_key"]
        fields = schema.get("fields", {})

        if context == "list":
            projection["fields"] = {
                name: self._list_field(field_def)
                for name, field_def in fields.items()
                if field_def.get("listable") is True or name == primary_key
            }
            if "default_sort" in schema:
                projection["default_sort"] = copy.deepcopy(schema["default_sort"])
            permissions = schema.get("permissions") or {}
            if "read" in permissions:
                projection["permissions"] = {"read": permissions["read"]}
            actions = schema.get("actions")
            if actions:
                projection["actions"] = copy.deepcopy(
                    self.action_manager.filter_actions_by_scope(actions, "list")
                )

        elif context == "detail":
            projection["fields"] = {
                name: copy.deepcopy(field_def)
                for name, field_def in fields.items()
                if field_def.get("viewable", True) is True or name == primary_key
            }
            for key in ("relationships", "details", "actions", "permissions", "title_field", "detail_editable"):
                if key in schema:
                    projection[key] = copy.deepcopy(schema[key])

        elif context in ("form", "create", "edit"):
            projection["fields"] = {
                name: copy.deepcopy(field_def)
                for name, field_def in fields.items()
                if self._in_form(field_def, context) or name == primary_key
            }
            permissions = schema.get("permissions") or {}
            wanted = {"form": ("create", "update"), "create": ("create",), "edit": ("update",)}[context]
            kept = {key: permissions[key] for key in wanted if key in permissions}
            if kept:
                projection["permissions"] = kept
            if "detail_editable" in schema:
                projection["detail_editable"] = copy.deepcopy(schema["detail_editable"])

        else:  # meta
            if primary_key in fields:
                projection["fields"] = {primary_key: copy.deepcopy(fields[primary_key])}
            else:
                projection["fields"] = {}

        return projection

    # =========================================================================
    # Helpers
    # =========================================================================

    def _base_metadata(self, schema: dict[str, Any]) -> dict[str, Any]:
        model = schema.get("model", "")
        title = schema.get("title") or ucfirst(model)
        return {
            "model": model,
            "title": title,
            "singular_title": schema.get("singular_title") or title,
            "primary_key": schema.get("primary_key", "id"),
            "description": schema.get("description", ""),
        }

    @staticmethod
    def _list_field(field_def: dict[str, Any]) -> dict[str, Any]:
        projected = {key: copy.deepcopy(field_def[key]) for key in LIST_FIELD_KEYS if key in field_def}
        if projected.get("filterable"):
            projected["filter_type"] = default_filter_strategy(field_def)
        return projected

    @staticmethod
    def _in_form(field_def: dict[str, Any], context: str) -> bool:
        if field_def.get("editable", True) is not True:
            return False
        show_in = field_def.get("show_in")
        if context == "form" or not isinstance(show_in, list):
            return True
        return context in show_in

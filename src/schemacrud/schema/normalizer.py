"""
Schema normalization.

Converts the many accepted input spellings of a schema document into one
canonical internal representation:

- top-level defaults (primary_key, timestamps, soft_delete)
- ORM-style field attributes (nullable, autoIncrement, references, ...)
- lookup attributes of smartlookup fields -> field["lookup"] = {model, id, desc}
- visibility flags (listable / viewable / editable), optionally from show_in
- legacy boolean types (boolean-tgl, boolean-chk, ...)
- relationships map form -> list form
- detail / details -> details list
- default actions

Normalization is a pure function of its input and is idempotent.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Optional

from .actions import SchemaActionManager


# Legacy boolean type suffix -> ui hint
BOOLEAN_UI_MAP = {
    "tgl": "toggle",
    "chk": "checkbox",
    "sel": "select",
    "yn": "select",
}

_LEGACY_BOOLEAN_PATTERN = re.compile(r"^boolean-(tgl|chk|sel|yn)$")

LOOKUP_KEYS = ("model", "id", "desc")


class SchemaNormalizer:
    """
    Normalizes raw (validated) schema documents.

    Usage:
        normalized = SchemaNormalizer().normalize(raw)
    """

    def __init__(self, action_manager: Optional[SchemaActionManager] = None):
        self.action_manager = action_manager or SchemaActionManager()

    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Apply all normalization steps, in order, to a copy of ``raw``."""
        schema = copy.deepcopy(raw)

        schema = self.apply_defaults(schema)
        schema = self.normalize_orm_attributes(schema)
        schema = self.normalize_lookup_attributes(schema)
        schema = self.derive_field_flags(schema)
        schema = self.normalize_boolean_types(schema)
        schema = self.normalize_relationships(schema)
        schema = self.normalize_details(schema)
        schema = self.action_manager.add_default_actions(schema)

        return schema

    # =========================================================================
    # Top level
    # =========================================================================

    def apply_defaults(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Set primary_key, timestamps and soft_delete only when absent."""
        schema.setdefault("primary_key", "id")
        schema.setdefault("timestamps", True)
        schema.setdefault("soft_delete", False)
        schema.setdefault("fields", {})
        return schema

    def normalize_relationships(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Turn the map form ``{name: {...}}`` into a list carrying ``name``."""
        relationships = schema.get("relationships")
        if relationships is None:
            return schema

        if isinstance(relationships, dict):
            schema["relationships"] = [
                {"name": name, **definition} for name, definition in relationships.items()
            ]
        return schema

    def normalize_details(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Merge the single ``detail`` section and the ``details`` list into ``details``."""
        if "detail" not in schema and "details" not in schema:
            return schema

        sections: list[dict[str, Any]] = []
        for key in ("detail", "details"):
            value = schema.pop(key, None)
            if value is None:
                continue
            if isinstance(value, list):
                sections.extend(value)
            else:
                sections.append(value)

        schema["details"] = sections
        return schema

    # =========================================================================
    # Fields
    # =========================================================================

    def normalize_orm_attributes(self, schema: dict[str, Any]) -> dict[str, Any]:
        """
        Map attribute spellings of popular ORMs onto the native ones.

        - nullable <-> required (inverted)
        - autoIncrement -> auto_increment, primaryKey -> primary
        - validate -> validation; unique / length -> validation rules
        - references -> lookup
        - ui object -> label, show_in, sortable, filterable, widget hints
        - defaultValue -> default
        """
        for field_def in schema["fields"].values():
            if "nullable" in field_def and "required" not in field_def:
                field_def["required"] = not field_def["nullable"]
            if "required" in field_def and "nullable" not in field_def:
                field_def["nullable"] = not field_def["required"]

            if "autoIncrement" in field_def and "auto_increment" not in field_def:
                field_def["auto_increment"] = field_def["autoIncrement"]

            if "primaryKey" in field_def and "primary" not in field_def:
                field_def["primary"] = field_def["primaryKey"]

            if "validate" in field_def and "validation" not in field_def:
                field_def["validation"] = copy.deepcopy(field_def["validate"])

            if "unique" in field_def:
                validation = field_def.setdefault("validation", {})
                validation.setdefault("unique", field_def["unique"])

            if "length" in field_def:
                validation = field_def.setdefault("validation", {})
                validation.setdefault("length", {"max": field_def["length"]})

            references = field_def.get("references")
            if isinstance(references, dict):
                if "lookup" not in field_def:
                    field_def["lookup"] = {
                        "model": references.get("model") or references.get("table"),
                        "id": references.get("key") or references.get("id") or "id",
                        "desc": references.get("display") or references.get("desc") or "name",
                    }
                if field_def.get("type", "integer") == "integer" and (
                    "display" in references or "desc" in references
                ):
                    field_def["type"] = "smartlookup"

            ui = field_def.get("ui")
            if isinstance(ui, dict):
                for key in ("label", "show_in", "sortable", "filterable"):
                    if key in ui and key not in field_def:
                        field_def[key] = copy.deepcopy(ui[key])

                if ui.get("type") == "lookup" and field_def.get("type", "integer") == "integer":
                    field_def["type"] = "smartlookup"

            if "defaultValue" in field_def and "default" not in field_def:
                field_def["default"] = field_def["defaultValue"]

        return schema

    def normalize_lookup_attributes(self, schema: dict[str, Any]) -> dict[str, Any]:
        """
        Canonicalize smartlookup configuration into ``field["lookup"]``, and
        mirror the resolved values onto the flat ``lookup_*`` keys.

        Accepted shapes, by precedence:
        1. flat ``lookup_model`` / ``lookup_id`` / ``lookup_desc``
        2. nested ``lookup: {model, id, desc}``
        3. shorthand ``model`` / ``id`` / ``desc`` on the field itself
        """
        for field_def in schema["fields"].values():
            if field_def.get("type") != "smartlookup":
                continue

            nested = field_def.get("lookup")
            if not isinstance(nested, dict):
                nested = {}

            lookup = {}
            for key in LOOKUP_KEYS:
                value = field_def.get(f"lookup_{key}")
                if value is None:
                    value = nested.get(key)
                if value is None:
                    value = field_def.get(key)
                lookup[key] = value
                if value is not None:
                    field_def[f"lookup_{key}"] = value

            field_def["lookup"] = lookup

        return schema

    def derive_field_flags(self, schema: dict[str, Any]) -> dict[str, Any]:
        """
        Derive listable / viewable / editable for every field.

        With ``show_in`` the flags follow the listed contexts (``form`` expands
        to create + edit). Otherwise:

            editable = explicit ?? not (auto_increment or computed or readonly)
            listable = explicit ?? False
            viewable = explicit ?? True
        """
        for field_def in schema["fields"].values():
            show_in = field_def.get("show_in")
            if isinstance(show_in, list):
                expanded: list[str] = []
                for context in show_in:
                    expanded.extend(("create", "edit") if context == "form" else (context,))
                show_in = list(dict.fromkeys(expanded))

                field_def["show_in"] = show_in
                field_def["listable"] = "list" in show_in
                field_def["editable"] = "create" in show_in or "edit" in show_in
                field_def["viewable"] = "detail" in show_in
                continue

            if "editable" not in field_def:
                field_def["editable"] = not (
                    field_def.get("auto_increment", False)
                    or field_def.get("computed", False)
                    or field_def.get("readonly", False)
                )
            field_def.setdefault("listable", False)
            field_def.setdefault("viewable", True)

        return schema

    def normalize_boolean_types(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Turn ``boolean-tgl`` style types into ``boolean`` plus a ``ui`` hint."""
        for field_def in schema["fields"].values():
            field_type = field_def.get("type", "string")

            match = _LEGACY_BOOLEAN_PATTERN.match(field_type)
            if match:
                field_def["type"] = "boolean"
                default_ui = BOOLEAN_UI_MAP[match.group(1)]
            elif field_type == "boolean":
                default_ui = "checkbox"
            else:
                continue

            # An explicit widget wins over the one implied by the legacy type
            ui = field_def.get("ui")
            if isinstance(ui, dict) and "widget" in ui:
                field_def["ui"] = ui["widget"]
            else:
                field_def.setdefault("ui", default_ui)

        return schema

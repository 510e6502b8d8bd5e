"""
Schema action management.

Adds the default create / edit / delete actions a schema's permissions allow,
completes toggle (``field_update``) actions with confirmation config, and
filters actions by the scope they are shown in.
"""

from __future__ import annotations

from typing import Any

from ..core.utils import humanize


DEFAULT_ACTIONS = (
    # (key, permission, label, icon, scope, style)
    ("create_action", "create", "Create", "plus", "list", "primary"),
    ("edit_action", "update", "Edit", "pen-to-square", "detail", "primary"),
    ("delete_action", "delete", "Delete", "trash", "detail", "danger"),
)


class SchemaActionManager:
    """Default and toggle action handling for normalized schemas."""

    def add_default_actions(self, schema: dict[str, Any]) -> dict[str, Any]:
        """
        Prepend default actions for the permissions the schema declares.

        Existing actions with the same key are never duplicated, and
        ``default_actions: false`` disables the defaults entirely.
        """
        if schema.get("default_actions") is False:
            return self.normalize_toggle_actions(schema)

        permissions = schema.get("permissions")
        if not isinstance(permissions, dict):
            permissions = {}

        existing = schema.get("actions") or []
        existing_keys = {action.get("key") for action in existing if isinstance(action, dict)}

        defaults = []
        for key, permission, label, icon, scope, style in DEFAULT_ACTIONS:
            if permission not in permissions or key in existing_keys:
                continue
            defaults.append({
                "key": key,
                "label": label,
                "icon": icon,
                "type": "form" if key != "delete_action" else "delete",
                "scope": [scope],
                "style": style,
                "permission": permissions[permission],
            })

        if defaults or "actions" in schema:
            schema["actions"] = defaults + list(existing)

        return self.normalize_toggle_actions(schema)

    def normalize_toggle_actions(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Give ``field_update`` toggle actions a confirm message and modal config."""
        fields = schema.get("fields", {})

        for action in schema.get("actions") or []:
            if not isinstance(action, dict) or action.get("type") != "field_update":
                continue
            if not action.get("toggle"):
                continue

            field_name = action.get("field", "")
            label = fields.get(field_name, {}).get("label") or humanize(field_name)

            action.setdefault("confirm", f"Are you sure you want to toggle {label}?")
            action.setdefault("modal_config", {"type": "confirm", "buttons": "yes_no"})

        return schema

    def filter_actions_by_scope(self, actions: list[dict[str, Any]], scope: str) -> list[dict[str, Any]]:
        """Actions shown in a scope; actions without a scope are shown everywhere."""
        result = []
        for action in actions:
            scopes = action.get("scope")
            if scopes is None:
                result.append(action)
                continue
            if isinstance(scopes, str):
                scopes = [scopes]
            if scope in scopes:
                result.append(action)
        return result

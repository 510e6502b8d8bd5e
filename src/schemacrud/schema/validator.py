"""
Schema document validation.

Rejects documents whose overall shape is broken. Relationship type-specific
keys (pivot tables, hop keys) are checked when the relationship is built, so
that one misconfigured relationship never makes the whole model unloadable.
"""

from __future__ import annotations

from typing import Any

from ..core.errors import ConfigurationError


REQUIRED_KEYS = ("model", "table")


class SchemaValidator:
    """
    Validates raw schema documents.

    Usage:
        SchemaValidator().validate(document, "users")
    """

    def validate(self, schema: dict[str, Any], model: str) -> None:
        """
        Validate a raw document for the requested model.

        Raises:
            ConfigurationError: on the first problem found
        """
        for key in REQUIRED_KEYS:
            value = schema.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(
                    f"Schema for model '{model}' is missing required field: {key}",
                    model=model,
                    field=key,
                )

        if schema["model"] != model:
            raise ConfigurationError(
                f"Schema model name '{schema['model']}' does not match requested model '{model}'",
                model=model,
            )

        fields = schema.get("fields", {})
        if not isinstance(fields, dict):
            raise ConfigurationError(f"Schema for model '{model}' must have a 'fields' object", model=model)

        for name, field_def in fields.items():
            if not isinstance(field_def, dict):
                raise ConfigurationError(
                    f"Field '{name}' of model '{model}' must be an object",
                    model=model,
                    field=name,
                )

        primary_key = schema.get("primary_key", "id")
        if primary_key not in fields:
            raise ConfigurationError(
                f"Primary key '{primary_key}' of model '{model}' is not a declared field",
                model=model,
                field=primary_key,
            )

        self._validate_relationships(schema.get("relationships"), model)
        self._validate_details(schema, model)

    def _validate_relationships(self, relationships: Any, model: str) -> None:
        if relationships is None:
            return

        if isinstance(relationships, dict):
            # Map form: name -> definition
            for name, definition in relationships.items():
                if not isinstance(definition, dict):
                    raise ConfigurationError(
                        f"Relationship '{name}' of model '{model}' must be an object",
                        model=model,
                        relationship=name,
                    )
            return

        if not isinstance(relationships, list):
            raise ConfigurationError(f"'relationships' of model '{model}' must be a list", model=model)

        names: set[str] = set()
        for index, definition in enumerate(relationships):
            if not isinstance(definition, dict) or not definition.get("name"):
                raise ConfigurationError(
                    f"Relationship #{index} of model '{model}' must be an object with a 'name'",
                    model=model,
                )
            if definition["name"] in names:
                raise ConfigurationError(
                    f"Relationship '{definition['name']}' is declared twice on model '{model}'",
                    model=model,
                    relationship=definition["name"],
                )
            names.add(definition["name"])

    def _validate_details(self, schema: dict[str, Any], model: str) -> None:
        sections: list[Any] = []
        if "detail" in schema:
            sections.append(schema["detail"])
        if "details" in schema:
            details = schema["details"]
            if isinstance(details, list):
                sections.extend(details)
            else:
                sections.append(details)

        seen: set[str] = set()
        for section in sections:
            if not isinstance(section, dict) or not section.get("model") or not section.get("foreign_key"):
                raise ConfigurationError(
                    f"Detail sections of model '{model}' require 'model' and 'foreign_key'",
                    model=model,
                )
            # Detail responses are keyed by section model
            if section["model"] in seen:
                raise ConfigurationError(
                    f"Model '{model}' declares more than one detail section for '{section['model']}'",
                    model=model,
                    detail=section["model"],
                )
            seen.add(section["model"])

    def has_permission(self, schema: dict[str, Any], operation: str) -> bool:
        """True when the schema declares a permission for the operation."""
        permissions = schema.get("permissions")
        return isinstance(permissions, dict) and operation in permissions

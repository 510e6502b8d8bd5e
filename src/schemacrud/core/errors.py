"""
Custom exceptions for the schemacrud system.

Every error carries a machine-readable ``kind``, a human-readable message
and the context needed to diagnose it (model, field, relationship ...).
"""

from __future__ import annotations

from typing import Any, Optional


class SchemaCrudError(Exception):
    """Base exception for all schemacrud errors."""

    kind = "error"

    def __init__(self, message: str, model: Optional[str] = None, **context: Any):
        self.message = message
        self.model = model
        self.context = {key: value for key, value in context.items() if value is not None}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serializable representation used in logs and error markers."""
        data: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.model is not None:
            data["model"] = self.model
        data.update(self.context)
        return data


class ConfigurationError(SchemaCrudError):
    """Raised when a schema document or relationship definition is invalid."""

    kind = "configuration_error"


class NotFoundError(SchemaCrudError):
    """Raised when a requested resource does not exist."""

    kind = "not_found"


class SchemaNotFoundError(NotFoundError):
    """Raised when no schema file resolves for a model/connection pair."""

    def __init__(self, model: str, connection: Optional[str] = None, searched: Optional[list[str]] = None):
        self.searched = searched or []
        super().__init__(
            f"Schema file not found for model '{model}'"
            f"{f' (connection {connection})' if connection else ''}",
            model=model,
            connection=connection,
        )


class RecordNotFoundError(NotFoundError):
    """Raised when a record with the given primary key does not exist."""

    def __init__(self, model: str, record_id: Any):
        self.record_id = record_id
        super().__init__(f"Record {record_id!r} not found for model '{model}'", model=model, id=record_id)


class ValidationError(SchemaCrudError):
    """Raised when a request or an input value is rejected."""

    kind = "validation_error"

    def __init__(self, errors: list[str], model: Optional[str] = None, **context: Any):
        self.errors = errors
        super().__init__(f"Validation failed: {errors}", model=model, **context)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = list(self.errors)
        return data


class RelationshipQueryError(SchemaCrudError):
    """
    Recorded when one relationship or detail section of a detail response
    fails to resolve. Sibling relationships are unaffected.
    """

    kind = "relationship_query_error"

    def __init__(self, message: str, relationship: str, model: Optional[str] = None, cause: Optional[str] = None):
        self.relationship = relationship
        super().__init__(message, model=model, relationship=relationship, cause=cause)

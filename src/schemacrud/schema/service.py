"""
Schema service.

Ties the schema pipeline together:

    loader -> validator -> normalizer -> cache -> context filter

and hands out DynamicModel instances configured from the full normalized
schema.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence, Union

from ..config import CrudSettings
from ..models.dynamic import DynamicModel
from .cache import SchemaCache
from .filter import SchemaContextFilter
from .loader import SchemaLoader
from .normalizer import SchemaNormalizer
from .validator import SchemaValidator

logger = logging.getLogger(__name__)


class SchemaService:
    """
    Entry point for obtaining schemas and configured models.

    Usage:
        service = SchemaService.from_settings(settings)
        list_schema = service.get_schema("users", context="list")
        users = service.get_model_instance("users")
    """

    def __init__(
        self,
        loader: SchemaLoader,
        validator: Optional[SchemaValidator] = None,
        normalizer: Optional[SchemaNormalizer] = None,
        cache: Optional[SchemaCache] = None,
        context_filter: Optional[SchemaContextFilter] = None,
        settings: Optional[CrudSettings] = None,
    ):
        self.settings = settings or CrudSettings()
        self.loader = loader
        self.validator = validator or SchemaValidator()
        self.normalizer = normalizer or SchemaNormalizer()
        self.cache = cache if cache is not None else SchemaCache(debug=self.settings.debug_mode)
        self.context_filter = context_filter or SchemaContextFilter()

    @classmethod
    def from_settings(cls, settings: CrudSettings, cache: Optional[SchemaCache] = None) -> "SchemaService":
        return cls(SchemaLoader(settings.schema_path), cache=cache, settings=settings)

    # =========================================================================
    # Schemas
    # =========================================================================

    def get_schema(
        self,
        model: str,
        connection: Optional[str] = None,
        context: Union[str, Sequence[str], None] = None,
    ) -> dict[str, Any]:
        """
        Get a schema, projected for ``context`` when one is given.

        Raises:
            SchemaNotFoundError: no document for the model/connection
            ConfigurationError: the document is invalid
            ValidationError: unknown context
        """
        schema = self.get_full_schema(model, connection)
        if context is None:
            return schema
        return self.context_filter.project(schema, context)

    def get_full_schema(self, model: str, connection: Optional[str] = None) -> dict[str, Any]:
        """Get the full normalized schema, loading and caching it on a miss."""
        cached = self.cache.get(model, connection)
        if cached is not None:
            return cached

        loaded = self.loader.load(model, connection)
        self.validator.validate(loaded.document, model)
        schema = self.normalizer.normalize(loaded.document)

        if connection is not None:
            if loaded.from_connection_path:
                schema.setdefault("connection", connection)
            else:
                schema["connection"] = connection

        if self.settings.debug_mode:
            logger.debug(
                f"Normalized schema for {model} from {loaded.path}: "
                f"{len(schema['fields'])} fields, {len(schema.get('relationships') or [])} relationships"
            )

        self.cache.set(model, schema, connection)
        return schema

    def load_schemas(self, models: Iterable[str], connection: Optional[str] = None) -> dict[str, dict[str, Any]]:
        """Load several schemas, each model at most once."""
        schemas: dict[str, dict[str, Any]] = {}
        for model in models:
            if model not in schemas:
                schemas[model] = self.get_full_schema(model, connection)
        return schemas

    def reload(self, model: Optional[str] = None, connection: Optional[str] = None) -> Optional[dict[str, Any]]:
        """
        Drop cached schemas. With a model, the model is loaded again and
        returned; without one the whole cache is cleared.
        """
        if model is None:
            self.cache.clear()
            return None

        self.cache.invalidate(model, connection)
        logger.info(f"Reloading schema: {model}")
        return self.get_full_schema(model, connection)

    # =========================================================================
    # Models
    # =========================================================================

    def get_model_instance(self, model: str, connection: Optional[str] = None) -> DynamicModel:
        """Get a DynamicModel configured from the full normalized schema."""
        schema = self.get_full_schema(model, connection)
        instance = DynamicModel(default_connection=self.settings.default_connection)
        instance.configure(schema)
        return instance

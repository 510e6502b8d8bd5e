"""
In-process schema cache.

Holds normalized schema documents keyed by ``model:connection``. A document
is published with a single dict assignment once it is fully built, and every
read returns a deep copy, so callers can never observe or cause a partially
written or mutated entry.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


# Key part for "no connection given"; never a valid connection folder name
DEFAULT_CONNECTION_KEY = "*"


class SchemaCache:
    """
    Cache of normalized schema documents.

    Construct one per process (or per test) and inject it where needed.

    Usage:
        cache = SchemaCache()
        cache.set("users", schema, connection="reporting")
        schema = cache.get("users", connection="reporting")
    """

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._entries: dict[str, dict[str, Any]] = {}

    @staticmethod
    def key(model: str, connection: Optional[str] = None) -> str:
        return f"{model}:{DEFAULT_CONNECTION_KEY if connection is None else connection}"

    def get(self, model: str, connection: Optional[str] = None) -> Optional[dict[str, Any]]:
        """Return a copy of the cached document, or None on a miss."""
        cache_key = self.key(model, connection)
        entry = self._entries.get(cache_key)
        if entry is None:
            if self.debug:
                logger.debug(f"Schema cache MISS: {cache_key}")
            return None

        if self.debug:
            logger.debug(f"Schema cache HIT: {cache_key}")
        return copy.deepcopy(entry)

    def set(self, model: str, schema: dict[str, Any], connection: Optional[str] = None) -> None:
        """Publish a fully built document. Last write wins."""
        cache_key = self.key(model, connection)
        self._entries[cache_key] = copy.deepcopy(schema)
        if self.debug:
            logger.debug(f"Schema cached: {cache_key}")

    def invalidate(self, model: str, connection: Optional[str] = None) -> bool:
        """Drop one entry. Returns True if something was removed."""
        removed = self._entries.pop(self.key(model, connection), None) is not None
        if removed:
            logger.debug(f"Schema cache invalidated: {self.key(model, connection)}")
        return removed

    def invalidate_model(self, model: str) -> int:
        """Drop the entries of a model for every connection."""
        prefix = f"{model}:"
        keys = [cache_key for cache_key in list(self._entries) if cache_key.startswith(prefix)]
        for cache_key in keys:
            self._entries.pop(cache_key, None)
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()
        logger.debug("Schema cache cleared")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, cache_key: Any) -> bool:
        return cache_key in self._entries

"""
Database utilities for schemacrud.

Provides:
- Named SQLAlchemy engines, created lazily per connection name
- Connection scopes for the calling layer's transaction boundary
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine

from ..config import CrudSettings
from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Resolves connection names declared by schemas to SQLAlchemy engines.

    Usage:
        connections = ConnectionManager(settings)
        with connections.begin("reporting") as conn:
            ...
    """

    def __init__(self, settings: Optional[CrudSettings] = None, engines: Optional[dict[str, Engine]] = None):
        self.settings = settings or CrudSettings()
        self._engines: dict[str, Engine] = dict(engines or {})

    @property
    def default_connection(self) -> str:
        return self.settings.default_connection

    def register(self, name: str, engine: Engine) -> None:
        """Register an already created engine under a connection name."""
        self._engines[name] = engine

    def get_engine(self, name: Optional[str] = None) -> Engine:
        """Get or create the engine for a connection name."""
        name = name or self.default_connection
        engine = self._engines.get(name)
        if engine is not None:
            return engine

        url = self.settings.connections.get(name)
        if url is None:
            raise ConfigurationError(
                f"Unknown database connection '{name}'. "
                f"Available: {sorted(set(self.settings.connections) | set(self._engines))}",
                connection=name,
            )

        logger.info(f"Creating engine for connection: {name}")
        engine = create_engine(url, echo=self.settings.sql_echo)
        self._engines[name] = engine
        return engine

    @contextmanager
    def begin(self, name: Optional[str] = None) -> Iterator[Connection]:
        """Open a connection with a transaction that commits on success."""
        with self.get_engine(name).begin() as conn:
            yield conn

    @contextmanager
    def connect(self, name: Optional[str] = None) -> Iterator[Connection]:
        """Open a plain connection for read-only work."""
        with self.get_engine(name).connect() as conn:
            yield conn

    def dispose(self) -> None:
        """Close all engines and their pools."""
        for name, engine in self._engines.items():
            logger.debug(f"Disposing engine: {name}")
            engine.dispose()
        self._engines.clear()

    def __contains__(self, name: Any) -> bool:
        return name in self._engines or name in self.settings.connections

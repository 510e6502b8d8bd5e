"""
Configuration loading for schemacrud.

Settings live in a YAML file (default ``schemacrud.yaml``) and can be
overridden from the environment:

- SCHEMACRUD_SCHEMA_PATH: directory holding schema documents
- DATABASE_URL: URL of the default connection
- SCHEMACRUD_DEBUG: verbose schema pipeline logging
- SQL_ECHO: echo SQL statements
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .core.utils import is_truthy


DEFAULT_DATABASE_URL = "sqlite:///schemacrud.db"


@dataclass
class CrudSettings:
    """Main schemacrud configuration."""
    schema_path: str = "schema"
    default_connection: str = "default"
    connections: dict[str, str] = field(default_factory=lambda: {"default": DEFAULT_DATABASE_URL})
    default_page_size: int = 25
    max_page_size: int = 100
    debug_mode: bool = False
    sql_echo: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrudSettings":
        """Create settings from dictionary."""
        pagination = data.get("pagination", {})

        connections = {
            name: str(url)
            for name, url in (data.get("connections") or {}).items()
        }
        default_connection = data.get("default_connection", "default")
        if default_connection not in connections:
            connections[default_connection] = DEFAULT_DATABASE_URL

        return cls(
            schema_path=data.get("schema_path", "schema"),
            default_connection=default_connection,
            connections=connections,
            default_page_size=int(pagination.get("default_size", 25)),
            max_page_size=int(pagination.get("max_size", 100)),
            debug_mode=is_truthy(data.get("debug_mode", False)),
            sql_echo=is_truthy(data.get("sql_echo", False)),
        )

    def apply_environment(self) -> "CrudSettings":
        """Override settings from environment variables."""
        schema_path = os.getenv("SCHEMACRUD_SCHEMA_PATH")
        if schema_path:
            self.schema_path = schema_path

        database_url = os.getenv("DATABASE_URL")
        if database_url:
            self.connections[self.default_connection] = database_url

        debug = os.getenv("SCHEMACRUD_DEBUG")
        if debug is not None:
            self.debug_mode = is_truthy(debug)

        echo = os.getenv("SQL_ECHO")
        if echo is not None:
            self.sql_echo = is_truthy(echo)

        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary for YAML serialization."""
        return {
            "schema_path": self.schema_path,
            "default_connection": self.default_connection,
            "connections": dict(self.connections),
            "pagination": {
                "default_size": self.default_page_size,
                "max_size": self.max_page_size,
            },
            "debug_mode": self.debug_mode,
            "sql_echo": self.sql_echo,
        }

    def save(self, path: Path | str = "schemacrud.yaml") -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        content = yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)
        path.write_text(content)


def load_settings(path: Path | str = "schemacrud.yaml", use_env: bool = True) -> CrudSettings:
    """
    Load settings from YAML file.

    A missing file yields the defaults; environment overrides are applied
    afterwards unless ``use_env`` is False.
    """
    path = Path(path)
    data: Optional[dict[str, Any]] = None
    if path.exists():
        data = yaml.safe_load(path.read_text())

    settings = CrudSettings.from_dict(data or {})
    if use_env:
        settings.apply_environment()
    return settings

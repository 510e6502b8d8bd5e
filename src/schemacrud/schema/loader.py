"""
Schema document loading.

Resolves a model name (and optional connection) to a raw document on disk.
For model ``X`` requested with connection ``C`` the lookup order is:

    {schema_path}/C/X.json   (connection-specific folder)
    {schema_path}/X.json     (default location)

``.yaml`` / ``.yml`` documents are accepted when no ``.json`` sibling exists.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from ..core.errors import ConfigurationError, SchemaNotFoundError

logger = logging.getLogger(__name__)


SCHEMA_EXTENSIONS = (".json", ".yaml", ".yml")


@dataclass
class LoadedSchema:
    """A raw schema document plus where it was found."""
    document: dict[str, Any]
    path: Path
    from_connection_path: bool


class SchemaLoader:
    """
    Reads raw schema documents from a directory tree.

    Usage:
        loader = SchemaLoader("app/schema")
        loaded = loader.load("users", connection="reporting")
    """

    def __init__(self, schema_path: Path | str):
        self.schema_path = Path(schema_path)

    def get_schema_file_path(self, model: str, connection: Optional[str] = None) -> Path:
        """Path of the JSON document for a model, inside the connection folder if given."""
        if connection is not None:
            return self.schema_path / connection / f"{model}.json"
        return self.schema_path / f"{model}.json"

    def candidate_paths(self, model: str, connection: Optional[str] = None) -> list[tuple[Path, bool]]:
        """All paths tried, in order, with a flag telling whether it is connection-specific."""
        folders: list[tuple[Path, bool]] = []
        if connection is not None:
            folders.append((self.schema_path / connection, True))
        folders.append((self.schema_path, False))

        return [
            (folder / f"{model}{extension}", is_connection)
            for folder, is_connection in folders
            for extension in SCHEMA_EXTENSIONS
        ]

    def load(self, model: str, connection: Optional[str] = None) -> LoadedSchema:
        """
        Load the raw document for a model.

        Raises:
            SchemaNotFoundError: no document exists at any candidate path
            ConfigurationError: the document is not valid JSON/YAML or not an object
        """
        candidates = self.candidate_paths(model, connection)

        for path, from_connection_path in candidates:
            if not path.is_file():
                continue

            logger.debug(f"Loading schema for {model} from {path}")
            document = self._read(path, model)
            return LoadedSchema(document=document, path=path, from_connection_path=from_connection_path)

        raise SchemaNotFoundError(model, connection, searched=[str(path) for path, _ in candidates])

    def exists(self, model: str, connection: Optional[str] = None) -> bool:
        return any(path.is_file() for path, _ in self.candidate_paths(model, connection))

    def _read(self, path: Path, model: str) -> dict[str, Any]:
        text = path.read_text(encoding="utf-8")
        try:
            if path.suffix == ".json":
                document = json.loads(text)
            else:
                document = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Malformed schema document {path}: {e}",
                model=model,
                path=str(path),
            ) from e

        if not isinstance(document, dict):
            raise ConfigurationError(
                f"Schema document {path} must contain an object, got {type(document).__name__}",
                model=model,
                path=str(path),
            )
        return document

"""
Utility functions for schemacrud.

Includes:
- Title helpers for schema metadata defaults
- Lenient scalar parsing shared by casting, filtering and config
"""

from __future__ import annotations

from typing import Any


# =============================================================================
# Title helpers
# =============================================================================


def ucfirst(name: str) -> str:
    """
    Uppercase the first character only.

    Examples:
        groups -> Groups
        order_details -> Order_details
    """
    return name[:1].upper() + name[1:] if name else name


def humanize(name: str) -> str:
    """
    Turn a snake_case identifier into a readable label.

    Examples:
        user_name -> User name
        group_id -> Group id
    """
    return ucfirst(name.replace("_", " ").strip())


# =============================================================================
# Scalar parsing
# =============================================================================

_TRUE_STRINGS = {"1", "true", "yes", "on", "y"}
_FALSE_STRINGS = {"0", "false", "no", "off", "n", ""}


def is_truthy(value: Any) -> bool:
    """
    Interpret common boolean spellings.

    Strings are matched case-insensitively against yes/no style words;
    anything else falls back to Python truthiness.
    """
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return bool(value)


def split_csv(value: Any) -> list[Any]:
    """
    Accept a list/tuple/set as-is, or split a comma-separated string.

    Examples:
        "1, 2,3" -> ["1", "2", "3"]
        [1, 2] -> [1, 2]
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [value]

"""
Request parameter parsing for schemacrud.

Supports the shapes the calling layer hands over:

1. Nested mappings (JSON bodies):
   {"page": 2, "sort": {"name": "asc"}, "filters": {"group_id": 1}}

2. Flat query-string keys:
   {"page": "2", "sort[name]": "asc", "filters[group_id]": "1"}

3. Context parameters:
   "list", "detail", "form", "list,form", ["list", "form"]
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Sequence, Union


# sort[name], filters[group_id], filter[group_id]
_BRACKET_KEY_PATTERN = re.compile(r"^(?P<group>sort|filters|filter)\[(?P<field>[^\]]+)\]$")

# Keys merged into "filters"
_FILTER_GROUPS = ("filters", "filter")


def parse_list_params(params: Mapping[str, Any]) -> dict[str, Any]:
    """
    Fold flat bracketed keys into nested ``sort`` / ``filters`` mappings.

    Example:
        {"sort[name]": "desc", "filters[email]": "a@b.c", "size": "10"}
        ->
        {"sort": {"name": "desc"}, "filters": {"email": "a@b.c"}, "size": "10"}
    """
    parsed: dict[str, Any] = {}
    sort: dict[str, Any] = {}
    filters: dict[str, Any] = {}

    for key, value in params.items():
        match = _BRACKET_KEY_PATTERN.match(key)
        if match:
            if match.group("group") == "sort":
                sort[match.group("field")] = value
            else:
                filters[match.group("field")] = value
            continue

        if key == "sort" and isinstance(value, Mapping):
            sort.update(value)
        elif key in _FILTER_GROUPS and isinstance(value, Mapping):
            filters.update(value)
        else:
            parsed[key] = value

    if sort:
        parsed["sort"] = {field: str(direction).lower() for field, direction in sort.items()}
    if filters:
        parsed["filters"] = filters

    return parsed


def parse_context(context: Union[str, Sequence[str], None]) -> Optional[list[str]]:
    """
    Split a context parameter into context names.

    Returns None when the full schema was requested (no context, empty
    string or ``full``).
    """
    if context is None:
        return None

    if isinstance(context, str):
        names = [part.strip() for part in context.split(",")]
    else:
        names = [str(part).strip() for part in context]

    names = [name for name in names if name]
    if not names or names == ["full"]:
        return None

    # Preserve order, drop duplicates
    return list(dict.fromkeys(names))

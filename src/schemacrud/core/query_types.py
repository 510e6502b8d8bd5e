"""
Pydantic models for list queries and their results.

These define the structure of incoming list parameters and the normalized
internal representation used by the QueryEngine.
"""

from __future__ import annotations

from typing import Any, Literal, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .request_parser import parse_list_params


FILTER_STRATEGIES = (
    "equals",
    "like",
    "starts_with",
    "ends_with",
    "in",
    "between",
    "greater_than",
    "less_than",
    "not_equals",
)


# --- Normalized types (internal representation after validation) ---

class NormalizedFilter(BaseModel):
    """
    Normalized filter representation.

    Input: {"filters": {"name": {"starts_with": "Al"}}}
    Normalized: NormalizedFilter(field="name", op="starts_with", value="Al")
    """
    field: str
    op: str  # one of FILTER_STRATEGIES
    value: Any


class NormalizedOrder(BaseModel):
    """
    Normalized order representation.

    Input: {"sort": {"created_at": "desc"}}
    Normalized: NormalizedOrder(field="created_at", dir="desc")
    """
    field: str
    dir: Literal["asc", "desc"]


# --- Input types (from the calling layer) ---

class ListQuery(BaseModel):
    """
    List parameters for one page of rows.

    Example:
    {
        "page": 2,
        "size": 10,
        "sort": {"name": "asc"},
        "filters": {"group_id": 1},
        "search": "ali"
    }
    """
    model_config = ConfigDict(populate_by_name=True)

    page: int = Field(default=1, ge=1)
    size: Optional[int] = Field(default=None, ge=1, validation_alias=AliasChoices("size", "per_page"))
    sort: dict[str, str] = Field(default_factory=dict)
    filters: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("filters", "filter"))
    search: Optional[str] = None

    @classmethod
    def parse(cls, params: Union["ListQuery", Mapping[str, Any], None]) -> "ListQuery":
        """
        Build a ListQuery from a ListQuery, a nested mapping or flat
        HTTP-style parameters (``sort[name]=asc``).

        Raises:
            ValidationError: page/size out of range or wrong types.
        """
        if isinstance(params, cls):
            return params

        try:
            return cls.model_validate(parse_list_params(params or {}))
        except PydanticValidationError as e:
            errors = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise ValidationError(errors)


# --- Result types ---

class ListResult(BaseModel):
    """
    One page of rows plus the total number of matching rows.

    ``count`` is computed before pagination. ``error`` is only set when this
    result stands in for a relationship that failed to resolve.
    """
    rows: list[dict[str, Any]] = Field(default_factory=list)
    count: int = 0
    error: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"rows": self.rows, "count": self.count}
        if self.error is not None:
            data["error"] = self.error
        return data

"""
Generic list query executor.

Runs filter / search / sort / paginate over a DynamicModel, bounded by
allow-lists taken from the model's ``list`` projection. Anything the
allow-lists do not authorize is rejected with a ValidationError naming every
offending clause.

Usage:
    engine = QueryEngine.for_projection(users, list_projection, settings)
    result = engine.list(conn, {"page": 2, "sort[user_name]": "asc"})
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from sqlalchemy import Table, func, or_, select
from sqlalchemy.engine import Connection
from sqlalchemy.sql import Select

from ..config import CrudSettings
from ..core.errors import ValidationError
from ..core.query_types import FILTER_STRATEGIES, ListQuery, ListResult, NormalizedFilter, NormalizedOrder
from ..core.utils import split_csv
from ..models.dynamic import DynamicModel
from ..schema.filter import default_filter_strategy, list_allow_lists

logger = logging.getLogger(__name__)


# Strategies compared against the raw text value instead of the cast value
TEXT_STRATEGIES = ("like", "starts_with", "ends_with")

QueryCallback = Callable[[Select], Select]


class QueryEngine:
    """List/sort/filter/search/paginate executor for one model."""

    def __init__(
        self,
        model: DynamicModel,
        settings: Optional[CrudSettings] = None,
        base_query: Optional[Select] = None,
    ):
        self.model = model
        self.settings = settings or CrudSettings()
        self.base_query = base_query
        self.table: Table = model.table
        self.sortable_fields: list[str] = []
        self.filterable_fields: dict[str, str] = {}
        self.searchable_fields: list[str] = []
        self.list_fields: list[str] = []
        self._callbacks: list[QueryCallback] = []

    @classmethod
    def for_projection(
        cls,
        model: DynamicModel,
        list_projection: dict[str, Any],
        settings: Optional[CrudSettings] = None,
        base_query: Optional[Select] = None,
        list_fields: Optional[Sequence[str]] = None,
    ) -> "QueryEngine":
        """Engine whose allow-lists come from a ``list`` projection."""
        allowed = list_allow_lists(list_projection)
        engine = cls(model, settings, base_query=base_query)
        engine.setup(
            model.table,
            allowed.sortable,
            allowed.filterable,
            list(list_fields) if list_fields else allowed.list_fields,
            allowed.searchable,
        )
        return engine

    def setup(
        self,
        table: Optional[Table],
        sortable_fields: Sequence[str],
        filterable_fields: Union[Mapping[str, str], Sequence[str]],
        list_fields: Sequence[str],
        searchable_fields: Optional[Sequence[str]] = None,
    ) -> "QueryEngine":
        """
        Bind the table and the allow-lists.

        Args:
            table: Table to query (None keeps the model's table)
            sortable_fields: Fields that may appear in ``sort``
            filterable_fields: Fields that may appear in ``filters``, either
                a name -> default strategy map or a plain list
            list_fields: Fields returned for each row
            searchable_fields: Fields matched by ``search``
        """
        if table is not None:
            self.table = table
        self.sortable_fields = list(sortable_fields)
        if isinstance(filterable_fields, Mapping):
            self.filterable_fields = dict(filterable_fields)
        else:
            fields = self.model.schema.get("fields", {})
            self.filterable_fields = {
                name: default_filter_strategy(fields.get(name, {})) for name in filterable_fields
            }
        self.list_fields = list(list_fields)
        self.searchable_fields = list(searchable_fields or [])
        return self

    def extend_query(self, callback: QueryCallback) -> "QueryEngine":
        """Add a scoping callback applied to every statement (count and page)."""
        self._callbacks.append(callback)
        return self

    # =========================================================================
    # Execution
    # =========================================================================

    def list(self, conn: Connection, params: Union[ListQuery, Mapping[str, Any], None] = None) -> ListResult:
        """
        Run one page of the list query.

        Raises:
            ValidationError: sort/filter outside the allow-lists, unknown
                strategy, bad direction or bad paging
        """
        query = ListQuery.parse(params)
        filters, orders = self._validate(query)

        stmt = self.base_query if self.base_query is not None else self.model.select()
        for callback in self._callbacks:
            stmt = callback(stmt)

        stmt = self._apply_filters(stmt, filters)
        stmt = self._apply_search(stmt, query.search)

        # Count total before pagination
        count_stmt = select(func.count()).select_from(stmt.subquery())
        count = conn.execute(count_stmt).scalar() or 0

        stmt = self._apply_order(stmt, orders)

        size = min(query.size or self.settings.default_page_size, self.settings.max_page_size)
        stmt = stmt.offset((query.page - 1) * size).limit(size)

        rows = [self._project_row(row) for row in conn.execute(stmt).mappings()]
        logger.debug(f"Listed {len(rows)}/{count} {self.model.model_name} rows (page {query.page}, size {size})")
        return ListResult(rows=rows, count=count)

    def _validate(self, query: ListQuery) -> tuple[list[NormalizedFilter], list[NormalizedOrder]]:
        errors: list[str] = []
        orders: list[NormalizedOrder] = []
        filters: list[NormalizedFilter] = []

        for field, direction in query.sort.items():
            if field not in self.sortable_fields:
                errors.append(f"Sorting by '{field}' is not allowed")
            elif direction not in ("asc", "desc"):
                errors.append(f"Invalid sort direction '{direction}' for '{field}', expected asc or desc")
            elif field not in self.table.c:
                errors.append(f"Cannot sort by '{field}': not a stored column")
            else:
                orders.append(NormalizedOrder(field=field, dir=direction))

        for field, value in query.filters.items():
            if field not in self.filterable_fields:
                errors.append(f"Filtering by '{field}' is not allowed")
                continue
            if field not in self.table.c:
                errors.append(f"Cannot filter by '{field}': not a stored column")
                continue

            op = self.filterable_fields[field]
            if isinstance(value, Mapping):
                if len(value) != 1:
                    errors.append(f"Filter for '{field}' must name exactly one strategy")
                    continue
                op, value = next(iter(value.items()))

            if op not in FILTER_STRATEGIES:
                errors.append(f"Unknown filter strategy '{op}' for '{field}'")
                continue

            try:
                filters.append(NormalizedFilter(field=field, op=op, value=self._filter_value(field, op, value)))
            except ValidationError as e:
                errors.extend(f"Filter '{field}' ({op}): {error}" for error in e.errors)
            except ValueError as e:
                errors.append(f"Invalid value for filter '{field}' ({op}): {e}")

        if errors:
            raise ValidationError(errors, model=self.model.model_name)
        return filters, orders

    def _filter_value(self, field: str, op: str, value: Any) -> Any:
        if op in TEXT_STRATEGIES:
            return str(value)
        if op == "in":
            return [self.model.cast_attribute(field, item) for item in split_csv(value)]
        if op == "between":
            bounds = split_csv(value)
            if len(bounds) != 2:
                raise ValueError("between expects exactly two values")
            return [self.model.cast_attribute(field, item) for item in bounds]
        return self.model.cast_attribute(field, value)

    def _apply_filters(self, stmt: Select, filters: list[NormalizedFilter]) -> Select:
        """Apply filters to select statement."""
        for f in filters:
            column = self.table.c[f.field]

            if f.op == "equals":
                stmt = stmt.where(column == f.value)
            elif f.op == "not_equals":
                stmt = stmt.where(column != f.value)
            elif f.op == "like":
                stmt = stmt.where(column.icontains(f.value, autoescape=True))
            elif f.op == "starts_with":
                stmt = stmt.where(column.istartswith(f.value, autoescape=True))
            elif f.op == "ends_with":
                stmt = stmt.where(column.iendswith(f.value, autoescape=True))
            elif f.op == "in":
                stmt = stmt.where(column.in_(f.value))
            elif f.op == "between":
                stmt = stmt.where(column.between(f.value[0], f.value[1]))
            elif f.op == "greater_than":
                stmt = stmt.where(column > f.value)
            elif f.op == "less_than":
                stmt = stmt.where(column < f.value)

        return stmt

    def _apply_search(self, stmt: Select, search: Optional[str]) -> Select:
        if not search or not search.strip():
            return stmt

        columns = [self.table.c[name] for name in self.searchable_fields if name in self.table.c]
        if not columns:
            return stmt
        term = search.strip()
        return stmt.where(or_(*(column.icontains(term, autoescape=True) for column in columns)))

    def _apply_order(self, stmt: Select, orders: list[NormalizedOrder]) -> Select:
        if not orders:
            default_sort = self.model.schema.get("default_sort") or {}
            orders = [
                NormalizedOrder(field=field, dir=str(direction).lower())
                for field, direction in default_sort.items()
                if field in self.table.c and str(direction).lower() in ("asc", "desc")
            ]

        primary_key = self.model.primary_key
        if primary_key in self.table.c and all(order.field != primary_key for order in orders):
            orders.append(NormalizedOrder(field=primary_key, dir="asc"))

        for order in orders:
            column = self.table.c[order.field]
            stmt = stmt.order_by(column.desc() if order.dir == "desc" else column.asc())
        return stmt

    def _project_row(self, row: Mapping[str, Any]) -> dict[str, Any]:
        if not self.list_fields:
            return dict(row)
        return {name: row[name] for name in self.list_fields if name in row}

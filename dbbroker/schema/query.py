"""Pydantic models for the dialect-neutral SELECT description.

A ``Query`` captures intent only: which columns, which sources, which
conditions.  It is compiled by :class:`~dbbroker.compile.builder.QueryBuilder`
and never mutated by compilation.  All clause keys are optional.

Queries can be constructed directly from the models or through the fluent
methods, each of which returns a new copy::

    query = (
        Query()
        .select(["id", "name AS title"])
        .from_("article a")
        .left_join("user u", "u.id = a.author_id")
        .where({"a.status": 1})
        .and_where([">", "a.rating", 3])
        .order_by({"a.created_at": "DESC"})
        .limit(10)
    )
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dbbroker.schema.conditions import And, Or, parse_condition
from dbbroker.schema.expressions import Expression, SortDirection

_QUERY_CONFIG = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

_ORDER_DIRECTION_RE = re.compile(r"^(.*?)\s+(asc|desc)$", re.IGNORECASE)


class SelectItem(BaseModel):
    """A single item in the SELECT clause.

    Attributes:
        expr: Column name (optionally with a trailing ``AS alias``), raw
            :class:`Expression`, or a nested :class:`Query`.
        alias: Optional alias; required for a nested query.
    """

    model_config = _QUERY_CONFIG

    expr: Any
    alias: str | None = None


class TableRef(BaseModel):
    """A single FROM / JOIN source.

    Attributes:
        source: Table name (optionally with a trailing alias), raw
            :class:`Expression`, or a nested :class:`Query`.
        alias: Optional alias; required for a nested query.
    """

    model_config = _QUERY_CONFIG

    source: Any
    alias: str | None = None


class JoinClause(BaseModel):
    """A single JOIN entry.

    Attributes:
        type: Join keyword, emitted verbatim (``INNER JOIN``, ``LEFT JOIN``...).
        table: The joined source.
        on: Optional join condition in any form accepted by
            :func:`~dbbroker.schema.conditions.parse_condition`.
    """

    model_config = _QUERY_CONFIG

    type: str = "INNER JOIN"
    table: TableRef
    on: Any = None

    @field_validator("table", mode="before")
    @classmethod
    def _coerce_table(cls, value: Any) -> Any:
        if isinstance(value, TableRef):
            return value
        refs = to_table_refs(value)
        if len(refs) != 1:
            raise ValueError("A join clause must reference exactly one table.")
        return refs[0]

    @field_validator("on", mode="before")
    @classmethod
    def _coerce_on(cls, value: Any) -> Any:
        return parse_condition(value)


class OrderByItem(BaseModel):
    """A single ORDER BY key.

    Attributes:
        expr: Column name or raw :class:`Expression` (emitted verbatim).
        direction: Sort direction; only ``DESC`` is rendered.
    """

    model_config = _QUERY_CONFIG

    expr: Any
    direction: SortDirection = SortDirection.ASC


class UnionClause(BaseModel):
    """A UNION block appended to the main query.

    Attributes:
        query: The united query, or raw SQL text.
        all: Emit ``UNION ALL`` instead of ``UNION``.
    """

    model_config = _QUERY_CONFIG

    query: Query | str
    all: bool = False


class Query(BaseModel):
    """Dialect-neutral description of a SELECT statement.

    Attributes:
        SELECT: Select items; empty means ``*``.
        DISTINCT: Emit ``SELECT DISTINCT``.
        SELECT_OPTION: Extra keyword after SELECT (e.g. ``SQL_CALC_FOUND_ROWS``).
        FROM: Source tables.
        JOIN: Join clauses in emission order.
        WHERE: Row filter condition.
        GROUP_BY: Grouping columns or expressions.
        HAVING: Group filter condition.
        ORDER_BY: Ordering keys.
        LIMIT: Maximum rows; negative values disable the limit.
        OFFSET: Rows to skip; zero or negative values disable the offset.
        UNION: Queries united with this one.
        PARAMS: Caller-supplied named parameters, merged first.
    """

    model_config = _QUERY_CONFIG

    SELECT: list[SelectItem] = Field(default_factory=list)
    DISTINCT: bool = False
    SELECT_OPTION: str | None = None
    FROM: list[TableRef] = Field(default_factory=list)
    JOIN: list[JoinClause] = Field(default_factory=list)
    WHERE: Any = None
    GROUP_BY: list[Any] = Field(default_factory=list)
    HAVING: Any = None
    ORDER_BY: list[OrderByItem] = Field(default_factory=list)
    LIMIT: int | Expression | None = None
    OFFSET: int | Expression | None = None
    UNION: list[UnionClause] = Field(default_factory=list)
    PARAMS: dict[str, Any] = Field(default_factory=dict)

    @field_validator("SELECT", mode="before")
    @classmethod
    def _coerce_select(cls, value: Any) -> Any:
        return to_select_items(value)

    @field_validator("FROM", mode="before")
    @classmethod
    def _coerce_from(cls, value: Any) -> Any:
        return to_table_refs(value)

    @field_validator("WHERE", "HAVING", mode="before")
    @classmethod
    def _coerce_condition(cls, value: Any) -> Any:
        return parse_condition(value)

    @field_validator("GROUP_BY", mode="before")
    @classmethod
    def _coerce_group_by(cls, value: Any) -> Any:
        return to_column_list(value)

    @field_validator("ORDER_BY", mode="before")
    @classmethod
    def _coerce_order_by(cls, value: Any) -> Any:
        return to_order_items(value)

    # ------------------------------------------------------------------
    # Fluent construction (each call returns a new Query)
    # ------------------------------------------------------------------

    def select(self, columns: Any, option: str | None = None) -> Query:
        """Replace the select list."""
        return self._copy(SELECT=to_select_items(columns), SELECT_OPTION=option)

    def add_select(self, columns: Any) -> Query:
        """Append to the select list."""
        return self._copy(SELECT=[*self.SELECT, *to_select_items(columns)])

    def distinct(self, value: bool = True) -> Query:
        return self._copy(DISTINCT=value)

    def from_(self, tables: Any) -> Query:
        """Replace the FROM sources (``from`` is a keyword, hence the underscore)."""
        return self._copy(FROM=to_table_refs(tables))

    def join(
        self,
        type: str,
        table: Any,
        on: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> Query:
        """Append a join of the given type.

        Args:
            type: Join keyword, e.g. ``"LEFT JOIN"``.
            table: Table name, ``{alias: source}`` mapping, or TableRef.
            on: Optional join condition.
            params: Extra named parameters referenced by ``on``.
        """
        clause = JoinClause(type=type, table=table, on=on)
        return self._copy(JOIN=[*self.JOIN, clause], PARAMS=self._merged(params))

    def inner_join(
        self, table: Any, on: Any = None, params: Mapping[str, Any] | None = None
    ) -> Query:
        return self.join("INNER JOIN", table, on, params)

    def left_join(
        self, table: Any, on: Any = None, params: Mapping[str, Any] | None = None
    ) -> Query:
        return self.join("LEFT JOIN", table, on, params)

    def right_join(
        self, table: Any, on: Any = None, params: Mapping[str, Any] | None = None
    ) -> Query:
        return self.join("RIGHT JOIN", table, on, params)

    def where(self, condition: Any, params: Mapping[str, Any] | None = None) -> Query:
        """Replace the WHERE condition."""
        return self._copy(WHERE=parse_condition(condition), PARAMS=self._merged(params))

    def and_where(self, condition: Any, params: Mapping[str, Any] | None = None) -> Query:
        """Combine ``condition`` with the existing WHERE using AND."""
        return self._copy(
            WHERE=_combine(And, self.WHERE, condition), PARAMS=self._merged(params)
        )

    def or_where(self, condition: Any, params: Mapping[str, Any] | None = None) -> Query:
        """Combine ``condition`` with the existing WHERE using OR."""
        return self._copy(
            WHERE=_combine(Or, self.WHERE, condition), PARAMS=self._merged(params)
        )

    def group_by(self, columns: Any) -> Query:
        return self._copy(GROUP_BY=to_column_list(columns))

    def having(self, condition: Any, params: Mapping[str, Any] | None = None) -> Query:
        return self._copy(HAVING=parse_condition(condition), PARAMS=self._merged(params))

    def order_by(self, columns: Any) -> Query:
        """Replace the ordering.

        Accepts ``"a DESC, b"``, ``{"a": "DESC", "b": "ASC"}``, a raw
        :class:`Expression`, or a list of any of those.
        """
        return self._copy(ORDER_BY=to_order_items(columns))

    def limit(self, limit: int | Expression | None) -> Query:
        return self._copy(LIMIT=limit)

    def offset(self, offset: int | Expression | None) -> Query:
        return self._copy(OFFSET=offset)

    def union(self, query: Query | str, all: bool = False) -> Query:
        return self._copy(UNION=[*self.UNION, UnionClause(query=query, all=all)])

    def add_params(self, params: Mapping[str, Any]) -> Query:
        """Merge named parameters; existing names are overwritten."""
        return self._copy(PARAMS=self._merged(params))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _copy(self, **update: Any) -> Query:
        return self.model_copy(update=update)

    def _merged(self, params: Mapping[str, Any] | None) -> dict[str, Any]:
        if not params:
            return dict(self.PARAMS)
        return {**self.PARAMS, **params}


def _combine(variant: type, current: Any, condition: Any) -> Any:
    parsed = parse_condition(condition)
    if current is None:
        return parsed
    if parsed is None:
        return current
    return variant(current, parsed)


# ---------------------------------------------------------------------------
# Shorthand normalisation
# ---------------------------------------------------------------------------


def _split_names(value: str) -> list[str]:
    """Split a comma-separated name list unless it contains a function call."""
    if "(" in value:
        return [value.strip()]
    return [part.strip() for part in value.split(",") if part.strip()]


def to_select_items(columns: Any) -> list[SelectItem]:
    """Normalise select-list shorthand into :class:`SelectItem` objects.

    Accepts ``None``, a comma-separated string, a mapping of alias to
    expression, a single expression or sub-query, or a list of any of those.
    """
    if columns is None:
        return []
    if isinstance(columns, SelectItem):
        return [columns]
    if isinstance(columns, str):
        return [SelectItem(expr=name) for name in _split_names(columns)]
    if isinstance(columns, Mapping):
        return [SelectItem(expr=expr, alias=alias) for alias, expr in columns.items()]
    if isinstance(columns, (Expression, Query)):
        return [SelectItem(expr=columns)]
    items: list[SelectItem] = []
    for column in columns:
        if isinstance(column, str):
            items.append(SelectItem(expr=column.strip()))
        else:
            items.extend(to_select_items(column))
    return items


def to_table_refs(tables: Any) -> list[TableRef]:
    """Normalise FROM / JOIN source shorthand into :class:`TableRef` objects."""
    if tables is None:
        return []
    if isinstance(tables, TableRef):
        return [tables]
    if isinstance(tables, str):
        return [TableRef(source=name) for name in _split_names(tables)]
    if isinstance(tables, Mapping):
        return [TableRef(source=source, alias=alias) for alias, source in tables.items()]
    if isinstance(tables, (Expression, Query)):
        return [TableRef(source=tables)]
    refs: list[TableRef] = []
    for table in tables:
        if isinstance(table, str):
            refs.append(TableRef(source=table.strip()))
        else:
            refs.extend(to_table_refs(table))
    return refs


def to_column_list(columns: Any) -> list[Any]:
    """Normalise a GROUP BY column list (strings and expressions)."""
    if columns is None:
        return []
    if isinstance(columns, str):
        return _split_names(columns)
    if isinstance(columns, Expression):
        return [columns]
    return list(columns)


def to_order_items(columns: Any) -> list[OrderByItem]:
    """Normalise ORDER BY shorthand into :class:`OrderByItem` objects."""
    if columns is None:
        return []
    if isinstance(columns, OrderByItem):
        return [columns]
    if isinstance(columns, Expression):
        return [OrderByItem(expr=columns)]
    if isinstance(columns, str):
        return [_parse_order_key(part) for part in _split_names(columns)]
    if isinstance(columns, Mapping):
        return [
            OrderByItem(expr=expr, direction=_direction(direction))
            for expr, direction in columns.items()
        ]
    items: list[OrderByItem] = []
    for column in columns:
        if isinstance(column, str):
            items.append(_parse_order_key(column))
        else:
            items.extend(to_order_items(column))
    return items


def _parse_order_key(key: str) -> OrderByItem:
    match = _ORDER_DIRECTION_RE.match(key.strip())
    if match:
        return OrderByItem(expr=match.group(1), direction=_direction(match.group(2)))
    return OrderByItem(expr=key.strip())


def _direction(value: Any) -> SortDirection:
    if isinstance(value, SortDirection):
        return value
    return SortDirection(str(value).strip().upper())


# Resolve forward references created by the recursive Query type.
UnionClause.model_rebuild()
Query.model_rebuild()

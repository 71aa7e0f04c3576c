"""Clause-level SQL builders.

Each class handles exactly one SQL clause.  Builders that may embed a nested
query receive a *shared build function* (``Callable[[Query, ParamTable], str]``)
so that every nested query (derived tables, sub-query select items, UNION
branches) is compiled into the **same** :class:`ParamTable` as the outer
statement and placeholder names never collide.

Classes
-------
SelectClauseBuilder   — ``SELECT [DISTINCT] [option] <items>``
TableRefBuilder       — a single FROM / JOIN source
FromClauseBuilder     — ``FROM <sources>``
JoinClauseBuilder     — ``<type> <source> [ON <condition>]``
GroupByClauseBuilder  — ``GROUP BY <columns>``
UnionBuilder          — ``UNION [ALL] ( <query> ) ...``
"""
from __future__ import annotations

import re
from typing import Any, Callable

from dbbroker.compile.condition_builder import ConditionBuilder
from dbbroker.compile.context import CompilationContext
from dbbroker.compile.params import ParamTable
from dbbroker.errors import BuildError
from dbbroker.schema.expressions import Expression
from dbbroker.schema.query import JoinClause, Query, SelectItem, TableRef, UnionClause

#: ``expr AS alias`` or ``expr alias`` at the end of a select item.
SELECT_ALIAS_RE = re.compile(r"^(.*?)(?i:\s+as\s+|\s+)([\w\-_\.]+)$")

#: ``table AS alias`` or ``table alias`` in a FROM / JOIN source.
TABLE_ALIAS_RE = re.compile(r"^(.*?)(?i:\s+as|)\s+([^ ]+)$")

BuildFn = Callable[[Query, ParamTable], str]


class SelectClauseBuilder:
    """Builds the ``SELECT [DISTINCT] …`` clause."""

    def __init__(self, ctx: CompilationContext, build_fn: BuildFn) -> None:
        self._ctx = ctx
        self._build_fn = build_fn

    def build(self, query: Query, params: ParamTable) -> str:
        select = "SELECT DISTINCT" if query.DISTINCT else "SELECT"
        if query.SELECT_OPTION is not None:
            select = f"{select} {query.SELECT_OPTION}"
        if not query.SELECT:
            return f"{select} *"
        items = [self._build_item(item, params) for item in query.SELECT]
        return f"{select} {', '.join(items)}"

    def _build_item(self, item: SelectItem, params: ParamTable) -> str:
        quote = self._ctx.dialect.quote_column_name
        expr = item.expr
        if isinstance(expr, Expression):
            params.merge(expr.params)
            if item.alias is None:
                return expr.text
            return f"{expr.text} AS {quote(item.alias)}"
        if isinstance(expr, Query):
            if item.alias is None:
                raise BuildError("A sub-query select item requires an alias.", clause="SELECT")
            return f"({self._build_fn(expr, params)}) AS {quote(item.alias)}"
        expr = str(expr)
        if item.alias is not None:
            if "(" not in expr:
                expr = quote(expr)
            return f"{expr} AS {quote(item.alias)}"
        if "(" in expr:
            return expr
        match = SELECT_ALIAS_RE.match(expr)
        if match:
            return f"{quote(match.group(1))} AS {quote(match.group(2))}"
        return quote(expr)


class TableRefBuilder:
    """Builds a single FROM / JOIN source with its optional alias.

    Nested queries are compiled with ``build_fn`` so they share the outer
    parameter table.
    """

    def __init__(self, ctx: CompilationContext, build_fn: BuildFn) -> None:
        self._ctx = ctx
        self._build_fn = build_fn

    def build(self, ref: TableRef, params: ParamTable, clause: str = "FROM") -> str:
        quote = self._ctx.dialect.quote_table_name
        source = ref.source
        if isinstance(source, Query):
            if ref.alias is None:
                raise BuildError("A sub-query source requires an alias.", clause=clause)
            return f"({self._build_fn(source, params)}) {quote(ref.alias)}"
        if isinstance(source, Expression):
            params.merge(source.params)
            if ref.alias is None:
                return source.text
            return f"{source.text} {quote(ref.alias)}"
        source = str(source)
        if ref.alias is not None:
            if "(" not in source:
                source = quote(source)
            return f"{source} {quote(ref.alias)}"
        if "(" in source:
            return source
        match = TABLE_ALIAS_RE.match(source)
        if match:
            return f"{quote(match.group(1))} {quote(match.group(2))}"
        return quote(source)


class FromClauseBuilder:
    """Builds the ``FROM <sources>`` clause."""

    def __init__(self, table_builder: TableRefBuilder) -> None:
        self._tables = table_builder

    def build(self, tables: list[TableRef], params: ParamTable) -> str:
        if not tables:
            return ""
        return "FROM " + ", ".join(self._tables.build(t, params) for t in tables)


class JoinClauseBuilder:
    """Builds the sequence of ``<type> <source> [ON <condition>]`` fragments.

    The ON clause is omitted when the condition compiles to nothing.
    """

    def __init__(self, table_builder: TableRefBuilder, condition_builder: ConditionBuilder) -> None:
        self._tables = table_builder
        self._cond = condition_builder

    def build(self, joins: list[JoinClause], params: ParamTable) -> str:
        parts: list[str] = []
        for join in joins:
            if not join.type:
                raise BuildError(
                    "A join clause must specify a join type and a table.", clause="JOIN"
                )
            sql = f"{join.type} {self._tables.build(join.table, params, clause='JOIN')}"
            condition = self._cond.build(join.on, params)
            if condition != "":
                sql = f"{sql} ON {condition}"
            parts.append(sql)
        return " ".join(parts)


class GroupByClauseBuilder:
    """Builds the ``GROUP BY`` clause; raw expressions are emitted verbatim."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, columns: list[Any], params: ParamTable) -> str:
        if not columns:
            return ""
        return "GROUP BY " + build_column_list(self._ctx, columns, params)


class UnionBuilder:
    """Builds the ``UNION [ALL] ( <query> )`` blocks appended to a query.

    Each united query is compiled using ``build_fn`` so it shares the outer
    parameter table.
    """

    def __init__(self, build_fn: BuildFn) -> None:
        self._build_fn = build_fn

    def build(self, unions: list[UnionClause], params: ParamTable) -> str:
        if not unions:
            return ""
        result = ""
        for union in unions:
            if isinstance(union.query, Query):
                sql = self._build_fn(union.query, params)
            else:
                sql = union.query
            keyword = "UNION ALL" if union.all else "UNION"
            result += f"{keyword} ( {sql} ) "
        return result.strip()


def build_column_list(
    ctx: CompilationContext,
    columns: str | list[Any],
    params: ParamTable | None = None,
) -> str:
    """Quote a column list and join it with commas.

    A string containing ``(`` is returned unchanged; otherwise strings are
    split on commas.  Raw expressions are emitted verbatim and their
    parameters merged into ``params`` when given.
    """
    if isinstance(columns, str):
        if "(" in columns:
            return columns
        columns = [c.strip() for c in columns.split(",") if c.strip()]
    parts: list[str] = []
    for column in columns:
        if isinstance(column, Expression):
            if params is not None:
                params.merge(column.params)
            parts.append(column.text)
        elif "(" in column:
            parts.append(column)
        else:
            parts.append(ctx.dialect.quote_column_name(column))
    return ", ".join(parts)

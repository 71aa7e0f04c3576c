"""Condition tree → SQL compiler.

``ConditionBuilder`` turns a typed condition tree (WHERE / HAVING / JOIN ON)
into a SQL fragment, appending every bound value to the
:class:`~dbbroker.compile.params.ParamTable` threaded through the call.
The table is the only state the builder mutates.

Nested queries (IN / EXISTS / comparison sub-queries) are compiled through
the ``build_subquery`` function injected by
:class:`~dbbroker.compile.builder.QueryBuilder`, which shares the same
parameter table so placeholder names stay unique for the whole statement.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any, Callable

from pydantic import BaseModel

from dbbroker.compile.context import CompilationContext
from dbbroker.compile.params import ParamTable
from dbbroker.errors import BuildError
from dbbroker.schema.conditions import (
    And,
    Between,
    Compare,
    Exists,
    Hash,
    In,
    Like,
    Not,
    Or,
    parse_condition,
)
from dbbroker.schema.expressions import Expression
from dbbroker.schema.query import Query

_LIKE_OP_RE = re.compile(r"^(AND |OR |)(((NOT |))I?LIKE)")


def is_value_list(value: Any) -> bool:
    """Whether ``value`` is a collection of values rather than a single value.

    Strings, bytes, mappings and models (including :class:`Expression`) are
    single values even though they are iterable.
    """
    if isinstance(value, (str, bytes, bytearray, Mapping, BaseModel)):
        return False
    return isinstance(value, Iterable)


def replace_chars(value: str, mapping: Mapping[str, str]) -> str:
    """Replace every key of ``mapping`` in one pass, longest key first."""
    if not mapping:
        return value
    pattern = "|".join(re.escape(k) for k in sorted(mapping, key=len, reverse=True))
    return re.sub(pattern, lambda m: mapping[m.group(0)], value)


class ConditionBuilder:
    """Compiles condition trees to SQL fragments.

    Args:
        ctx: Static compilation context (dialect + schema).
        build_subquery: Compiles a nested :class:`Query` into SQL using the
            given parameter table.  Injected by ``QueryBuilder``.
    """

    def __init__(
        self,
        ctx: CompilationContext,
        build_subquery: Callable[[Query, ParamTable], str] | None = None,
    ) -> None:
        self._ctx = ctx
        self._build_subquery_fn = build_subquery

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, condition: Any, params: ParamTable) -> str:
        """Compile ``condition`` to a SQL fragment.

        Args:
            condition: A typed condition node, raw SQL string, shorthand
                list / dict, or ``None``.
            params: Parameter table receiving bound values.

        Returns:
            The SQL fragment; empty when the condition has no effect.

        Raises:
            BuildError: If the tree is malformed.
        """
        if condition is None:
            return ""
        if isinstance(condition, Expression):
            params.merge(condition.params)
            return condition.text
        if isinstance(condition, str):
            return condition
        if isinstance(condition, (Mapping, list, tuple)):
            return self.build(parse_condition(condition), params)
        if isinstance(condition, Hash):
            return self._build_hash(condition.columns, params)
        if isinstance(condition, (And, Or)):
            return self._build_and(condition.op, condition.operands, params)
        if isinstance(condition, Not):
            return self._build_not(condition.op, condition.operands, params)
        if isinstance(condition, Between):
            return self._build_between(condition.op, condition.operands, params)
        if isinstance(condition, In):
            return self._build_in(condition.op, condition.operands, params)
        if isinstance(condition, Like):
            return self._build_like(condition.op, condition.operands, params)
        if isinstance(condition, Exists):
            return self._build_exists(condition.op, condition.operands, params)
        if isinstance(condition, Compare):
            return self._build_simple(condition.op, condition.operands, params)
        raise BuildError(f"Unsupported condition node: {type(condition).__name__}.")

    # ------------------------------------------------------------------
    # Variant compilers
    # ------------------------------------------------------------------

    def _build_hash(self, columns: Mapping[str, Any], params: ParamTable) -> str:
        parts: list[str] = []
        for column, value in columns.items():
            if isinstance(value, Query) or is_value_list(value):
                parts.append(self._build_in("IN", [column, value], params))
                continue
            column_sql = self._quote_column(column, params)
            if value is None:
                parts.append(f"{column_sql} IS NULL")
            elif isinstance(value, Expression):
                params.merge(value.params)
                parts.append(f"{column_sql}={value.text}")
            else:
                parts.append(f"{column_sql}={params.add(value)}")
        if not parts:
            return ""
        if len(parts) == 1:
            return parts[0]
        return "(" + ") AND (".join(parts) + ")"

    def _build_and(self, op: str, operands: list[Any], params: ParamTable) -> str:
        parts = [part for part in (self.build(o, params) for o in operands) if part != ""]
        if not parts:
            return ""
        return "(" + f") {op} (".join(parts) + ")"

    def _build_not(self, op: str, operands: list[Any], params: ParamTable) -> str:
        if len(operands) != 1:
            raise BuildError(f"Operator '{op}' requires exactly one operand.")
        operand = self.build(operands[0], params)
        if operand == "":
            return ""
        return f"{op} ({operand})"

    def _build_between(self, op: str, operands: list[Any], params: ParamTable) -> str:
        if len(operands) != 3 or any(o is None for o in operands):
            raise BuildError(f"Operator '{op}' requires three operands.")
        column, low, high = operands
        column_sql = self._quote_column(column, params)
        return f"{column_sql} {op} {self._bind(low, params)} AND {self._bind(high, params)}"

    def _build_in(self, op: str, operands: list[Any], params: ParamTable) -> str:
        if len(operands) != 2 or operands[0] is None or operands[1] is None:
            raise BuildError(f"Operator '{op}' requires two operands.")
        column, values = operands

        if isinstance(column, (list, tuple)) and len(column) == 0:
            # no columns to test against
            return "0=1" if op == "IN" else ""

        if isinstance(values, Query):
            return self._build_subquery_in(op, column, values, params)

        values = list(values) if is_value_list(values) else [values]

        split = self._ctx.dialect.split_in_condition(op, column, values)
        if split is not None:
            return self.build(split, params)

        if isinstance(column, (list, tuple)):
            if len(column) > 1:
                return self._build_composite_in(op, list(column), values, params)
            column = column[0]

        sql_values: list[str] = []
        for value in values:
            if isinstance(value, Mapping):
                value = value.get(column)
            if value is None:
                sql_values.append("NULL")
            elif isinstance(value, Expression):
                params.merge(value.params)
                sql_values.append(value.text)
            else:
                sql_values.append(params.add(value))

        if not sql_values:
            return "0=1" if op == "IN" else ""

        column_sql = self._quote_column(column, params)
        if len(sql_values) > 1:
            return f"{column_sql} {op} ({', '.join(sql_values)})"
        eq = "=" if op == "IN" else "<>"
        return f"{column_sql}{eq}{sql_values[0]}"

    def _build_subquery_in(self, op: str, column: Any, query: Query, params: ParamTable) -> str:
        sql = self._build_subquery(query, params)
        if isinstance(column, (list, tuple)):
            columns_sql = ", ".join(self._quote_column(c, params) for c in column)
            return f"({columns_sql}) {op} ({sql})"
        return f"{self._quote_column(column, params)} {op} ({sql})"

    def _build_composite_in(
        self, op: str, columns: list[Any], rows: list[Any], params: ParamTable
    ) -> str:
        rows_sql: list[str] = []
        for row in rows:
            row_parts: list[str] = []
            for i, column in enumerate(columns):
                if isinstance(row, Mapping):
                    value = row.get(column)
                elif isinstance(row, (list, tuple)) and i < len(row):
                    value = row[i]
                else:
                    value = None
                row_parts.append("NULL" if value is None else params.add(value))
            rows_sql.append("(" + ", ".join(row_parts) + ")")

        if not rows_sql:
            return "0=1" if op == "IN" else ""

        columns_sql = ", ".join(self._quote_column(c, params) for c in columns)
        return f"({columns_sql}) {op} ({', '.join(rows_sql)})"

    def _build_like(self, op: str, operands: list[Any], params: ParamTable) -> str:
        if len(operands) not in (2, 3) or operands[0] is None or operands[1] is None:
            raise BuildError(f"Operator '{op}' requires two operands.")
        dialect = self._ctx.dialect
        escape = operands[2] if len(operands) == 3 else None
        if escape is None:
            escape = dialect.like_escape_map

        match = _LIKE_OP_RE.match(op)
        if match is None:
            raise BuildError(f"Invalid operator '{op}'.")
        andor = " " + (match.group(1) or "AND ")
        negated = bool(match.group(3))
        like_op = dialect.like_operator(match.group(2))

        column, values = operands[0], operands[1]
        values = list(values) if is_value_list(values) else [values]
        if not values:
            return "" if negated else "0=1"

        column_sql = self._quote_column(column, params)
        escape_sql = f" ESCAPE '{dialect.like_escape_char}'" if dialect.like_escape_char else ""
        parts: list[str] = []
        for value in values:
            if isinstance(value, Expression):
                params.merge(value.params)
                placeholder = value.text
            elif not escape:
                placeholder = params.add(value)
            else:
                placeholder = params.add("%" + replace_chars(str(value), escape) + "%")
            parts.append(f"{column_sql} {like_op} {placeholder}{escape_sql}")
        return andor.join(parts)

    def _build_exists(self, op: str, operands: list[Any], params: ParamTable) -> str:
        if len(operands) != 1 or not isinstance(operands[0], Query):
            raise BuildError("Subquery for EXISTS operator must be a Query object.")
        return f"{op} ({self._build_subquery(operands[0], params)})"

    def _build_simple(self, op: str, operands: list[Any], params: ParamTable) -> str:
        if len(operands) != 2:
            raise BuildError(f"Operator '{op}' requires two operands.")
        column, value = operands
        column_sql = self._quote_column(column, params)
        if value is None:
            return f"{column_sql} {op} NULL"
        if isinstance(value, Expression):
            params.merge(value.params)
            return f"{column_sql} {op} {value.text}"
        if isinstance(value, Query):
            return f"{column_sql} {op} ({self._build_subquery(value, params)})"
        return f"{column_sql} {op} {params.add(value)}"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _quote_column(self, column: Any, params: ParamTable) -> str:
        if isinstance(column, Expression):
            params.merge(column.params)
            return column.text
        column = str(column)
        if "(" in column:
            return column
        return self._ctx.dialect.quote_column_name(column)

    @staticmethod
    def _bind(value: Any, params: ParamTable) -> str:
        if isinstance(value, Expression):
            params.merge(value.params)
            return value.text
        return params.add(value)

    def _build_subquery(self, query: Query, params: ParamTable) -> str:
        if self._build_subquery_fn is None:
            raise BuildError("No sub-query build function configured.")
        return self._build_subquery_fn(query, params)

"""Core Query → SQL compilation logic.

``QueryBuilder`` is the top-level orchestrator.  It wires together the
condition builder and the clause-level sub-builders, then drives the
compilation algorithm.  All backend-specific behaviour is delegated to the
injected :class:`~dbbroker.compile.base.SQLDialect`.

Sub-builder hierarchy
---------------------
QueryBuilder
  ├── ConditionBuilder      (condition_builder.py)
  ├── SelectClauseBuilder   (clause_builders.py)
  ├── FromClauseBuilder     (clause_builders.py)
  ├── JoinClauseBuilder     (clause_builders.py)
  ├── GroupByClauseBuilder  (clause_builders.py)
  └── UnionBuilder          (clause_builders.py)

Parameter table sharing
-----------------------
A single :class:`~dbbroker.compile.params.ParamTable` is created per public
call and threaded through every sub-builder and every nested query (derived
tables, IN / EXISTS sub-queries, select-item sub-queries, UNION branches).
This ensures generated placeholder names are unique across the whole
statement.

Besides SELECT, the builder produces the DML statements (INSERT, batch
INSERT, UPDATE, DELETE), existence checks and INSERT ... RETURNING.  When a
:class:`~dbbroker.schema.snapshot.SchemaSnapshot` is injected, inserted and
updated values are type-cast by column metadata before binding.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from dbbroker.compile.base import CompiledSQL, SQLDialect
from dbbroker.compile.clause_builders import (
    SELECT_ALIAS_RE,
    FromClauseBuilder,
    GroupByClauseBuilder,
    JoinClauseBuilder,
    SelectClauseBuilder,
    TableRefBuilder,
    UnionBuilder,
    build_column_list,
)
from dbbroker.compile.condition_builder import ConditionBuilder
from dbbroker.compile.context import CompilationContext
from dbbroker.compile.params import PARAM_PREFIX, ParamTable, TypedValue
from dbbroker.errors import BuildError
from dbbroker.schema.expressions import Expression
from dbbroker.schema.query import Query
from dbbroker.schema.snapshot import SchemaSnapshot, TableInfo

logger = logging.getLogger(__name__)


class QueryBuilder:
    """Compiles queries and DML statements to parameterized SQL.

    Args:
        dialect: Backend dialect strategy.
        schema: Optional table metadata used for value type-casting.
        param_prefix: Prefix of generated placeholder names.
    """

    def __init__(
        self,
        dialect: SQLDialect,
        schema: SchemaSnapshot | None = None,
        param_prefix: str = PARAM_PREFIX,
    ) -> None:
        self._ctx = CompilationContext(dialect=dialect, schema=schema)
        self._param_prefix = param_prefix

        self._cond = ConditionBuilder(self._ctx, self._build_query)
        tables = TableRefBuilder(self._ctx, self._build_query)
        self._select = SelectClauseBuilder(self._ctx, self._build_query)
        self._from = FromClauseBuilder(tables)
        self._join = JoinClauseBuilder(tables, self._cond)
        self._group_by = GroupByClauseBuilder(self._ctx)
        self._union = UnionBuilder(self._build_query)

    @property
    def dialect(self) -> SQLDialect:
        return self._ctx.dialect

    @property
    def schema(self) -> SchemaSnapshot | None:
        return self._ctx.schema

    # ------------------------------------------------------------------
    # Public API: SELECT
    # ------------------------------------------------------------------

    def build(self, query: Query, params: Mapping[str, Any] | None = None) -> CompiledSQL:
        """Compile ``query`` to parameterized SQL.

        Args:
            query: The query to compile; it is not modified.
            params: Parameters merged before any generated ones.

        Returns:
            :class:`~dbbroker.compile.base.CompiledSQL` with the SQL string
            and every bound parameter.

        Raises:
            BuildError: If the query or one of its conditions is malformed.
        """
        table = self._params(params)
        sql = self._build_query(query, table)
        return self._result(sql, table)

    def build_condition(
        self, condition: Any, params: Mapping[str, Any] | None = None
    ) -> CompiledSQL:
        """Compile a standalone condition tree.

        Returns:
            The fragment (possibly empty) and the resulting parameters.
        """
        table = self._params(params)
        sql = self._cond.build(condition, table)
        return CompiledSQL(sql=sql, params=table.to_dict(), dialect=self.dialect.name)

    def build_columns(self, columns: str | list[Any]) -> str:
        """Quote a column list and join it with commas."""
        return build_column_list(self._ctx, columns)

    def select_exists(self, sql: str) -> str:
        """Wrap raw SQL into the dialect's existence-check statement."""
        return self.dialect.select_exists(sql)

    def quote_sql(self, sql: str, table_prefix: str = "") -> str:
        """Replace ``{{table}}`` / ``[[column]]`` tokens with quoted names."""
        return self.dialect.quote_sql(sql, table_prefix)

    # ------------------------------------------------------------------
    # Public API: DML
    # ------------------------------------------------------------------

    def insert(
        self,
        table: str,
        columns: Mapping[str, Any] | Query,
        params: Mapping[str, Any] | None = None,
    ) -> CompiledSQL:
        """Create an INSERT statement.

        Args:
            table: Target table.
            columns: Column → value mapping, or a :class:`Query` for
                ``INSERT INTO ... SELECT``.  Values may be raw expressions
                or sub-queries; scalars are type-cast by column metadata.
            params: Parameters merged before any generated ones.

        Raises:
            BuildError: If a query is given whose select list is empty,
                contains ``*``, or cannot be mapped to column names.
        """
        table_params = self._params(params)
        sql = self._build_insert(table, columns, table_params)
        return self._result(sql, table_params)

    def insert_returning(
        self,
        table: str,
        columns: Mapping[str, Any] | Query,
        params: Mapping[str, Any] | None = None,
    ) -> CompiledSQL:
        """Create an INSERT statement that also returns the primary key.

        The key columns come from the schema snapshot; without metadata the
        plain INSERT is returned.

        Raises:
            UnsupportedOperationError: If the dialect cannot return values
                from an INSERT.
        """
        table_params = self._params(params)
        sql = self._build_insert(table, columns, table_params)
        sql = self.dialect.build_returning(sql, self._ctx.lookup_table(table), table_params)
        return self._result(sql, table_params)

    def batch_insert(
        self,
        table: str,
        columns: list[str],
        rows: Iterable[Iterable[Any]],
    ) -> CompiledSQL:
        """Create a multi-row INSERT with literal (quoted) values.

        Values are type-cast by column metadata and rendered with the
        dialect's literal rules.  No parameters are generated.  An empty
        ``rows`` yields an empty statement.
        """
        info = self._ctx.lookup_table(table)
        rows_sql: list[str] = []
        for row in rows:
            literals: list[str] = []
            for i, value in enumerate(row):
                column = info.get_column(columns[i]) if info and i < len(columns) else None
                if column is not None and not isinstance(value, (list, tuple, dict)):
                    value = column.db_typecast(value)
                literals.append(self.dialect.batch_literal(value))
            rows_sql.append("(" + ", ".join(literals) + ")")
        if not rows_sql:
            return CompiledSQL(sql="", params={}, dialect=self.dialect.name)

        sql = self.dialect.build_batch_insert(
            self.dialect.quote_table_name(table),
            [self.dialect.quote_column_name(c) for c in columns],
            rows_sql,
        )
        return self._result(sql, ParamTable(prefix=self._param_prefix))

    def update(
        self,
        table: str,
        columns: Mapping[str, Any],
        condition: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> CompiledSQL:
        """Create an UPDATE statement; ``condition`` becomes the WHERE clause."""
        table_params = self._params(params)
        info = self._ctx.lookup_table(table)
        columns = self.dialect.normalize_row(info, dict(columns))
        quote = self.dialect.quote_column_name
        lines: list[str] = []
        for name, value in columns.items():
            if isinstance(value, Expression):
                table_params.merge(value.params)
                lines.append(f"{quote(name)}={value.text}")
            else:
                lines.append(f"{quote(name)}={table_params.add(self._typecast(info, name, value))}")

        sql = f"UPDATE {self.dialect.quote_table_name(table)} SET {', '.join(lines)}"
        where = self._cond.build(condition, table_params)
        if where:
            sql = f"{sql} WHERE {where}"
        return self._result(sql, table_params)

    def delete(
        self,
        table: str,
        condition: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> CompiledSQL:
        """Create a DELETE statement; ``condition`` becomes the WHERE clause."""
        table_params = self._params(params)
        sql = f"DELETE FROM {self.dialect.quote_table_name(table)}"
        where = self._cond.build(condition, table_params)
        if where:
            sql = f"{sql} WHERE {where}"
        return self._result(sql, table_params)

    # ------------------------------------------------------------------
    # Query assembly
    # ------------------------------------------------------------------

    def _build_query(self, query: Query, params: ParamTable) -> str:
        """Compile a (possibly nested) query into the shared ``params``."""
        params.merge(query.PARAMS)

        # Clauses are built in emission order so placeholders number left to right.
        clauses = [
            self._select.build(query, params),
            self._from.build(query.FROM, params),
            self._join.build(query.JOIN, params),
            self._prefixed("WHERE", self._cond.build(query.WHERE, params)),
            self._group_by.build(query.GROUP_BY, params),
            self._prefixed("HAVING", self._cond.build(query.HAVING, params)),
        ]
        sql = " ".join(c for c in clauses if c)
        sql = self.dialect.build_order_by_limit(
            sql, query.ORDER_BY, query.LIMIT, query.OFFSET, params
        )

        union = self._union.build(query.UNION, params)
        if union:
            sql = f"({sql}) {union}"
        return sql

    def _build_insert(
        self,
        table: str,
        columns: Mapping[str, Any] | Query,
        params: ParamTable,
    ) -> str:
        info = self._ctx.lookup_table(table)
        table_sql = self.dialect.quote_table_name(table)
        quote = self.dialect.quote_column_name

        if isinstance(columns, Query):
            names, select_sql = self._prepare_insert_select(columns, params)
            return f"INSERT INTO {table_sql} ({', '.join(names)}) {select_sql}"

        columns = self.dialect.normalize_row(info, dict(columns))
        if not columns:
            return self.dialect.build_empty_insert(table_sql, info)

        names: list[str] = []
        placeholders: list[str] = []
        for name, value in columns.items():
            names.append(quote(name))
            if isinstance(value, Expression):
                params.merge(value.params)
                placeholders.append(value.text)
            elif isinstance(value, Query):
                placeholders.append(f"({self._build_query(value, params)})")
            else:
                placeholders.append(params.add(self._typecast(info, name, value)))
        return f"INSERT INTO {table_sql} ({', '.join(names)}) VALUES ({', '.join(placeholders)})"

    def _prepare_insert_select(self, query: Query, params: ParamTable) -> tuple[list[str], str]:
        """Compile the SELECT of ``INSERT INTO ... SELECT`` and derive column names."""
        if not query.SELECT or any(item.expr == "*" for item in query.SELECT):
            raise BuildError(
                "Expected select query object with enumerated (named) parameters.",
                clause="INSERT",
            )
        sql = self._build_query(query, params)
        quote = self.dialect.quote_column_name
        names: list[str] = []
        for item in query.SELECT:
            if item.alias is not None:
                names.append(quote(item.alias))
                continue
            if not isinstance(item.expr, str):
                raise BuildError(
                    "Select items of INSERT ... SELECT must be column names or aliased.",
                    clause="INSERT",
                )
            match = SELECT_ALIAS_RE.match(item.expr)
            names.append(quote(match.group(2) if match else item.expr))
        return names, sql

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _prefixed(keyword: str, fragment: str) -> str:
        return f"{keyword} {fragment}" if fragment else ""

    def _params(self, params: Mapping[str, Any] | None) -> ParamTable:
        return ParamTable(params, prefix=self._param_prefix)

    @staticmethod
    def _typecast(info: TableInfo | None, name: str, value: Any) -> Any:
        if info is None or isinstance(value, (list, tuple, dict, TypedValue)):
            return value
        column = info.get_column(name)
        return column.db_typecast(value) if column is not None else value

    def _result(self, sql: str, params: ParamTable) -> CompiledSQL:
        logger.debug("Compiled %s SQL: %s", self.dialect.name, sql)
        return CompiledSQL(sql=sql, params=params.to_dict(), dialect=self.dialect.name)


def compile_condition(
    condition: Any,
    dialect: SQLDialect,
    params: Mapping[str, Any] | None = None,
) -> CompiledSQL:
    """Compile a standalone condition tree for ``dialect``.

    Convenience wrapper around :meth:`QueryBuilder.build_condition`.

    Example::

        from dbbroker.compile import compile_condition
        from dbbroker.compile.mysql import MySQLDialect

        result = compile_condition({"status": 1, "id": [1, 2]}, MySQLDialect())
        # result.sql == "(`status`=:qp0) AND (`id` IN (:qp1, :qp2))"
    """
    return QueryBuilder(dialect).build_condition(condition, params)

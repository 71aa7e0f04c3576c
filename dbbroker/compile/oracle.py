"""Oracle dialect.

Oracle differs from the default dialect in more places than the other
backends:

* pagination wraps the user query into ``WITH`` blocks filtered on
  ``ROWNUM`` instead of using ``LIMIT`` / ``OFFSET``;
* batch inserts use ``INSERT ALL ... SELECT 1 FROM SYS.DUAL``;
* IN lists are limited to 1000 values and are split beyond that;
* ``RETURNING ... INTO`` binds output parameters filled by the driver;
* LIKE values are escaped with ``!``;
* savepoints are never released explicitly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from dbbroker.compile.base import SQLDialect
from dbbroker.compile.params import OutParam, ParamType
from dbbroker.schema.snapshot import ColumnType

if TYPE_CHECKING:
    from dbbroker.compile.params import ParamTable
    from dbbroker.schema.query import OrderByItem
    from dbbroker.schema.snapshot import TableInfo


class OracleDialect(SQLDialect):
    """Compiles queries to Oracle-flavoured SQL."""

    name: ClassVar[str] = "oracle"

    max_in_params: ClassVar[int | None] = 1000

    like_escape_char: ClassVar[str | None] = "!"
    like_escape_map: ClassVar[dict[str, str]] = {
        "%": "!%",
        "_": "!_",
        "!": "!!",
        # Oracle literals do not treat the backslash specially.
        "\\": "\\",
    }

    type_map: ClassVar[dict[str, str]] = {
        ColumnType.PK.value: "NUMBER(10) NOT NULL PRIMARY KEY",
        ColumnType.UPK.value: "NUMBER(10) UNSIGNED NOT NULL PRIMARY KEY",
        ColumnType.BIGPK.value: "NUMBER(20) NOT NULL PRIMARY KEY",
        ColumnType.UBIGPK.value: "NUMBER(20) UNSIGNED NOT NULL PRIMARY KEY",
        ColumnType.CHAR.value: "CHAR(1)",
        ColumnType.STRING.value: "VARCHAR2(255)",
        ColumnType.TEXT.value: "CLOB",
        ColumnType.SMALLINT.value: "NUMBER(5)",
        ColumnType.INTEGER.value: "NUMBER(10)",
        ColumnType.BIGINT.value: "NUMBER(20)",
        ColumnType.FLOAT.value: "NUMBER",
        ColumnType.DOUBLE.value: "NUMBER",
        ColumnType.DECIMAL.value: "NUMBER",
        ColumnType.MONEY.value: "NUMBER(19,4)",
        ColumnType.DATETIME.value: "TIMESTAMP",
        ColumnType.TIMESTAMP.value: "TIMESTAMP",
        ColumnType.TIME.value: "TIMESTAMP",
        ColumnType.DATE.value: "DATE",
        ColumnType.BINARY.value: "BLOB",
        ColumnType.BOOLEAN.value: "NUMBER(1)",
    }

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    def build_order_by_limit(
        self,
        sql: str,
        order_by: list[OrderByItem],
        limit: Any,
        offset: Any,
        params: ParamTable,
    ) -> str:
        """Keep ORDER BY inside the user query and paginate on ROWNUM."""
        order_sql = self.build_order_by(order_by, params)
        if order_sql:
            sql = f"{sql} {order_sql}"

        filters: list[str] = []
        if self.has_offset(offset):
            filters.append(f"ROWNUMID > {offset}")
        if self.has_limit(limit):
            filters.append(f"ROWNUM <= {limit}")
        if not filters:
            return sql

        return (
            f"WITH USER_SQL AS ({sql}), "
            "PAGINATION AS (SELECT USER_SQL.*, ROWNUM AS ROWNUMID FROM USER_SQL) "
            f"SELECT * FROM PAGINATION WHERE {' AND '.join(filters)}"
        )

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def select_exists(self, sql: str) -> str:
        return f"SELECT CASE WHEN EXISTS({sql}) THEN 1 ELSE 0 END FROM DUAL"

    def build_batch_insert(
        self, table_sql: str, columns_sql: list[str], rows_sql: list[str]
    ) -> str:
        target = f"INTO {table_sql} ({', '.join(columns_sql)}) VALUES"
        intos = " ".join(f"{target} {row}" for row in rows_sql)
        return f"INSERT ALL {intos} SELECT 1 FROM SYS.DUAL"

    def build_empty_insert(self, table_sql: str, table: TableInfo | None) -> str:
        """Fill the primary key (or first column) with ``DEFAULT``."""
        if table is None or not table.columns:
            return super().build_empty_insert(table_sql, table)
        names = table.primary_key or [table.columns[0].name]
        columns_sql = ", ".join(self.quote_column_name(n) for n in names)
        defaults = ", ".join("DEFAULT" for _ in names)
        return f"INSERT INTO {table_sql} ({columns_sql}) VALUES ({defaults})"

    def build_returning(self, sql: str, table: TableInfo | None, params: ParamTable) -> str:
        """Append ``RETURNING <pk> INTO <out params>``.

        One :class:`OutParam` per key column is added to ``params``; the
        connection fills its ``value`` after execution.
        """
        if table is None or not table.primary_key:
            return sql
        returning: list[str] = []
        placeholders: list[str] = []
        for name in table.primary_key:
            column = table.get_column(name)
            out = OutParam(
                type=ParamType.INT if column is not None and column.is_integer else ParamType.STR,
                size=column.size if column is not None and column.size is not None else -1,
                column=name,
            )
            placeholders.append(params.add(out))
            returning.append(self.quote_column_name(name))
        return f"{sql} RETURNING {', '.join(returning)} INTO {', '.join(placeholders)}"

    # ------------------------------------------------------------------
    # Transactions and constraints
    # ------------------------------------------------------------------

    def release_savepoint_sql(self, name: str) -> str | None:
        # Oracle releases savepoints implicitly at commit.
        return None

    def default_value_constraints_sql(self, table: str) -> str:
        raise self.unsupported(
            "default_value_constraints", "Oracle does not support default value constraints."
        )

    def check_constraints_sql(self, table: str) -> str:
        return (
            "SELECT constraint_name, search_condition FROM user_constraints "
            f"WHERE constraint_type = 'C' AND table_name = {self.quote_value(table)}"
        )

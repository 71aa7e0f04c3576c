"""MySQL dialect."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from dbbroker.compile.base import SQLDialect
from dbbroker.schema.snapshot import ColumnType

if TYPE_CHECKING:
    from dbbroker.compile.params import ParamTable
    from dbbroker.schema.snapshot import TableInfo

#: Largest unsigned BIGINT; MySQL has no OFFSET without LIMIT.
_MAX_LIMIT = "18446744073709551615"


class MySQLDialect(SQLDialect):
    """Compiles queries to MySQL-flavoured SQL.

    Identifiers are quoted with backticks (`` ` ``) rather than double-quotes.
    String literals escape backslashes as well as quotes.

    Note: MySQL does not support ``ILIKE``; it is mapped to ``LIKE``.
    MySQL's ``LIKE`` is case-insensitive for non-binary TEXT/VARCHAR columns
    by default.
    """

    name: ClassVar[str] = "mysql"
    quote_char: ClassVar[str] = "`"
    backslash_escapes: ClassVar[bool] = True

    type_map: ClassVar[dict[str, str]] = {
        ColumnType.PK.value: "int(11) NOT NULL AUTO_INCREMENT PRIMARY KEY",
        ColumnType.UPK.value: "int(10) UNSIGNED NOT NULL AUTO_INCREMENT PRIMARY KEY",
        ColumnType.BIGPK.value: "bigint(20) NOT NULL AUTO_INCREMENT PRIMARY KEY",
        ColumnType.UBIGPK.value: "bigint(20) UNSIGNED NOT NULL AUTO_INCREMENT PRIMARY KEY",
        ColumnType.CHAR.value: "char(1)",
        ColumnType.STRING.value: "varchar(255)",
        ColumnType.TEXT.value: "text",
        ColumnType.SMALLINT.value: "smallint(6)",
        ColumnType.INTEGER.value: "int(11)",
        ColumnType.BIGINT.value: "bigint(20)",
        ColumnType.FLOAT.value: "float",
        ColumnType.DOUBLE.value: "double",
        ColumnType.DECIMAL.value: "decimal(10,0)",
        ColumnType.MONEY.value: "decimal(19,4)",
        ColumnType.DATETIME.value: "datetime",
        ColumnType.TIMESTAMP.value: "timestamp",
        ColumnType.TIME.value: "time",
        ColumnType.DATE.value: "date",
        ColumnType.BINARY.value: "blob",
        ColumnType.BOOLEAN.value: "tinyint(1)",
    }

    def quote_value(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        escaped = value.replace("\\", "\\\\").replace("'", "''")
        return f"'{escaped}'"

    def build_limit(self, limit: Any, offset: Any) -> str:
        if self.has_limit(limit):
            sql = f"LIMIT {limit}"
            if self.has_offset(offset):
                sql += f" OFFSET {offset}"
            return sql
        if self.has_offset(offset):
            return f"LIMIT {_MAX_LIMIT} OFFSET {offset}"
        return ""

    def build_returning(self, sql: str, table: TableInfo | None, params: ParamTable) -> str:
        raise self.unsupported(
            "returning",
            "INSERT ... RETURNING is not supported; read the last insert id instead.",
        )

    def check_constraints_sql(self, table: str) -> str:
        raise self.unsupported("check_constraints", "MySQL does not support check constraints.")

    def default_value_constraints_sql(self, table: str) -> str:
        raise self.unsupported(
            "default_value_constraints", "MySQL does not support default value constraints."
        )

"""PostgreSQL dialect."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from dbbroker.compile.base import SQLDialect
from dbbroker.compile.params import ParamType, TypedValue
from dbbroker.schema.snapshot import ColumnType

if TYPE_CHECKING:
    from dbbroker.schema.snapshot import TableInfo


class PostgresDialect(SQLDialect):
    """Compiles queries to PostgreSQL-flavoured SQL.

    ``ILIKE`` is supported natively.  Binary column values are bound as
    LOBs, and batch inserts render booleans as ``TRUE`` / ``FALSE``.

    An isolation level set before ``BEGIN`` only affects the next
    statement, so the transaction manager does not issue it there.
    """

    name: ClassVar[str] = "postgres"

    supports_ilike: ClassVar[bool] = True
    sets_isolation_before_begin: ClassVar[bool] = False

    batch_true: ClassVar[str] = "TRUE"
    batch_false: ClassVar[str] = "FALSE"

    type_map: ClassVar[dict[str, str]] = {
        ColumnType.PK.value: "serial NOT NULL PRIMARY KEY",
        ColumnType.UPK.value: "serial NOT NULL PRIMARY KEY",
        ColumnType.BIGPK.value: "bigserial NOT NULL PRIMARY KEY",
        ColumnType.UBIGPK.value: "bigserial NOT NULL PRIMARY KEY",
        ColumnType.CHAR.value: "char(1)",
        ColumnType.STRING.value: "varchar(255)",
        ColumnType.TEXT.value: "text",
        ColumnType.SMALLINT.value: "smallint",
        ColumnType.INTEGER.value: "integer",
        ColumnType.BIGINT.value: "bigint",
        ColumnType.FLOAT.value: "double precision",
        ColumnType.DOUBLE.value: "double precision",
        ColumnType.DECIMAL.value: "numeric(10,0)",
        ColumnType.MONEY.value: "numeric(19,4)",
        ColumnType.DATETIME.value: "timestamp(0)",
        ColumnType.TIMESTAMP.value: "timestamp(0)",
        ColumnType.TIME.value: "time(0)",
        ColumnType.DATE.value: "date",
        ColumnType.BINARY.value: "bytea",
        ColumnType.BOOLEAN.value: "boolean",
    }

    def normalize_row(self, table: TableInfo | None, columns: dict[str, Any]) -> dict[str, Any]:
        """Bind string / bytes values of binary columns explicitly as LOBs."""
        if table is None:
            return columns
        normalized = dict(columns)
        for name, value in columns.items():
            column = table.get_column(name)
            if (
                column is not None
                and column.type == ColumnType.BINARY
                and isinstance(value, (str, bytes, bytearray))
            ):
                normalized[name] = TypedValue(value, ParamType.LOB)
        return normalized

"""Dialect abstractions: CompiledSQL and the SQLDialect strategy.

``SQLDialect`` is the default (ANSI) implementation of every backend-specific
step the builders delegate: identifier quoting, abstract type mapping, LIKE
escaping, IN-list splitting, ORDER BY / LIMIT rendering, batch-insert and
RETURNING syntax, and the transaction statements used by the
:class:`~dbbroker.transaction.TransactionManager`.

Backends override only the steps where they differ
(``MySQLDialect``, ``PostgresDialect``, ``OracleDialect``).  The dialect is
injected into :class:`~dbbroker.compile.builder.QueryBuilder`; the builders
themselves are never subclassed per backend.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from dbbroker.errors import UnsupportedOperationError
from dbbroker.schema.conditions import And, In, Or
from dbbroker.schema.expressions import Expression, SortDirection
from dbbroker.schema.snapshot import ColumnType

if TYPE_CHECKING:
    from dbbroker.compile.params import ParamTable
    from dbbroker.schema.query import OrderByItem
    from dbbroker.schema.snapshot import TableInfo

_QUOTE_SQL_RE = re.compile(r"(\{\{(%?[\w\-\. ]+%?)\}\}|\[\[([\w\-\. ]+)\]\])")
_SIZED_TYPE_RE = re.compile(r"^(\w+)\((.+?)\)(.*)$")
_TYPE_WITH_SUFFIX_RE = re.compile(r"^(\w+)\s+")


@dataclass
class CompiledSQL:
    """The output of a successful compilation.

    Attributes:
        sql: The compiled SQL string with named placeholders (``:qp0``...).
        params: Values for every placeholder, including caller-supplied
            parameters and those carried by raw expressions.
        dialect: The target dialect name.
    """

    sql: str
    params: dict[str, Any]
    dialect: str

    def __iter__(self):
        # Allows ``sql, params = builder.build(query)``.
        yield self.sql
        yield self.params


class SQLDialect:
    """Default ANSI dialect and base class for backend dialects.

    Class attributes describe capabilities; methods render the
    backend-specific fragments.
    """

    #: Canonical dialect name.
    name: ClassVar[str] = "ansi"

    #: Identifier quote character (opening and closing).
    quote_char: ClassVar[str] = '"'

    #: Abstract column type → physical type.
    type_map: ClassVar[dict[str, str]] = {
        ColumnType.PK.value: "INTEGER NOT NULL PRIMARY KEY",
        ColumnType.UPK.value: "INTEGER NOT NULL PRIMARY KEY",
        ColumnType.BIGPK.value: "BIGINT NOT NULL PRIMARY KEY",
        ColumnType.UBIGPK.value: "BIGINT NOT NULL PRIMARY KEY",
        ColumnType.CHAR.value: "CHAR(1)",
        ColumnType.STRING.value: "VARCHAR(255)",
        ColumnType.TEXT.value: "TEXT",
        ColumnType.SMALLINT.value: "SMALLINT",
        ColumnType.INTEGER.value: "INTEGER",
        ColumnType.BIGINT.value: "BIGINT",
        ColumnType.FLOAT.value: "FLOAT",
        ColumnType.DOUBLE.value: "DOUBLE PRECISION",
        ColumnType.DECIMAL.value: "DECIMAL(10,0)",
        ColumnType.MONEY.value: "DECIMAL(19,4)",
        ColumnType.DATETIME.value: "TIMESTAMP",
        ColumnType.TIMESTAMP.value: "TIMESTAMP",
        ColumnType.TIME.value: "TIME",
        ColumnType.DATE.value: "DATE",
        ColumnType.BINARY.value: "BLOB",
        ColumnType.BOOLEAN.value: "BOOLEAN",
    }

    #: Characters escaped in LIKE values, and their replacements.
    like_escape_map: ClassVar[dict[str, str]] = {
        "%": "\\%",
        "_": "\\_",
        "\\": "\\\\",
    }

    #: Character declared with ``ESCAPE '<char>'``; None when implicit.
    like_escape_char: ClassVar[str | None] = None

    #: Whether ``ILIKE`` is understood natively.
    supports_ilike: ClassVar[bool] = False

    #: Maximum number of values in a single IN list; None for unlimited.
    max_in_params: ClassVar[int | None] = None

    #: Whether SAVEPOINT statements are available for nested transactions.
    supports_savepoint: ClassVar[bool] = True

    #: Whether an isolation level set before BEGIN applies to the transaction.
    sets_isolation_before_begin: ClassVar[bool] = True

    #: Whether a backslash escapes the next character inside string literals.
    backslash_escapes: ClassVar[bool] = False

    #: Literals used for booleans in batch inserts.
    batch_true: ClassVar[str] = "1"
    batch_false: ClassVar[str] = "0"

    # ------------------------------------------------------------------
    # Identifier and value quoting
    # ------------------------------------------------------------------

    def quote_simple_table_name(self, name: str) -> str:
        """Quote a table name without schema prefix; already-quoted names pass."""
        return name if self.quote_char in name else f"{self.quote_char}{name}{self.quote_char}"

    def quote_simple_column_name(self, name: str) -> str:
        """Quote a column name without prefix; ``*`` is never quoted."""
        if self.quote_char in name or name == "*":
            return name
        return f"{self.quote_char}{name}{self.quote_char}"

    def quote_table_name(self, name: str) -> str:
        """Quote a possibly schema-qualified table name.

        Names containing ``(`` or ``{{`` are treated as expressions and
        returned unchanged.
        """
        if "(" in name or "{{" in name:
            return name
        if "." not in name:
            return self.quote_simple_table_name(name)
        return ".".join(self.quote_simple_table_name(part) for part in name.split("."))

    def quote_column_name(self, name: str) -> str:
        """Quote a possibly table-qualified column name.

        Names containing ``(``, ``[[`` or ``{{`` are returned unchanged.
        """
        if "(" in name or "[[" in name:
            return name
        prefix = ""
        if "." in name:
            table, name = name.rsplit(".", 1)
            prefix = self.quote_table_name(table) + "."
        if "{{" in name:
            return name
        return prefix + self.quote_simple_column_name(name)

    def quote_value(self, value: Any) -> Any:
        """Render a string as a SQL literal; other values pass through."""
        if not isinstance(value, str):
            return value
        return "'" + value.replace("'", "''") + "'"

    def quote_sql(self, sql: str, table_prefix: str = "") -> str:
        """Replace ``{{table}}`` and ``[[column]]`` tokens with quoted names.

        A ``%`` inside a table token is replaced by ``table_prefix``, so
        ``{{%user}}`` becomes ``"tbl_user"`` with prefix ``tbl_``.
        """

        def _replace(match: re.Match[str]) -> str:
            if match.group(3) is not None:
                return self.quote_column_name(match.group(3))
            return self.quote_table_name(match.group(2)).replace("%", table_prefix)

        return _QUOTE_SQL_RE.sub(_replace, sql)

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def get_column_type(self, type: ColumnType | str) -> str:
        """Convert an abstract column type into a physical type.

        ``string(64)`` overrides the size of the mapped type and
        ``integer NOT NULL`` keeps the suffix.  Unknown types are returned
        unchanged.
        """
        key = type.value if isinstance(type, ColumnType) else str(type)
        if key in self.type_map:
            return self.type_map[key]
        match = _SIZED_TYPE_RE.match(key)
        if match and match.group(1) in self.type_map:
            mapped = self.type_map[match.group(1)]
            if "(" in mapped:
                mapped = re.sub(r"\(.+\)", f"({match.group(2)})", mapped, count=1)
            else:
                mapped = f"{mapped}({match.group(2)})"
            return mapped + match.group(3)
        match = _TYPE_WITH_SUFFIX_RE.match(key)
        if match and match.group(1) in self.type_map:
            return self.type_map[match.group(1)] + key[len(match.group(1)):]
        return key

    # ------------------------------------------------------------------
    # Condition hooks
    # ------------------------------------------------------------------

    def like_operator(self, op: str) -> str:
        """Return the LIKE keyword to emit; ILIKE becomes LIKE when unsupported."""
        if not self.supports_ilike:
            return op.replace("ILIKE", "LIKE")
        return op

    def split_in_condition(self, op: str, column: Any, values: list[Any]) -> And | Or | None:
        """Split an over-long IN list into chunks of :attr:`max_in_params`.

        Returns ``None`` when no split is needed; otherwise an ``Or`` of
        ``IN`` chunks (or an ``And`` of ``NOT IN`` chunks) that the
        condition builder compiles with the same parameter table.
        """
        if self.max_in_params is None or len(values) <= self.max_in_params:
            return None
        step = self.max_in_params
        chunks = [In(column, values[i:i + step], op=op) for i in range(0, len(values), step)]
        return Or(*chunks) if op == "IN" else And(*chunks)

    # ------------------------------------------------------------------
    # ORDER BY / LIMIT / OFFSET
    # ------------------------------------------------------------------

    @staticmethod
    def has_limit(limit: Any) -> bool:
        """A limit is effective when it is an expression or a non-negative int."""
        if isinstance(limit, Expression):
            return True
        return isinstance(limit, int) and not isinstance(limit, bool) and limit >= 0

    @staticmethod
    def has_offset(offset: Any) -> bool:
        """An offset is effective when it is an expression or a positive int."""
        if isinstance(offset, Expression):
            return True
        return isinstance(offset, int) and not isinstance(offset, bool) and offset > 0

    def build_order_by(self, order_by: list[OrderByItem], params: ParamTable) -> str:
        if not order_by:
            return ""
        parts: list[str] = []
        for item in order_by:
            if isinstance(item.expr, Expression):
                params.merge(item.expr.params)
                parts.append(item.expr.text)
            else:
                suffix = " DESC" if item.direction == SortDirection.DESC else ""
                parts.append(self.quote_column_name(item.expr) + suffix)
        return "ORDER BY " + ", ".join(parts)

    def build_limit(self, limit: Any, offset: Any) -> str:
        sql = ""
        if self.has_limit(limit):
            sql = f"LIMIT {limit}"
        if self.has_offset(offset):
            sql += f" OFFSET {offset}"
        return sql.lstrip()

    def build_order_by_limit(
        self,
        sql: str,
        order_by: list[OrderByItem],
        limit: Any,
        offset: Any,
        params: ParamTable,
    ) -> str:
        """Append ORDER BY and LIMIT / OFFSET to ``sql``."""
        order_sql = self.build_order_by(order_by, params)
        if order_sql:
            sql = f"{sql} {order_sql}"
        limit_sql = self.build_limit(limit, offset)
        if limit_sql:
            sql = f"{sql} {limit_sql}"
        return sql

    # ------------------------------------------------------------------
    # Statement hooks
    # ------------------------------------------------------------------

    def select_exists(self, sql: str) -> str:
        """Wrap ``sql`` into a statement returning whether it has rows."""
        return f"SELECT EXISTS({sql})"

    def normalize_row(self, table: TableInfo | None, columns: dict[str, Any]) -> dict[str, Any]:
        """Adjust insert/update values before binding (no-op by default)."""
        return columns

    def batch_literal(self, value: Any) -> str:
        """Render a type-cast value as a literal for a batch insert."""
        if isinstance(value, Expression):
            return value.text
        if isinstance(value, str):
            return self.quote_value(value)
        if value is True:
            return self.batch_true
        if value is False:
            return self.batch_false
        if value is None:
            return "NULL"
        if isinstance(value, float):
            return repr(value).replace(",", ".")
        return str(value)

    def build_batch_insert(
        self, table_sql: str, columns_sql: list[str], rows_sql: list[str]
    ) -> str:
        return (
            f"INSERT INTO {table_sql} ({', '.join(columns_sql)}) "
            f"VALUES {', '.join(rows_sql)}"
        )

    def build_empty_insert(self, table_sql: str, table: TableInfo | None) -> str:
        """Render an INSERT with no explicit column values."""
        return f"INSERT INTO {table_sql} DEFAULT VALUES"

    def build_returning(self, sql: str, table: TableInfo | None, params: ParamTable) -> str:
        """Append a clause returning the primary key of the inserted row."""
        if table is None or not table.primary_key:
            return sql
        columns = ", ".join(self.quote_column_name(name) for name in table.primary_key)
        return f"{sql} RETURNING {columns}"

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_savepoint_sql(self, name: str) -> str:
        return f"SAVEPOINT {name}"

    def release_savepoint_sql(self, name: str) -> str | None:
        """Return the release statement, or None when savepoints are implicit."""
        return f"RELEASE SAVEPOINT {name}"

    def rollback_savepoint_sql(self, name: str) -> str:
        return f"ROLLBACK TO SAVEPOINT {name}"

    def isolation_level_sql(self, level: str) -> str:
        return f"SET TRANSACTION ISOLATION LEVEL {level}"

    # ------------------------------------------------------------------
    # Constraint metadata
    # ------------------------------------------------------------------

    def check_constraints_sql(self, table: str) -> str:
        """Return the catalogue query listing check constraints of ``table``."""
        return (
            "SELECT tc.constraint_name, cc.check_clause "
            "FROM information_schema.table_constraints tc "
            "JOIN information_schema.check_constraints cc "
            "ON tc.constraint_name = cc.constraint_name "
            f"WHERE tc.constraint_type = 'CHECK' AND tc.table_name = {self.quote_value(table)}"
        )

    def default_value_constraints_sql(self, table: str) -> str:
        """Return the catalogue query listing column defaults of ``table``."""
        return (
            "SELECT column_name, column_default "
            "FROM information_schema.columns "
            f"WHERE table_name = {self.quote_value(table)} AND column_default IS NOT NULL"
        )

    def unsupported(self, feature: str, message: str) -> UnsupportedOperationError:
        """Build the error raised for a capability this dialect lacks."""
        return UnsupportedOperationError(f"{self.name}: {message}", feature=feature)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

"""Pydantic models for table and column metadata.

The SchemaSnapshot is the metadata lookup service used by the query builder
for value type-casting before binding.  It is produced by the caller (by hand,
from JSON, or by reflecting a live engine with
:func:`~dbbroker.schema.converters.schema_from_sqlalchemy`) and injected into
:class:`~dbbroker.compile.builder.QueryBuilder`.  Compilation never depends on
it: unknown tables and columns simply skip type-casting.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dbbroker.schema.expressions import Expression


class ColumnType(str, Enum):
    """Abstract, dialect-neutral column types."""

    PK = "pk"
    UPK = "upk"
    BIGPK = "bigpk"
    UBIGPK = "ubigpk"
    CHAR = "char"
    STRING = "string"
    TEXT = "text"
    SMALLINT = "smallint"
    INTEGER = "integer"
    BIGINT = "bigint"
    FLOAT = "float"
    DOUBLE = "double"
    DECIMAL = "decimal"
    MONEY = "money"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    TIME = "time"
    DATE = "date"
    BINARY = "binary"
    BOOLEAN = "boolean"


_STRING_TYPES = frozenset({ColumnType.CHAR, ColumnType.STRING, ColumnType.TEXT})
_INTEGER_TYPES = frozenset(
    {
        ColumnType.PK,
        ColumnType.UPK,
        ColumnType.BIGPK,
        ColumnType.UBIGPK,
        ColumnType.SMALLINT,
        ColumnType.INTEGER,
        ColumnType.BIGINT,
    }
)
_FLOAT_TYPES = frozenset(
    {ColumnType.FLOAT, ColumnType.DOUBLE, ColumnType.DECIMAL, ColumnType.MONEY}
)


class ColumnInfo(BaseModel):
    """Metadata for a single column.

    Attributes:
        name: Column name.
        type: Abstract column type.
        db_type: Physical type string as reported by the backend.
        nullable: Whether the column can be NULL.
        primary_key: Whether the column is part of the primary key.
        auto_increment: Whether the column is filled by the backend.
        size: Character length or display size.
        precision: Total number of digits for numeric types.
        scale: Digits right of the decimal separator.
        default: Default value; may be an :class:`Expression`
            (e.g. ``CURRENT_TIMESTAMP``).
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    type: ColumnType = ColumnType.STRING
    db_type: str | None = None
    nullable: bool = True
    primary_key: bool = False
    auto_increment: bool = False
    size: int | None = None
    precision: int | None = None
    scale: int | None = None
    default: Any = None

    @property
    def is_integer(self) -> bool:
        """Whether values of this column are bound as integers."""
        return self.type in _INTEGER_TYPES

    def db_typecast(self, value: Any) -> Any:
        """Convert ``value`` into the representation bound for this column.

        ``None``, raw expressions and non-scalar values pass through.  An
        empty string becomes ``None`` for every non-string column.  Floats
        are rendered with a ``.`` decimal separator regardless of locale.

        Args:
            value: The caller-supplied value.

        Returns:
            The value to bind.
        """
        if value is None or isinstance(value, (Expression, BaseModel, list, tuple, dict)):
            return value
        if value == "" and self.type not in _STRING_TYPES and self.type != ColumnType.BINARY:
            return None
        if self.type in _STRING_TYPES:
            if isinstance(value, (bytes, bytearray)):
                return value
            if isinstance(value, float):
                return _float_to_str(value)
            return str(value)
        if self.type in _INTEGER_TYPES:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, (int, str)):
                try:
                    return int(value)
                except ValueError:
                    return value
            return value
        if self.type in _FLOAT_TYPES:
            if isinstance(value, float):
                return _float_to_str(value)
            if isinstance(value, str):
                return value.replace(",", ".")
            return value
        if self.type == ColumnType.BOOLEAN:
            if isinstance(value, str):
                return value.strip().lower() not in ("", "0", "false", "f", "no", "n")
            return bool(value)
        return value


def _float_to_str(value: float) -> str:
    """Render a float with ``.`` as decimal separator in every locale."""
    return repr(value).replace(",", ".")


class TableInfo(BaseModel):
    """Metadata for a single table.

    Attributes:
        name: Table name (unquoted, optionally schema-qualified).
        columns: Ordered list of column metadata.
        sequence_name: Sequence feeding the primary key, when the backend
            uses one (Oracle).
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    columns: list[ColumnInfo] = Field(default_factory=list)
    sequence_name: str | None = None

    @property
    def column_names(self) -> list[str]:
        """Returns all column names for this table."""
        return [c.name for c in self.columns]

    @property
    def primary_key(self) -> list[str]:
        """Returns the primary-key column names in declaration order."""
        return [c.name for c in self.columns if c.primary_key]

    def get_column(self, name: str) -> ColumnInfo | None:
        """Returns the ColumnInfo for ``name``, or ``None``."""
        for col in self.columns:
            if col.name == name:
                return col
        return None


class SchemaSnapshot(BaseModel):
    """The set of table metadata known to the query builder.

    Attributes:
        tables: All known tables.
    """

    model_config = ConfigDict(extra="forbid")

    tables: list[TableInfo] = Field(default_factory=list)

    def lookup_table(self, name: str) -> TableInfo | None:
        """Returns the TableInfo for ``name``, or ``None``.

        Identifier quotes (backticks, double quotes) around the name or its
        schema prefix are ignored.
        """
        bare = name.replace("`", "").replace('"', "")
        for table in self.tables:
            if table.name == bare:
                return table
        if "." in bare:
            short = bare.rsplit(".", 1)[1]
            for table in self.tables:
                if table.name == short:
                    return table
        return None

    def get_column(self, table_name: str, column_name: str) -> ColumnInfo | None:
        """Returns the ColumnInfo for a table.column pair, or ``None``."""
        table = self.lookup_table(table_name)
        if table is None:
            return None
        return table.get_column(column_name)

    @property
    def table_names(self) -> list[str]:
        """Returns all table names in the snapshot."""
        return [t.name for t in self.tables]

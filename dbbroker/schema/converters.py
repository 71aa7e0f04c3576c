"""Utilities for building a SchemaSnapshot from external sources.

SQLAlchemy converter
--------------------
:func:`schema_from_sqlalchemy` reflects a live database engine and returns a
:class:`~dbbroker.schema.snapshot.SchemaSnapshot` that the query builder uses
for value type-casting before binding.

Install the optional dependency before using this module::

    pip install "dbbroker[sqlalchemy]"

Example::

    from sqlalchemy import create_engine
    from dbbroker.schema.converters import schema_from_sqlalchemy

    engine = create_engine("sqlite:///mydb.db")
    snapshot = schema_from_sqlalchemy(engine)
"""

from __future__ import annotations

from contextlib import AbstractContextManager, nullcontext
from typing import TYPE_CHECKING, Any

from dbbroker.schema.expressions import Expression
from dbbroker.schema.snapshot import ColumnInfo, ColumnType, SchemaSnapshot, TableInfo

if TYPE_CHECKING:
    from sqlalchemy import Column, Connection, Engine, MetaData, Table


def schema_from_sqlalchemy(
    engine: Engine | Connection,
    *,
    include_tables: list[str] | None = None,
    schema: str | None = None,
) -> SchemaSnapshot:
    """Build a :class:`SchemaSnapshot` by reflecting a SQLAlchemy engine.

    All tables visible to the engine (or a subset via *include_tables*) are
    reflected using SQLAlchemy's :class:`~sqlalchemy.schema.MetaData`.  For
    each column the converter records the abstract :class:`ColumnType`, the
    physical type string, nullability, primary-key membership, whether the
    backend fills the value (auto-increment), size / precision / scale and
    the server default.  A ``CURRENT_TIMESTAMP`` default is kept as an
    :class:`Expression` so it is never bound as a string.

    Args:
        engine: A :class:`sqlalchemy.engine.Engine`, or an open
            :class:`~sqlalchemy.engine.Connection` to reflect through.
        include_tables: Optional allowlist of table names to reflect.
            When ``None`` all tables in the schema are reflected.
        schema: Optional database schema name (e.g. ``"public"`` for
            PostgreSQL).  Passed directly to
            :meth:`sqlalchemy.schema.MetaData.reflect`.

    Returns:
        A fully populated :class:`SchemaSnapshot`.

    Raises:
        ImportError: If ``sqlalchemy`` is not installed.
    """
    try:
        from sqlalchemy import MetaData as _MetaData
    except ImportError as exc:
        raise ImportError(
            "SQLAlchemy is required for schema_from_sqlalchemy(). "
            'Install it with: pip install "dbbroker[sqlalchemy]"'
        ) from exc

    metadata = _MetaData()
    with _connect(engine) as conn:
        metadata.reflect(bind=conn, only=include_tables, schema=schema)

    return metadata_to_snapshot(metadata)


def table_from_sqlalchemy(
    engine: Engine | Connection,
    name: str,
    schema: str | None = None,
) -> TableInfo | None:
    """Reflect a single table, returning ``None`` when it does not exist."""
    from sqlalchemy import inspect

    with _connect(engine) as conn:
        if not inspect(conn).has_table(name, schema=schema):
            return None
    snapshot = schema_from_sqlalchemy(engine, include_tables=[name], schema=schema)
    return snapshot.lookup_table(name)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _connect(bind: Engine | Connection) -> AbstractContextManager[Connection]:
    """Borrow a connection from an engine, or reuse an already open one."""
    from sqlalchemy.engine import Connection as _Connection

    if isinstance(bind, _Connection):
        return nullcontext(bind)
    return bind.connect()


def metadata_to_snapshot(metadata: MetaData) -> SchemaSnapshot:
    """Convert a reflected :class:`~sqlalchemy.schema.MetaData` into a
    :class:`SchemaSnapshot`.

    Separated from :func:`schema_from_sqlalchemy` so it can be reused by
    callers that already hold a reflected (or declared) ``MetaData`` object.
    """
    return SchemaSnapshot(tables=[_table_info(table) for table in metadata.sorted_tables])


def _table_info(table: Table) -> TableInfo:
    autoincrement_column = table.autoincrement_column
    sequence_name = None
    columns: list[ColumnInfo] = []
    for col in table.columns:
        abstract_type = abstract_column_type(col.type)
        seq = getattr(col.default, "name", None) if col.default is not None else None
        if seq and getattr(col.default, "is_sequence", False):
            sequence_name = seq
        columns.append(
            ColumnInfo(
                name=col.name,
                type=abstract_type,
                db_type=_db_type(col),
                # col.nullable is True/False for reflected columns; treat
                # an unset value (None) as nullable.
                nullable=col.nullable is not False,
                primary_key=bool(col.primary_key),
                auto_increment=col is autoincrement_column,
                size=getattr(col.type, "length", None),
                precision=getattr(col.type, "precision", None),
                scale=getattr(col.type, "scale", None),
                default=_server_default(col, abstract_type),
            )
        )
    return TableInfo(name=table.name, columns=columns, sequence_name=sequence_name)


def abstract_column_type(sa_type: Any) -> ColumnType:
    """Map a SQLAlchemy type instance to the abstract :class:`ColumnType`.

    Subclasses are checked before their bases (``BigInteger`` before
    ``Integer``, ``Text`` before ``String``...).  Unknown types map to
    ``STRING``.
    """
    from sqlalchemy import types

    ordered: list[tuple[type, ColumnType]] = [
        (types.Boolean, ColumnType.BOOLEAN),
        (types.BigInteger, ColumnType.BIGINT),
        (types.SmallInteger, ColumnType.SMALLINT),
        (types.Integer, ColumnType.INTEGER),
        (types.Float, ColumnType.DOUBLE),
        (types.Numeric, ColumnType.DECIMAL),
        (types.TIMESTAMP, ColumnType.TIMESTAMP),
        (types.DateTime, ColumnType.DATETIME),
        (types.Date, ColumnType.DATE),
        (types.Time, ColumnType.TIME),
        (types.LargeBinary, ColumnType.BINARY),
        (types.Text, ColumnType.TEXT),
        (types.CHAR, ColumnType.CHAR),
        (types.String, ColumnType.STRING),
    ]
    for sa_cls, column_type in ordered:
        if isinstance(sa_type, sa_cls):
            if column_type == ColumnType.CHAR and getattr(sa_type, "length", 1) not in (None, 1):
                return ColumnType.STRING
            return column_type
    name = type(sa_type).__name__.upper()
    if "BINARY" in name or "BLOB" in name or "BYTEA" in name:
        return ColumnType.BINARY
    return ColumnType.STRING


def _db_type(col: Column) -> str | None:
    from sqlalchemy.exc import CompileError

    try:
        return str(col.type)
    except CompileError:
        # Dialect-specific types cannot render with the default compiler.
        return type(col.type).__name__


def _server_default(col: Column, column_type: ColumnType) -> Any:
    """Translate a reflected server default into a Python value."""
    default = col.server_default
    if default is None or col.primary_key:
        return None
    text = str(getattr(default, "arg", default)).strip()
    if text.upper() in ("CURRENT_TIMESTAMP", "CURRENT_TIMESTAMP()", "NOW()"):
        return Expression("CURRENT_TIMESTAMP")
    if len(text) >= 2 and text[0] == text[-1] == "'":
        return text[1:-1].replace("''", "'")
    if text.upper() == "NULL":
        return None
    if column_type in (ColumnType.SMALLINT, ColumnType.INTEGER, ColumnType.BIGINT):
        try:
            return int(text)
        except ValueError:
            return text
    return text

"""Unit tests for dbbroker.schema.converters (SQLAlchemy reflection)."""

from __future__ import annotations

import pytest
from sqlalchemy import (
    BigInteger,
    Boolean,
    CHAR,
    Column,
    Date,
    Float,
    Integer,
    LargeBinary,
    MetaData,
    Numeric,
    SmallInteger,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.types import TIMESTAMP, DateTime, Time

from dbbroker.schema.converters import (
    abstract_column_type,
    metadata_to_snapshot,
    schema_from_sqlalchemy,
    table_from_sqlalchemy,
)
from dbbroker.schema.expressions import Expression
from dbbroker.schema.snapshot import ColumnType, SchemaSnapshot
from tests.fixtures import load_ddl


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Engine:
    """In-memory SQLite engine with the sample tables created."""
    engine = create_engine("sqlite:///:memory:")
    with engine.begin() as conn:
        for statement in load_ddl().split(";"):
            if statement.strip():
                conn.exec_driver_sql(statement)
    return engine


# ---------------------------------------------------------------------------
# schema_from_sqlalchemy
# ---------------------------------------------------------------------------


def test_reflects_all_tables(engine):
    snapshot = schema_from_sqlalchemy(engine)
    assert isinstance(snapshot, SchemaSnapshot)
    assert set(snapshot.table_names) == {"customer", "orders", "order_item", "audit_log"}


def test_include_tables_allowlist(engine):
    snapshot = schema_from_sqlalchemy(engine, include_tables=["orders"])
    # Referenced tables are reflected along with the requested one.
    assert "orders" in snapshot.table_names
    assert "order_item" not in snapshot.table_names


def test_column_metadata(engine):
    customer = schema_from_sqlalchemy(engine).lookup_table("customer")
    assert customer is not None
    assert customer.column_names == [
        "id", "name", "email", "status", "is_active", "balance", "created_at"
    ]
    assert customer.primary_key == ["id"]

    id_col = customer.get_column("id")
    assert id_col.type == ColumnType.INTEGER
    assert id_col.auto_increment
    assert id_col.default is None

    name = customer.get_column("name")
    assert name.type == ColumnType.STRING
    assert name.size == 128
    assert not name.nullable
    assert name.db_type == "VARCHAR(128)"

    balance = customer.get_column("balance")
    assert balance.type == ColumnType.DECIMAL
    assert (balance.precision, balance.scale) == (10, 2)

    assert customer.get_column("is_active").type == ColumnType.BOOLEAN
    assert customer.get_column("created_at").type == ColumnType.TIMESTAMP


def test_server_defaults(engine):
    customer = schema_from_sqlalchemy(engine).lookup_table("customer")
    assert customer.get_column("status").default == 1
    created_at = customer.get_column("created_at").default
    assert isinstance(created_at, Expression)
    assert created_at.text == "CURRENT_TIMESTAMP"
    assert customer.get_column("email").default is None


def test_composite_primary_key(engine):
    item = schema_from_sqlalchemy(engine).lookup_table("order_item")
    assert item.primary_key == ["order_id", "item_id"]
    assert not any(c.auto_increment for c in item.columns)


def test_table_without_primary_key(engine):
    audit = schema_from_sqlalchemy(engine).lookup_table("audit_log")
    assert audit.primary_key == []
    assert audit.get_column("message").type == ColumnType.TEXT


def test_reflects_through_open_connection(engine):
    with engine.connect() as conn:
        snapshot = schema_from_sqlalchemy(conn, include_tables=["audit_log"])
    assert snapshot.table_names == ["audit_log"]


def test_table_from_sqlalchemy(engine):
    table = table_from_sqlalchemy(engine, "orders")
    assert table is not None
    assert table.name == "orders"
    assert table.get_column("customer_id").type == ColumnType.INTEGER
    assert table_from_sqlalchemy(engine, "missing") is None


# ---------------------------------------------------------------------------
# metadata_to_snapshot / abstract_column_type
# ---------------------------------------------------------------------------


def test_metadata_to_snapshot_from_declared_tables():
    metadata = MetaData()
    Table(
        "invoice",
        metadata,
        Column("id", BigInteger, primary_key=True),
        Column("code", String(16), nullable=False),
        Column("pdf", LargeBinary),
    )
    snapshot = metadata_to_snapshot(metadata)
    invoice = snapshot.lookup_table("invoice")
    assert invoice.get_column("id").type == ColumnType.BIGINT
    assert invoice.get_column("code").size == 16
    assert invoice.get_column("pdf").type == ColumnType.BINARY


@pytest.mark.parametrize(
    "sa_type,expected",
    [
        (Boolean(), ColumnType.BOOLEAN),
        (BigInteger(), ColumnType.BIGINT),
        (SmallInteger(), ColumnType.SMALLINT),
        (Integer(), ColumnType.INTEGER),
        (Float(), ColumnType.DOUBLE),
        (Numeric(10, 2), ColumnType.DECIMAL),
        (TIMESTAMP(), ColumnType.TIMESTAMP),
        (DateTime(), ColumnType.DATETIME),
        (Date(), ColumnType.DATE),
        (Time(), ColumnType.TIME),
        (LargeBinary(), ColumnType.BINARY),
        (Text(), ColumnType.TEXT),
        (CHAR(1), ColumnType.CHAR),
        (CHAR(10), ColumnType.STRING),
        (String(32), ColumnType.STRING),
    ],
)
def test_abstract_column_type(sa_type, expected):
    assert abstract_column_type(sa_type) == expected


def test_unknown_types_map_to_string():
    class Geometry:
        pass

    class BYTEABlob:
        pass

    assert abstract_column_type(Geometry()) == ColumnType.STRING
    assert abstract_column_type(BYTEABlob()) == ColumnType.BINARY

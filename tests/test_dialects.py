"""Unit tests for the dialect adapters and the dialect registry."""

from __future__ import annotations

import pytest

import dbbroker  # noqa: F401  (registers the built-in dialects)
from dbbroker.compile.base import SQLDialect
from dbbroker.compile.mysql import MySQLDialect
from dbbroker.compile.oracle import OracleDialect
from dbbroker.compile.params import OutParam, ParamType
from dbbroker.compile.postgres import PostgresDialect
from dbbroker.compile.registry import DialectRegistry
from dbbroker.errors import BuildError, UnsupportedOperationError
from dbbroker.schema.query import Query
from dbbroker.schema.snapshot import ColumnType

ALL_DIALECTS = [SQLDialect(), MySQLDialect(), PostgresDialect(), OracleDialect()]


# ---------------------------------------------------------------------------
# Quoting
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("dialect", ALL_DIALECTS, ids=lambda d: d.name)
@pytest.mark.parametrize("name", ["customer", "shop.customer", "c.name", "*"])
def test_quoting_is_idempotent(dialect, name):
    once = dialect.quote_column_name(name)
    assert dialect.quote_column_name(once) == once
    once = dialect.quote_table_name(name)
    assert dialect.quote_table_name(once) == once


def test_quote_column_names():
    assert SQLDialect().quote_column_name("c.name") == '"c"."name"'
    assert MySQLDialect().quote_column_name("c.name") == "`c`.`name`"
    assert MySQLDialect().quote_column_name("c.*") == "`c`.*"
    assert SQLDialect().quote_column_name("COUNT(id)") == "COUNT(id)"
    assert SQLDialect().quote_column_name("[[name]]") == "[[name]]"


def test_quote_table_names():
    assert PostgresDialect().quote_table_name("public.customer") == '"public"."customer"'
    assert SQLDialect().quote_table_name("{{customer}}") == "{{customer}}"


def test_quote_value():
    assert SQLDialect().quote_value("it's") == "'it''s'"
    assert SQLDialect().quote_value(5) == 5
    assert MySQLDialect().quote_value("a\\b'c") == "'a\\\\b''c'"


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


def test_column_type_mapping():
    assert MySQLDialect().get_column_type(ColumnType.PK) == (
        "int(11) NOT NULL AUTO_INCREMENT PRIMARY KEY"
    )
    assert PostgresDialect().get_column_type("pk") == "serial NOT NULL PRIMARY KEY"
    assert OracleDialect().get_column_type(ColumnType.STRING) == "VARCHAR2(255)"
    assert PostgresDialect().get_column_type(ColumnType.BINARY) == "bytea"


def test_column_type_size_and_suffix():
    assert MySQLDialect().get_column_type("string(64)") == "varchar(64)"
    assert PostgresDialect().get_column_type("integer(8)") == "integer(8)"
    assert OracleDialect().get_column_type("integer NOT NULL") == "NUMBER(10) NOT NULL"


def test_unknown_type_passes_through():
    assert SQLDialect().get_column_type("geometry") == "geometry"


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


def test_mysql_limit_offset():
    dialect = MySQLDialect()
    assert dialect.build_limit(10, 20) == "LIMIT 10 OFFSET 20"
    assert dialect.build_limit(None, 20) == "LIMIT 18446744073709551615 OFFSET 20"
    assert dialect.build_limit(None, None) == ""


def test_ansi_offset_only():
    assert SQLDialect().build_limit(None, 5) == "OFFSET 5"


def test_oracle_pagination_wraps_query(oracle):
    query = Query().from_("customer").order_by("name").limit(10).offset(20)
    assert oracle.build(query).sql == (
        'WITH USER_SQL AS (SELECT * FROM "customer" ORDER BY "name"), '
        "PAGINATION AS (SELECT USER_SQL.*, ROWNUM AS ROWNUMID FROM USER_SQL) "
        "SELECT * FROM PAGINATION WHERE ROWNUMID > 20 AND ROWNUM <= 10"
    )


def test_oracle_pagination_only_limit(oracle):
    sql = oracle.build(Query().from_("customer").limit(5)).sql
    assert sql.endswith("SELECT * FROM PAGINATION WHERE ROWNUM <= 5")


def test_oracle_without_pagination_keeps_order_by(oracle):
    sql = oracle.build(Query().from_("customer").order_by("name")).sql
    assert sql == 'SELECT * FROM "customer" ORDER BY "name"'


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


def test_select_exists():
    assert SQLDialect().select_exists("SELECT 1") == "SELECT EXISTS(SELECT 1)"
    assert OracleDialect().select_exists("SELECT 1 FROM t") == (
        "SELECT CASE WHEN EXISTS(SELECT 1 FROM t) THEN 1 ELSE 0 END FROM DUAL"
    )


def test_oracle_batch_insert(oracle):
    r = oracle.batch_insert("orders", ["customer_id", "note"], [[1, "a"], [2, None]])
    assert r.sql == (
        'INSERT ALL INTO "orders" ("customer_id", "note") VALUES (1, \'a\') '
        'INTO "orders" ("customer_id", "note") VALUES (2, NULL) '
        "SELECT 1 FROM SYS.DUAL"
    )


def test_oracle_insert_returning_binds_out_params(oracle):
    r = oracle.insert_returning("customer", {"name": "ann"})
    assert r.sql == (
        'INSERT INTO "customer" ("name") VALUES (:qp0) RETURNING "id" INTO :qp1'
    )
    out = r.params[":qp1"]
    assert isinstance(out, OutParam)
    assert out.type == ParamType.INT
    assert out.size == 10
    assert out.column == "id"


def test_oracle_returning_string_key(oracle):
    r = oracle.insert_returning("document", {"code": "x"})
    out = r.params[":qp1"]
    assert out.type == ParamType.STR
    assert out.size == 32


def test_returning_without_metadata_is_plain_insert():
    from dbbroker.compile.builder import QueryBuilder

    r = QueryBuilder(OracleDialect()).insert_returning("t", {"a": 1})
    assert r.sql == 'INSERT INTO "t" ("a") VALUES (:qp0)'


# ---------------------------------------------------------------------------
# Transactions and constraints
# ---------------------------------------------------------------------------


def test_savepoint_statements():
    dialect = SQLDialect()
    assert dialect.create_savepoint_sql("LEVEL1") == "SAVEPOINT LEVEL1"
    assert dialect.release_savepoint_sql("LEVEL1") == "RELEASE SAVEPOINT LEVEL1"
    assert dialect.rollback_savepoint_sql("LEVEL1") == "ROLLBACK TO SAVEPOINT LEVEL1"
    assert OracleDialect().release_savepoint_sql("LEVEL1") is None
    assert dialect.isolation_level_sql("SERIALIZABLE") == (
        "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"
    )


def test_capabilities():
    assert PostgresDialect.supports_ilike
    assert not PostgresDialect.sets_isolation_before_begin
    assert OracleDialect.max_in_params == 1000
    assert MySQLDialect.max_in_params is None


def test_constraint_queries():
    assert "'customer'" in PostgresDialect().check_constraints_sql("customer")
    assert "column_default" in PostgresDialect().default_value_constraints_sql("customer")
    assert "user_constraints" in OracleDialect().check_constraints_sql("CUSTOMER")


@pytest.mark.parametrize(
    "call",
    [
        lambda: MySQLDialect().check_constraints_sql("t"),
        lambda: MySQLDialect().default_value_constraints_sql("t"),
        lambda: OracleDialect().default_value_constraints_sql("t"),
    ],
)
def test_unsupported_constraint_queries(call):
    with pytest.raises(UnsupportedOperationError) as exc_info:
        call()
    assert exc_info.value.feature is not None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "name,cls",
    [
        ("ansi", SQLDialect),
        ("mysql", MySQLDialect),
        ("postgres", PostgresDialect),
        ("pgsql", PostgresDialect),
        ("oracle", OracleDialect),
        ("OCI", OracleDialect),
        ("oci8", OracleDialect),
        ("mysqli", MySQLDialect),
    ],
)
def test_registry_creates_builtin_dialects(name, cls):
    assert type(DialectRegistry.create(name)) is cls


def test_registry_rejects_unknown_target():
    with pytest.raises(BuildError, match="Unsupported dialect target: 'db2'"):
        DialectRegistry.create("db2")


def test_registry_accepts_custom_dialect():
    @DialectRegistry.register("test-backend")
    class BackendDialect(SQLDialect):
        name = "test-backend"

    assert "test-backend" in DialectRegistry.registered_targets()
    assert isinstance(DialectRegistry.create("test-backend"), BackendDialect)

"""Shared pytest fixtures for dbbroker unit and integration tests."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from dbbroker.compile.base import SQLDialect
from dbbroker.compile.builder import QueryBuilder
from dbbroker.compile.mysql import MySQLDialect
from dbbroker.compile.oracle import OracleDialect
from dbbroker.compile.postgres import PostgresDialect
from dbbroker.schema.snapshot import SchemaSnapshot
from tests.fixtures import load_schema_snapshot


class RecordingConnection:
    """In-memory Connection that records every call instead of running SQL.

    ``scalars`` is a queue of values returned by :meth:`query_scalar`;
    ``on_execute`` may fill output parameters or raise.
    """

    def __init__(self, dialect: SQLDialect | None = None) -> None:
        self.dialect = dialect or SQLDialect()
        self.calls: list[str] = []
        self.params: list[dict[str, Any]] = []
        self.scalars: list[Any] = []
        self.on_execute: Any = None
        self.open = True
        self.enable_savepoint = True

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        self.calls.append(sql)
        self.params.append(dict(params or {}))
        if self.on_execute is not None:
            self.on_execute(sql, params or {})
        return 0

    def query_scalar(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        self.calls.append(sql)
        self.params.append(dict(params or {}))
        return self.scalars.pop(0) if self.scalars else None

    def quote_table_name(self, name: str) -> str:
        return self.dialect.quote_table_name(name)

    def quote_column_name(self, name: str) -> str:
        return self.dialect.quote_column_name(name)

    def quote_value(self, value: Any) -> Any:
        return self.dialect.quote_value(value)

    def is_open(self) -> bool:
        return self.open

    def begin_native(self) -> None:
        self.calls.append("BEGIN")

    def commit_native(self) -> None:
        self.calls.append("COMMIT")

    def rollback_native(self) -> None:
        self.calls.append("ROLLBACK")


@pytest.fixture(scope="session")
def snapshot() -> SchemaSnapshot:
    """Canonical schema snapshot shared across all tests."""
    return load_schema_snapshot()


@pytest.fixture()
def ansi(snapshot: SchemaSnapshot) -> QueryBuilder:
    return QueryBuilder(SQLDialect(), snapshot)


@pytest.fixture()
def mysql(snapshot: SchemaSnapshot) -> QueryBuilder:
    return QueryBuilder(MySQLDialect(), snapshot)


@pytest.fixture()
def pg(snapshot: SchemaSnapshot) -> QueryBuilder:
    return QueryBuilder(PostgresDialect(), snapshot)


@pytest.fixture()
def oracle(snapshot: SchemaSnapshot) -> QueryBuilder:
    return QueryBuilder(OracleDialect(), snapshot)


@pytest.fixture()
def connection() -> RecordingConnection:
    """A recording connection using the ANSI dialect."""
    return RecordingConnection()

"""Unit tests for TransactionManager against a recording connection."""

from __future__ import annotations

import logging

import pytest

from dbbroker.compile.oracle import OracleDialect
from dbbroker.compile.postgres import PostgresDialect
from dbbroker.errors import ConfigurationError, NestedRollbackError, TransactionStateError
from dbbroker.transaction import IsolationLevel, TransactionManager
from tests.conftest import RecordingConnection


# ---------------------------------------------------------------------------
# Nesting with savepoints
# ---------------------------------------------------------------------------


def test_nested_commit_uses_savepoints(connection):
    manager = TransactionManager(connection)
    manager.begin()
    manager.begin()
    assert manager.level == 2
    manager.commit()
    manager.commit()
    assert manager.level == 0
    assert connection.calls == ["BEGIN", "SAVEPOINT LEVEL1", "RELEASE SAVEPOINT LEVEL1", "COMMIT"]


def test_nested_rollback_rolls_back_to_savepoint(connection):
    manager = TransactionManager(connection)
    manager.begin()
    manager.begin()
    manager.begin()
    manager.rollback()
    manager.commit()
    manager.rollback()
    assert connection.calls == [
        "BEGIN",
        "SAVEPOINT LEVEL1",
        "SAVEPOINT LEVEL2",
        "ROLLBACK TO SAVEPOINT LEVEL2",
        "RELEASE SAVEPOINT LEVEL1",
        "ROLLBACK",
    ]
    assert not manager.is_active


def test_released_savepoint_then_outer_rollback(connection):
    manager = TransactionManager(connection)
    manager.begin()
    manager.begin()
    manager.commit()
    manager.rollback()
    assert connection.calls == [
        "BEGIN",
        "SAVEPOINT LEVEL1",
        "RELEASE SAVEPOINT LEVEL1",
        "ROLLBACK",
    ]


def test_oracle_never_releases_savepoints():
    connection = RecordingConnection(OracleDialect())
    manager = TransactionManager(connection)
    manager.begin()
    manager.begin()
    manager.commit()
    manager.commit()
    assert connection.calls == ["BEGIN", "SAVEPOINT LEVEL1", "COMMIT"]


# ---------------------------------------------------------------------------
# Flattened nesting
# ---------------------------------------------------------------------------


def test_flattened_nesting_only_moves_level(connection, caplog):
    manager = TransactionManager(connection, enable_savepoint=False)
    assert not manager.savepoints_enabled
    with caplog.at_level(logging.WARNING, logger="dbbroker.transaction"):
        manager.begin()
        manager.begin()
    assert "nested transaction not supported" in caplog.text
    manager.commit()
    assert manager.level == 1
    manager.commit()
    assert connection.calls == ["BEGIN", "COMMIT"]


def test_flattened_nested_rollback_raises(connection):
    manager = TransactionManager(connection, enable_savepoint=False)
    manager.begin()
    manager.begin()
    with pytest.raises(NestedRollbackError) as exc_info:
        manager.rollback()
    assert exc_info.value.level == 1
    assert manager.level == 1
    assert "ROLLBACK" not in connection.calls
    manager.rollback()
    assert connection.calls == ["BEGIN", "ROLLBACK"]


def test_dialect_without_savepoints_flattens(connection, monkeypatch):
    monkeypatch.setattr(type(connection.dialect), "supports_savepoint", False)
    manager = TransactionManager(connection)
    assert not manager.savepoints_enabled
    manager.begin()
    manager.begin()
    manager.begin()
    with pytest.raises(NestedRollbackError) as exc_info:
        manager.rollback()
    assert exc_info.value.level == 2
    assert connection.calls == ["BEGIN"]


def test_connection_setting_disables_savepoints(connection):
    connection.enable_savepoint = False
    manager = TransactionManager(connection)
    assert not manager.savepoints_enabled
    manager.begin()
    manager.begin()
    manager.commit()
    manager.commit()
    assert connection.calls == ["BEGIN", "COMMIT"]


def test_explicit_setting_overrides_connection(connection):
    connection.enable_savepoint = False
    assert TransactionManager(connection, enable_savepoint=True).savepoints_enabled
    connection.enable_savepoint = True
    assert not TransactionManager(connection, enable_savepoint=False).savepoints_enabled


# ---------------------------------------------------------------------------
# Inactive states
# ---------------------------------------------------------------------------


def test_rollback_when_inactive_is_noop(connection):
    manager = TransactionManager(connection)
    manager.rollback()
    assert connection.calls == []
    assert manager.level == 0


def test_commit_when_inactive_raises(connection):
    manager = TransactionManager(connection)
    with pytest.raises(TransactionStateError, match="transaction was inactive"):
        manager.commit()


def test_closed_connection_is_inactive(connection):
    manager = TransactionManager(connection)
    manager.begin()
    connection.open = False
    assert not manager.is_active
    with pytest.raises(TransactionStateError):
        manager.commit()


@pytest.mark.parametrize("open_", [False, None])
def test_begin_without_open_connection(open_):
    if open_ is None:
        manager = TransactionManager(None)
    else:
        connection = RecordingConnection()
        connection.open = open_
        manager = TransactionManager(connection)
    with pytest.raises(ConfigurationError, match="no open connection"):
        manager.begin()


# ---------------------------------------------------------------------------
# Isolation levels
# ---------------------------------------------------------------------------


def test_isolation_level_set_before_begin(connection):
    manager = TransactionManager(connection)
    manager.begin(IsolationLevel.SERIALIZABLE)
    assert connection.calls == ["SET TRANSACTION ISOLATION LEVEL SERIALIZABLE", "BEGIN"]


def test_isolation_level_ignored_on_nested_begin(connection):
    manager = TransactionManager(connection)
    manager.begin()
    manager.begin("READ COMMITTED")
    assert connection.calls == ["BEGIN", "SAVEPOINT LEVEL1"]


def test_postgres_isolation_before_begin_skipped(caplog):
    connection = RecordingConnection(PostgresDialect())
    manager = TransactionManager(connection)
    with caplog.at_level(logging.WARNING, logger="dbbroker.transaction"):
        manager.begin(IsolationLevel.REPEATABLE_READ)
    assert connection.calls == ["BEGIN"]
    assert "Isolation level REPEATABLE READ ignored" in caplog.text


def test_set_isolation_level_inside_transaction():
    connection = RecordingConnection(PostgresDialect())
    manager = TransactionManager(connection)
    manager.begin()
    manager.set_isolation_level(IsolationLevel.READ_COMMITTED)
    assert connection.calls[-1] == "SET TRANSACTION ISOLATION LEVEL READ COMMITTED"


def test_set_isolation_level_requires_transaction(connection):
    with pytest.raises(TransactionStateError):
        TransactionManager(connection).set_isolation_level("SERIALIZABLE")


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


def test_run_commits_and_returns_result(connection):
    manager = TransactionManager(connection)
    result = manager.run(lambda conn: conn.execute("UPDATE t SET a=1") or "done")
    assert result == "done"
    assert connection.calls == ["BEGIN", "UPDATE t SET a=1", "COMMIT"]


def test_run_rolls_back_and_reraises(connection):
    manager = TransactionManager(connection)

    def fail(conn):
        conn.execute("DELETE FROM t")
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        manager.run(fail)
    assert connection.calls == ["BEGIN", "DELETE FROM t", "ROLLBACK"]
    assert manager.level == 0


@pytest.mark.parametrize("error", [KeyboardInterrupt, SystemExit])
def test_run_rolls_back_on_interrupt(connection, error):
    manager = TransactionManager(connection)

    def interrupted(conn):
        raise error()

    with pytest.raises(error):
        manager.run(interrupted)
    assert connection.calls == ["BEGIN", "ROLLBACK"]
    assert manager.level == 0


def test_nested_run_rolls_back_to_savepoint(connection):
    manager = TransactionManager(connection)

    def inner(conn):
        raise KeyError("inner")

    def outer(conn):
        with pytest.raises(KeyError):
            manager.run(inner)
        return manager.level

    assert manager.run(outer) == 1
    assert connection.calls == [
        "BEGIN",
        "SAVEPOINT LEVEL1",
        "ROLLBACK TO SAVEPOINT LEVEL1",
        "COMMIT",
    ]


def test_flattened_nested_run_failure_reaches_outer(connection):
    manager = TransactionManager(connection, enable_savepoint=False)

    def inner(conn):
        raise RuntimeError("inner failed")

    def outer(conn):
        manager.run(inner)

    # The inner rollback raises NestedRollbackError, which is logged; the
    # callback error still propagates and the outer level rolls back.
    with pytest.raises(RuntimeError, match="inner failed"):
        manager.run(outer)
    assert connection.calls == ["BEGIN", "ROLLBACK"]
    assert manager.level == 0


def test_run_leaves_transaction_alone_when_callback_changes_level(connection):
    manager = TransactionManager(connection)

    def commit_early(conn):
        manager.commit()

    manager.run(commit_early)
    assert connection.calls == ["BEGIN", "COMMIT"]


def test_run_passes_isolation_level(connection):
    manager = TransactionManager(connection)
    manager.run(lambda conn: None, IsolationLevel.READ_UNCOMMITTED)
    assert connection.calls[0] == "SET TRANSACTION ISOLATION LEVEL READ UNCOMMITTED"


def test_repr(connection):
    assert repr(TransactionManager(connection)) == "TransactionManager(level=0)"

"""Unit tests for the named-lock collaborators."""

from __future__ import annotations

import pytest

from dbbroker.compile.mysql import MySQLDialect
from dbbroker.compile.oracle import OracleDialect
from dbbroker.compile.params import OutParam
from dbbroker.compile.postgres import PostgresDialect
from dbbroker.errors import BackendExecutionError, ConfigurationError
from dbbroker.mutex import LockMode, MySQLMutex, OracleMutex, PostgresMutex
from dbbroker.mutex.postgres import lock_keys
from tests.conftest import RecordingConnection


@pytest.fixture()
def pg_conn() -> RecordingConnection:
    return RecordingConnection(PostgresDialect())


@pytest.fixture()
def oracle_conn() -> RecordingConnection:
    return RecordingConnection(OracleDialect())


def test_dialect_mismatch_rejected(connection):
    with pytest.raises(ConfigurationError, match="requires a connection configured for"):
        PostgresMutex(connection, auto_release=False)


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------


def test_lock_keys_are_stable_16_bit_values():
    key1, key2 = lock_keys("nightly-report")
    assert lock_keys("nightly-report") == (key1, key2)
    assert 0 <= key1 < 2**16
    assert 0 <= key2 < 2**16
    assert lock_keys("other") != (key1, key2)


def test_postgres_acquire_and_release(pg_conn):
    mutex = PostgresMutex(pg_conn, auto_release=False)
    pg_conn.scalars = [True, True]
    assert mutex.acquire("job")
    assert mutex.locks == ["job"]
    key1, key2 = lock_keys("job")
    assert pg_conn.calls[0] == "SELECT pg_try_advisory_lock(:key1, :key2)"
    assert pg_conn.params[0] == {":key1": key1, ":key2": key2}

    assert mutex.release("job")
    assert pg_conn.calls[1] == "SELECT pg_advisory_unlock(:key1, :key2)"
    assert mutex.locks == []


def test_postgres_polls_until_timeout(pg_conn):
    mutex = PostgresMutex(pg_conn, auto_release=False, retry_delay=1)
    pg_conn.scalars = [False, False, True]
    assert mutex.acquire("job", timeout=5)
    assert len(pg_conn.calls) == 3


def test_postgres_zero_timeout_tries_once(pg_conn):
    mutex = PostgresMutex(pg_conn, auto_release=False)
    pg_conn.scalars = [False, True]
    assert not mutex.acquire("job")
    assert len(pg_conn.calls) == 1
    assert mutex.locks == []


def test_already_held_lock_is_not_reacquired(pg_conn):
    mutex = PostgresMutex(pg_conn, auto_release=False)
    pg_conn.scalars = [True]
    assert mutex.acquire("job")
    assert not mutex.acquire("job")
    assert len(pg_conn.calls) == 1


def test_release_all_releases_every_lock(pg_conn, caplog):
    mutex = PostgresMutex(pg_conn, auto_release=False)
    pg_conn.scalars = [True, True, True, False]
    mutex.acquire("a")
    mutex.acquire("b")
    mutex.release_all()
    assert mutex.locks == ["b"]
    assert "Lock 'b' could not be released" in caplog.text


def test_auto_release_registers_weak_exit_hook(pg_conn, monkeypatch):
    registered = []
    monkeypatch.setattr(
        "dbbroker.mutex.base.atexit.register", lambda *args: registered.append(args)
    )
    mutex = PostgresMutex(pg_conn)
    (hook, ref), = registered
    assert ref() is mutex

    pg_conn.scalars = [True, True]
    mutex.acquire("job")
    hook(ref)
    assert mutex.locks == []
    assert pg_conn.calls[-1] == "SELECT pg_advisory_unlock(:key1, :key2)"


def test_release_all_continues_after_failure(pg_conn, caplog):
    mutex = PostgresMutex(pg_conn, auto_release=False)
    pg_conn.scalars = [True, True]
    mutex.acquire("a")
    mutex.acquire("b")

    results = iter([BackendExecutionError("server gone"), True])

    def query_scalar(sql, params=None):
        pg_conn.calls.append(sql)
        result = next(results)
        if isinstance(result, Exception):
            raise result
        return result

    pg_conn.query_scalar = query_scalar
    mutex.release_all()
    assert mutex.locks == ["a"]
    assert "Lock 'a' could not be released" in caplog.text
    assert pg_conn.calls[-2:] == ["SELECT pg_advisory_unlock(:key1, :key2)"] * 2


def test_release_all_on_closed_connection_forgets_locks(pg_conn):
    mutex = PostgresMutex(pg_conn, auto_release=False)
    pg_conn.scalars = [True]
    mutex.acquire("job")
    pg_conn.open = False
    mutex.release_all()
    assert mutex.locks == []
    assert len(pg_conn.calls) == 1


# ---------------------------------------------------------------------------
# MySQL
# ---------------------------------------------------------------------------


def test_mysql_get_lock_waits_server_side():
    conn = RecordingConnection(MySQLDialect())
    mutex = MySQLMutex(conn, auto_release=False)
    conn.scalars = [1, "1"]
    assert mutex.acquire("job", timeout=3.7)
    assert conn.calls[0] == "SELECT GET_LOCK(:name, :timeout)"
    assert conn.params[0] == {":name": "job", ":timeout": 3}
    assert mutex.release("job")
    assert conn.calls[1] == "SELECT RELEASE_LOCK(:name)"


@pytest.mark.parametrize("status", [0, None])
def test_mysql_get_lock_failure(status):
    conn = RecordingConnection(MySQLDialect())
    conn.scalars = [status]
    assert not MySQLMutex(conn, auto_release=False).acquire("job")


# ---------------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------------


def _fill_status(value):
    def on_execute(sql, params):
        for param in params.values():
            if isinstance(param, OutParam):
                param.value = value

    return on_execute


def test_oracle_acquire_renders_lock_options(oracle_conn):
    mutex = OracleMutex(oracle_conn, auto_release=False, lock_mode="S_MODE", release_on_commit=True)
    oracle_conn.on_execute = _fill_status(0)
    assert mutex.acquire("job", timeout=10)
    sql = oracle_conn.calls[0]
    assert "DBMS_LOCK.REQUEST(handle, DBMS_LOCK.S_MODE, 10, TRUE)" in sql
    assert mutex.lock_mode is LockMode.S
    params = oracle_conn.params[0]
    assert params[":name"] == "job"
    assert isinstance(params[":lockStatus"], OutParam)


def test_oracle_release(oracle_conn):
    mutex = OracleMutex(oracle_conn, auto_release=False)
    oracle_conn.on_execute = _fill_status(0)
    mutex.acquire("job")
    assert mutex.release("job")
    assert ":result := DBMS_LOCK.RELEASE(handle)" in oracle_conn.calls[1]
    assert mutex.locks == []


@pytest.mark.parametrize("status", [1, 4, None])
def test_oracle_acquire_failure(oracle_conn, status):
    mutex = OracleMutex(oracle_conn, auto_release=False)
    oracle_conn.on_execute = _fill_status(status)
    assert not mutex.acquire("job")
    assert "DBMS_LOCK.X_MODE, 0, FALSE" in oracle_conn.calls[0]

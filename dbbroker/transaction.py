"""Nested transactions over a single connection.

``TransactionManager`` keeps a nesting level.  The outermost ``begin()``
starts a native transaction; inner ones create savepoints named
``LEVEL<n>``.  When savepoints are unavailable (dialect capability or
``enable_savepoint=False``) nesting is flattened: inner ``begin()`` /
``commit()`` only move the level, and an inner ``rollback()`` raises
:class:`~dbbroker.errors.NestedRollbackError` so the outer unit of work is
forced to roll back too.

One manager drives one connection from one thread; there is no locking.

Example::

    manager = TransactionManager(connection)

    def transfer(conn):
        conn.execute(debit.sql, debit.params)
        conn.execute(credit.sql, credit.params)

    manager.run(transfer, IsolationLevel.SERIALIZABLE)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from dbbroker.errors import ConfigurationError, NestedRollbackError, TransactionStateError

if TYPE_CHECKING:
    from dbbroker.connection import Connection

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IsolationLevel(str, Enum):
    """Standard isolation levels; any other string is passed through."""

    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


class TransactionManager:
    """Tracks the transaction nesting level of one connection.

    Args:
        connection: The connection transactions are issued on.
        enable_savepoint: Use savepoints for nested transactions when the
            dialect supports them.  Defaults to the connection's own
            ``enable_savepoint`` setting.
    """

    def __init__(
        self, connection: Connection | None, enable_savepoint: bool | None = None
    ) -> None:
        self._connection = connection
        self._enable_savepoint = enable_savepoint
        self._level = 0

    @property
    def level(self) -> int:
        """Current nesting level; 0 when no transaction is active."""
        return self._level

    @property
    def connection(self) -> Connection | None:
        return self._connection

    @property
    def is_active(self) -> bool:
        return (
            self._level > 0
            and self._connection is not None
            and self._connection.is_open()
        )

    @property
    def savepoints_enabled(self) -> bool:
        """Whether nested levels are backed by savepoints."""
        connection = self._connection
        if connection is None:
            return False
        enabled = self._enable_savepoint
        if enabled is None:
            enabled = getattr(connection, "enable_savepoint", True)
        return bool(enabled) and connection.dialect.supports_savepoint

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def begin(self, isolation_level: IsolationLevel | str | None = None) -> None:
        """Begin a transaction, or a nested one when already active.

        Args:
            isolation_level: Applied to the outermost transaction only.

        Raises:
            ConfigurationError: If there is no open connection.
        """
        connection = self._require_connection()
        dialect = connection.dialect

        if self._level == 0:
            if isolation_level is not None:
                level = _level_name(isolation_level)
                if dialect.sets_isolation_before_begin:
                    connection.execute(dialect.isolation_level_sql(level))
                else:
                    logger.warning(
                        "Isolation level %s ignored: %s does not apply it before BEGIN. "
                        "Call set_isolation_level() inside the transaction instead.",
                        level,
                        dialect.name,
                    )
            logger.debug("Begin transaction")
            connection.begin_native()
            self._level = 1
            return

        if self.savepoints_enabled:
            logger.debug("Set savepoint LEVEL%d", self._level)
            connection.execute(dialect.create_savepoint_sql(f"LEVEL{self._level}"))
        else:
            logger.warning(
                "Transaction not started at level %d: nested transaction not supported; "
                "flattening into the outer transaction.",
                self._level,
            )
        self._level += 1

    def commit(self) -> None:
        """Commit the innermost transaction.

        Raises:
            TransactionStateError: If no transaction is active.
        """
        if not self.is_active:
            raise TransactionStateError(
                "Failed to commit transaction: transaction was inactive."
            )
        connection = self._connection
        assert connection is not None

        self._level -= 1
        if self._level == 0:
            logger.debug("Commit transaction")
            connection.commit_native()
            return

        if self.savepoints_enabled:
            sql = connection.dialect.release_savepoint_sql(f"LEVEL{self._level}")
            if sql is not None:
                logger.debug("Release savepoint LEVEL%d", self._level)
                connection.execute(sql)
        else:
            logger.info(
                "Transaction not committed at level %d: nested transaction not supported",
                self._level,
            )

    def rollback(self) -> None:
        """Roll back the innermost transaction; a no-op when inactive.

        Raises:
            NestedRollbackError: If a nested level is rolled back without
                savepoints.
        """
        if not self.is_active:
            return
        connection = self._connection
        assert connection is not None

        self._level -= 1
        if self._level == 0:
            logger.debug("Roll back transaction")
            connection.rollback_native()
            return

        if not self.savepoints_enabled:
            logger.info(
                "Transaction not rolled back at level %d: nested transaction not supported",
                self._level,
            )
            raise NestedRollbackError(self._level)
        logger.debug("Roll back to savepoint LEVEL%d", self._level)
        connection.execute(connection.dialect.rollback_savepoint_sql(f"LEVEL{self._level}"))

    def set_isolation_level(self, level: IsolationLevel | str) -> None:
        """Set the isolation level of the active transaction.

        Raises:
            TransactionStateError: If no transaction is active.
        """
        if not self.is_active:
            raise TransactionStateError(
                "Failed to set isolation level: transaction was inactive."
            )
        assert self._connection is not None
        name = _level_name(level)
        logger.debug("Setting transaction isolation level to %s", name)
        self._connection.execute(self._connection.dialect.isolation_level_sql(name))

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def run(
        self,
        callback: Callable[[Any], T],
        isolation_level: IsolationLevel | str | None = None,
    ) -> T:
        """Run ``callback(connection)`` inside a (possibly nested) transaction.

        The transaction is committed when the callback returns and rolled
        back when it raises; either only happens if the callback left the
        nesting level where it found it.

        Returns:
            Whatever ``callback`` returns.
        """
        self.begin(isolation_level)
        level = self._level
        try:
            result = callback(self._connection)
            if self.is_active and self._level == level:
                self.commit()
        except BaseException:
            self._rollback_on_error(level)
            raise
        return result

    def _rollback_on_error(self, level: int) -> None:
        if not (self.is_active and self._level == level):
            return
        try:
            self.rollback()
        except Exception:
            logger.warning("Rollback after a failed transaction also failed", exc_info=True)

    def _require_connection(self) -> Connection:
        if self._connection is None or not self._connection.is_open():
            raise ConfigurationError("Transaction cannot begin: no open connection.")
        return self._connection

    def __repr__(self) -> str:
        return f"TransactionManager(level={self._level})"


def _level_name(level: IsolationLevel | str) -> str:
    return level.value if isinstance(level, IsolationLevel) else str(level)

"""Custom exception hierarchy for dbbroker.

All public errors inherit from DbBrokerError so callers can catch the base
class for any dbbroker-specific failure.
"""
from __future__ import annotations


class DbBrokerError(Exception):
    """Base exception for all dbbroker errors."""


class ConfigurationError(DbBrokerError):
    """Raised when a connection or profile is missing or misconfigured.

    Detected before any statement is executed — a transaction operation on a
    manager without an open connection, an empty DSN, an unknown driver.
    Always fatal; never retried.

    Args:
        message: Human-readable description.
        setting: The offending setting name, when one applies.
    """

    def __init__(self, message: str, setting: str | None = None) -> None:
        super().__init__(message)
        self.setting = setting


class BuildError(DbBrokerError):
    """Raised when a query or condition cannot be compiled.

    Covers malformed condition trees (wrong operand count, unsupported
    operator/operand combination, non-Query EXISTS operand) and malformed
    statements (bad join spec, non-enumerated select for insert-from-select).
    The input is a caller bug, so the error is surfaced unmodified.

    Args:
        message: Human-readable description.
        clause: The clause being compiled when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class TransactionStateError(DbBrokerError):
    """Raised when a transaction operation requires an active transaction."""


class UnsupportedOperationError(DbBrokerError):
    """Raised when the target dialect lacks a requested capability.

    Args:
        message: Human-readable description.
        feature: Short name of the missing feature (e.g. ``"savepoint"``).
    """

    def __init__(self, message: str, feature: str | None = None) -> None:
        super().__init__(message)
        self.feature = feature


class NestedRollbackError(UnsupportedOperationError):
    """Raised when a nested transaction is rolled back without savepoints.

    Partial rollback is impossible in that case, so the error must reach the
    outer unit of work and force its rollback too.
    """

    def __init__(self, level: int) -> None:
        super().__init__(
            f"Roll back failed at level {level}: nested transaction not supported.",
            feature="savepoint",
        )
        self.level = level


class BackendExecutionError(DbBrokerError):
    """Raised when the database driver fails to execute a statement.

    Args:
        message: Driver-provided description.
        sql: The statement that failed, when known.
    """

    def __init__(self, message: str, sql: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql


class IntegrityError(BackendExecutionError):
    """Raised on unique-key, foreign-key and other constraint violations."""

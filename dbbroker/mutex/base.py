"""Base class of the named-lock (mutex) collaborators.

A mutex acquires database-side named locks through a
:class:`~dbbroker.connection.Connection`.  Locks acquired by an instance are
remembered so they can be released when the interpreter exits.
"""

from __future__ import annotations

import atexit
import logging
import time
import weakref
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, ClassVar

from dbbroker.errors import ConfigurationError, DbBrokerError

if TYPE_CHECKING:
    from dbbroker.connection import Connection

logger = logging.getLogger(__name__)


class Mutex(ABC):
    """Named locks held through one connection.

    Args:
        connection: Connection the lock statements are issued on.  Its
            dialect must match :attr:`dialect_name`.
        auto_release: Release every lock still held at interpreter exit.

    Raises:
        ConfigurationError: If the connection's dialect does not match.
    """

    #: Dialect the lock statements are written for.
    dialect_name: ClassVar[str]

    def __init__(self, connection: Connection, auto_release: bool = True) -> None:
        if connection.dialect.name != self.dialect_name:
            raise ConfigurationError(
                f"{type(self).__name__} requires a connection configured for "
                f"'{self.dialect_name}', got '{connection.dialect.name}'.",
                setting="dialect",
            )
        self._connection = connection
        self._locks: list[str] = []
        if auto_release:
            atexit.register(_release_at_exit, weakref.ref(self))

    @property
    def locks(self) -> list[str]:
        """Names of the locks currently held by this instance."""
        return list(self._locks)

    def acquire(self, name: str, timeout: float = 0) -> bool:
        """Acquire the lock ``name``.

        Args:
            name: Lock name.
            timeout: Seconds to wait for the lock; 0 tries once.

        Returns:
            True when the lock was acquired; False when it is already held by
            this instance or could not be obtained in time.
        """
        if name in self._locks or not self._acquire_lock(name, timeout):
            return False
        logger.debug("Acquired lock '%s'", name)
        self._locks.append(name)
        return True

    def release(self, name: str) -> bool:
        """Release the lock ``name``; returns False when the backend refuses."""
        if not self._release_lock(name):
            return False
        logger.debug("Released lock '%s'", name)
        if name in self._locks:
            self._locks.remove(name)
        return True

    def release_all(self) -> None:
        """Release every lock held by this instance.

        Failures are logged and the remaining locks are still tried.  When
        the connection is already closed the session took its locks with it,
        so they are only forgotten.
        """
        if not self._connection.is_open():
            if self._locks:
                logger.debug("Connection closed; dropping locks %s", self._locks)
            self._locks.clear()
            return
        for name in list(self._locks):
            try:
                released = self.release(name)
            except DbBrokerError:
                logger.warning("Lock '%s' could not be released", name, exc_info=True)
                continue
            if not released:
                logger.warning("Lock '%s' could not be released", name)

    @abstractmethod
    def _acquire_lock(self, name: str, timeout: float) -> bool:
        """Try to take the backend lock."""

    @abstractmethod
    def _release_lock(self, name: str) -> bool:
        """Release the backend lock."""


def _release_at_exit(ref: weakref.ReferenceType[Mutex]) -> None:
    mutex = ref()
    if mutex is not None:
        mutex.release_all()


class RetryAcquireMixin:
    """Polling for backends whose lock call cannot wait server-side.

    Attributes:
        retry_delay: Milliseconds between two attempts.
    """

    retry_delay: int = 50

    def _retry_acquire(self, timeout: float, attempt: Callable[[], bool]) -> bool:
        deadline = time.monotonic() + timeout
        while True:
            if attempt():
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(self.retry_delay / 1000)

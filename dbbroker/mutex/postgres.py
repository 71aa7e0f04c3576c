"""PostgreSQL advisory-lock mutex."""

from __future__ import annotations

import hashlib
import struct
from typing import TYPE_CHECKING, ClassVar

from dbbroker.mutex.base import Mutex, RetryAcquireMixin

if TYPE_CHECKING:
    from dbbroker.connection import Connection


def lock_keys(name: str) -> tuple[int, int]:
    """Derive the two 16-bit advisory-lock keys from the SHA-1 of ``name``."""
    digest = hashlib.sha1(name.encode("utf-8")).digest()
    return struct.unpack(">HH", digest[:4])


class PostgresMutex(RetryAcquireMixin, Mutex):
    """Session-level ``pg_try_advisory_lock`` / ``pg_advisory_unlock`` locks.

    ``pg_try_advisory_lock`` never waits, so acquisition is polled every
    :attr:`retry_delay` milliseconds until the timeout expires.
    """

    dialect_name: ClassVar[str] = "postgres"

    def __init__(
        self,
        connection: Connection,
        auto_release: bool = True,
        retry_delay: int = 50,
    ) -> None:
        super().__init__(connection, auto_release)
        self.retry_delay = retry_delay

    def _acquire_lock(self, name: str, timeout: float) -> bool:
        key1, key2 = lock_keys(name)
        return self._retry_acquire(
            timeout,
            lambda: bool(
                self._connection.query_scalar(
                    "SELECT pg_try_advisory_lock(:key1, :key2)",
                    {":key1": key1, ":key2": key2},
                )
            ),
        )

    def _release_lock(self, name: str) -> bool:
        key1, key2 = lock_keys(name)
        return bool(
            self._connection.query_scalar(
                "SELECT pg_advisory_unlock(:key1, :key2)",
                {":key1": key1, ":key2": key2},
            )
        )

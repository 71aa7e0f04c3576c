"""MySQL ``GET_LOCK`` mutex."""

from __future__ import annotations

from typing import ClassVar

from dbbroker.mutex.base import Mutex


class MySQLMutex(Mutex):
    """Named locks via ``GET_LOCK`` / ``RELEASE_LOCK``; the server waits."""

    dialect_name: ClassVar[str] = "mysql"

    def _acquire_lock(self, name: str, timeout: float) -> bool:
        status = self._connection.query_scalar(
            "SELECT GET_LOCK(:name, :timeout)",
            {":name": name, ":timeout": int(abs(timeout))},
        )
        return status is not None and int(status) == 1

    def _release_lock(self, name: str) -> bool:
        status = self._connection.query_scalar("SELECT RELEASE_LOCK(:name)", {":name": name})
        return status is not None and int(status) == 1

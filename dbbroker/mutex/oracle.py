"""Oracle ``DBMS_LOCK`` mutex."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, ClassVar

from dbbroker.compile.params import OutParam, ParamType
from dbbroker.mutex.base import Mutex

if TYPE_CHECKING:
    from dbbroker.connection import Connection


class LockMode(str, Enum):
    """``DBMS_LOCK`` lock modes."""

    X = "X_MODE"
    NL = "NL_MODE"
    S = "S_MODE"
    SX = "SX_MODE"
    SS = "SS_MODE"
    SSX = "SSX_MODE"


_ACQUIRE_SQL = """DECLARE
    handle VARCHAR2(128);
BEGIN
    DBMS_LOCK.ALLOCATE_UNIQUE(:name, handle);
    :lockStatus := DBMS_LOCK.REQUEST(handle, DBMS_LOCK.{mode}, {timeout}, {release_on_commit});
END;"""

_RELEASE_SQL = """DECLARE
    handle VARCHAR2(128);
BEGIN
    DBMS_LOCK.ALLOCATE_UNIQUE(:name, handle);
    :result := DBMS_LOCK.RELEASE(handle);
END;"""


class OracleMutex(Mutex):
    """Named locks allocated with ``DBMS_LOCK``.

    The lock status comes back through an output parameter; ``0`` means
    success.  Lock mode, timeout and release-on-commit are rendered into the
    PL/SQL block because binding does not reach inside it.

    Args:
        connection: An Oracle connection.
        auto_release: Release held locks at interpreter exit.
        lock_mode: ``DBMS_LOCK`` mode requested.
        release_on_commit: Let a COMMIT release the lock.
    """

    dialect_name: ClassVar[str] = "oracle"

    def __init__(
        self,
        connection: Connection,
        auto_release: bool = True,
        lock_mode: LockMode | str = LockMode.X,
        release_on_commit: bool = False,
    ) -> None:
        super().__init__(connection, auto_release)
        self.lock_mode = LockMode(lock_mode)
        self.release_on_commit = release_on_commit

    def _acquire_lock(self, name: str, timeout: float) -> bool:
        status = OutParam(type=ParamType.INT, size=1)
        sql = _ACQUIRE_SQL.format(
            mode=self.lock_mode.value,
            timeout=int(abs(timeout)),
            release_on_commit="TRUE" if self.release_on_commit else "FALSE",
        )
        self._connection.execute(sql, {":name": name, ":lockStatus": status})
        return _succeeded(status.value)

    def _release_lock(self, name: str) -> bool:
        status = OutParam(type=ParamType.INT, size=1)
        self._connection.execute(_RELEASE_SQL, {":name": name, ":result": status})
        return _succeeded(status.value)


def _succeeded(status: object) -> bool:
    return status is not None and str(status) == "0"

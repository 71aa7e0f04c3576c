"""Pydantic model for the connection profile.

The ConnectionProfile is the explicit configuration of one logical database
connection: where to connect, which dialect to compile for, and how
transactions nest.  Create it through the builder so that invalid
combinations are rejected before any connection is attempted::

    from dbbroker import ConnectionProfile

    profile = (
        ConnectionProfile.builder("pgsql:host=localhost;dbname=shop")
        .credentials("shop", "secret")
        .charset("utf8")
        .table_prefix("shop_")
        .build()
    )
    dialect = profile.create_dialect()

    # Oracle without nested-transaction savepoints
    profile = (
        ConnectionProfile.builder("oci:dbname=//db:1521/XE")
        .savepoints(enabled=False)
        .build()
    )
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from dbbroker.errors import ConfigurationError

if TYPE_CHECKING:
    from dbbroker.compile.base import SQLDialect

#: Supported dialect targets.
DialectTarget = Literal["ansi", "mysql", "postgres", "oracle"]

#: DSN driver prefixes and the dialect target each one selects.
DRIVER_TARGETS: dict[str, str] = {
    "mysql": "mysql",
    "mysqli": "mysql",
    "pgsql": "postgres",
    "postgres": "postgres",
    "postgresql": "postgres",
    "oci": "oracle",
    "oci8": "oracle",
    "oracle": "oracle",
    "sqlite": "ansi",
}


def driver_name(dsn: str) -> str | None:
    """Return the lower-cased driver prefix of ``dsn`` (``"pgsql"``), or None.

    Both ``driver:params`` and URL-style ``driver+dbapi://...`` forms are
    understood.
    """
    if ":" not in dsn:
        return None
    driver = dsn.split(":", 1)[0].strip().lower()
    return driver.split("+", 1)[0] or None


class ConnectionProfile(BaseModel):
    """Configuration of a single logical connection.

    Always created via :meth:`builder` in application code.

    Attributes:
        dsn: Data source name (``pgsql:host=...`` or a SQLAlchemy URL).
        target: Dialect the query builder compiles for.
        username: Login user, if not part of the DSN.
        password: Login password, if not part of the DSN.
        charset: Client character set applied on connect (MySQL, PostgreSQL).
        table_prefix: Replaces ``%`` inside ``{{table}}`` placeholders.
        enable_savepoint: Emulate nested transactions with savepoints.
        param_prefix: Prefix of generated placeholder names.
        attributes: Driver-specific connection options.
    """

    model_config = ConfigDict(extra="forbid")

    dsn: str
    target: DialectTarget = "ansi"
    username: str | None = None
    password: str | None = None
    charset: str | None = None
    table_prefix: str = ""
    enable_savepoint: bool = True
    param_prefix: str = ":qp"
    attributes: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def builder(cls, dsn: str, target: DialectTarget | None = None) -> ConnectionProfileBuilder:
        """Return a :class:`ConnectionProfileBuilder` for ``dsn``.

        Args:
            dsn: Data source name.
            target: Dialect target; inferred from the DSN driver when omitted.

        Returns:
            A fresh builder.
        """
        return ConnectionProfileBuilder(dsn=dsn, target=target)

    @property
    def driver_name(self) -> str | None:
        """The DSN driver prefix, e.g. ``"pgsql"``."""
        return driver_name(self.dsn)

    def create_dialect(self) -> SQLDialect:
        """Instantiate the dialect registered for :attr:`target`."""
        from dbbroker.compile.registry import DialectRegistry

        return DialectRegistry.create(self.target)


class ConnectionProfileBuilder:
    """Fluent builder for :class:`ConnectionProfile`.

    Always obtained via :meth:`ConnectionProfile.builder`.  Settings can be
    applied in any order; validation happens once, in :meth:`build`.
    """

    def __init__(self, dsn: str, target: DialectTarget | None = None) -> None:
        self._dsn = dsn
        self._target = target
        self._username: str | None = None
        self._password: str | None = None
        self._charset: str | None = None
        self._table_prefix = ""
        self._enable_savepoint = True
        self._param_prefix = ":qp"
        self._attributes: dict[str, Any] = {}

    def credentials(self, username: str, password: str | None = None) -> ConnectionProfileBuilder:
        self._username = username
        self._password = password
        return self

    def charset(self, charset: str) -> ConnectionProfileBuilder:
        self._charset = charset
        return self

    def table_prefix(self, prefix: str) -> ConnectionProfileBuilder:
        self._table_prefix = prefix
        return self

    def savepoints(self, enabled: bool = True) -> ConnectionProfileBuilder:
        """Enable or disable savepoint emulation of nested transactions."""
        self._enable_savepoint = enabled
        return self

    def param_prefix(self, prefix: str) -> ConnectionProfileBuilder:
        self._param_prefix = prefix
        return self

    def attributes(self, **options: Any) -> ConnectionProfileBuilder:
        """Add driver-specific connection options."""
        self._attributes.update(options)
        return self

    def build(self) -> ConnectionProfile:
        """Validate the configuration and return the :class:`ConnectionProfile`.

        Raises:
            ConfigurationError: When the DSN is empty, its driver is unknown
                and no target was given, or a charset is set for Oracle
                (where the character set belongs in the DSN).
        """
        target = self._validate()
        return ConnectionProfile(
            dsn=self._dsn,
            target=target,
            username=self._username,
            password=self._password,
            charset=self._charset,
            table_prefix=self._table_prefix,
            enable_savepoint=self._enable_savepoint,
            param_prefix=self._param_prefix,
            attributes=dict(self._attributes),
        )

    # ------------------------------------------------------------------
    # Internal validation
    # ------------------------------------------------------------------

    def _validate(self) -> str:
        if not self._dsn or not self._dsn.strip():
            raise ConfigurationError("Connection DSN cannot be empty.", setting="dsn")

        target = self._target
        if target is None:
            driver = driver_name(self._dsn)
            target = DRIVER_TARGETS.get(driver or "")
            if target is None:
                raise ConfigurationError(
                    f"Cannot infer dialect from DSN driver '{driver}'. "
                    f"Known drivers: {sorted(DRIVER_TARGETS)}. "
                    "Pass target= explicitly.",
                    setting="dsn",
                )

        if target == "oracle" and self._charset is not None:
            raise ConfigurationError(
                "Oracle connections take the character set from the DSN; "
                "remove .charset() and add charset=... to the DSN instead.",
                setting="charset",
            )

        if not self._param_prefix:
            raise ConfigurationError(
                "Parameter prefix cannot be empty.", setting="param_prefix"
            )
        return target

"""Connection collaborator: the protocol the transaction manager and mutexes
talk to, and its SQLAlchemy implementation.

``Connection`` is a structural protocol; anything exposing a dialect, an
``execute`` / ``query_scalar`` pair and the three native transaction calls
can be driven by :class:`~dbbroker.transaction.TransactionManager`.

:class:`SQLAlchemyConnection` runs compiled statements over a SQLAlchemy
engine.  Placeholders produced by the query builder (``:qp0``) are passed
through :func:`sqlalchemy.text` unchanged, :class:`TypedValue` parameters are
bound with an explicit SQLAlchemy type and :class:`OutParam` parameters are
filled after execution.  Driver exceptions are translated once, here, into
:class:`~dbbroker.errors.BackendExecutionError` /
:class:`~dbbroker.errors.IntegrityError`.

Install the optional dependency before using the adapter::

    pip install "dbbroker[sqlalchemy]"

Example::

    from sqlalchemy import create_engine
    from dbbroker import SQLAlchemyConnection

    connection = SQLAlchemyConnection(create_engine("sqlite://")).open()
    compiled = connection.query_builder().insert("users", {"name": "ann"})
    connection.execute(compiled.sql, compiled.params)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from dbbroker.compile.base import SQLDialect
from dbbroker.compile.builder import QueryBuilder
from dbbroker.compile.params import OutParam, ParamType, TypedValue
from dbbroker.compile.registry import DialectRegistry
from dbbroker.errors import BackendExecutionError, ConfigurationError, IntegrityError
from dbbroker.schema.converters import schema_from_sqlalchemy, table_from_sqlalchemy
from dbbroker.schema.profile import DRIVER_TARGETS

if TYPE_CHECKING:
    from sqlalchemy import CursorResult, Engine
    from sqlalchemy.engine import Connection as SAConnection
    from sqlalchemy.engine import RootTransaction

    from dbbroker.schema.profile import ConnectionProfile
    from dbbroker.schema.snapshot import SchemaSnapshot, TableInfo

logger = logging.getLogger(__name__)

#: SQLAlchemy dialect names that differ from the DSN driver names.
ENGINE_TARGETS: dict[str, str] = {**DRIVER_TARGETS, "mariadb": "mysql"}

_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")
_BACKSLASH_LITERAL_RE = re.compile(r"'(?:[^'\\]|\\.|'')*'", re.DOTALL)
_LITERAL_BIND_RE = re.compile(r":(?=\w)")


@runtime_checkable
class Connection(Protocol):
    """What the transaction manager and the mutexes need from a connection."""

    dialect: SQLDialect
    #: False flattens nested transactions even when the dialect has savepoints.
    enable_savepoint: bool

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        """Run ``sql``; return the rows of a query or the affected row count."""
        ...

    def query_scalar(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        """Run ``sql`` and return the first column of the first row."""
        ...

    def quote_table_name(self, name: str) -> str: ...

    def quote_column_name(self, name: str) -> str: ...

    def quote_value(self, value: Any) -> Any: ...

    def is_open(self) -> bool: ...

    def begin_native(self) -> None: ...

    def commit_native(self) -> None: ...

    def rollback_native(self) -> None: ...


def dialect_for_engine(engine: Engine) -> SQLDialect:
    """Return the registered dialect matching a SQLAlchemy engine's backend."""
    target = ENGINE_TARGETS.get(engine.dialect.name, "ansi")
    return DialectRegistry.create(target)


class SQLAlchemyConnection:
    """:class:`Connection` implementation over a SQLAlchemy engine.

    Outside an explicit transaction every statement is committed as soon as
    it has run.  Inside one (between :meth:`begin_native` and
    :meth:`commit_native` / :meth:`rollback_native`) statements join the
    open SQLAlchemy transaction.

    Args:
        engine: The engine to check a connection out of.
        dialect: Compilation dialect; derived from the engine when omitted.
        table_prefix: Replaces ``%`` in ``{{%table}}`` placeholders.
        param_prefix: Placeholder prefix used by :meth:`query_builder`.
        enable_savepoint: Back nested transactions with savepoints; read by
            :class:`~dbbroker.transaction.TransactionManager`.
    """

    def __init__(
        self,
        engine: Engine,
        dialect: SQLDialect | None = None,
        *,
        table_prefix: str = "",
        param_prefix: str = ":qp",
        enable_savepoint: bool = True,
    ) -> None:
        self._engine = engine
        self.dialect = dialect if dialect is not None else dialect_for_engine(engine)
        self.table_prefix = table_prefix
        self.param_prefix = param_prefix
        self.enable_savepoint = enable_savepoint
        self._conn: SAConnection | None = None
        self._transaction: RootTransaction | None = None
        self._schema: SchemaSnapshot | None = None

    @classmethod
    def from_profile(
        cls, profile: ConnectionProfile, **engine_options: Any
    ) -> SQLAlchemyConnection:
        """Create an engine from a profile whose DSN is a SQLAlchemy URL.

        Credentials and charset from the profile are applied to the URL;
        ``profile.attributes`` and ``engine_options`` are passed to
        :func:`sqlalchemy.create_engine`.
        """
        try:
            from sqlalchemy import create_engine, make_url
        except ImportError as exc:
            raise ImportError(
                "SQLAlchemy is required for SQLAlchemyConnection. "
                'Install it with: pip install "dbbroker[sqlalchemy]"'
            ) from exc
        from sqlalchemy.exc import ArgumentError

        try:
            url = make_url(profile.dsn)
        except ArgumentError as exc:
            raise ConfigurationError(
                f"DSN '{profile.dsn}' is not a SQLAlchemy URL.", setting="dsn"
            ) from exc

        if profile.username is not None:
            url = url.set(username=profile.username, password=profile.password)
        options: dict[str, Any] = {**profile.attributes, **engine_options}
        if profile.charset is not None:
            if profile.target == "mysql":
                url = url.update_query_dict({"charset": profile.charset})
            elif profile.target == "postgres":
                connect_args = dict(options.get("connect_args", {}))
                connect_args.setdefault("client_encoding", profile.charset)
                options["connect_args"] = connect_args

        return cls(
            create_engine(url, **options),
            profile.create_dialect(),
            table_prefix=profile.table_prefix,
            param_prefix=profile.param_prefix,
            enable_savepoint=profile.enable_savepoint,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> SQLAlchemyConnection:
        """Check a connection out of the engine; a no-op when already open."""
        if self._conn is not None:
            return self
        from sqlalchemy.exc import DBAPIError

        logger.debug(
            "Opening DB connection: %s", self._engine.url.render_as_string(hide_password=True)
        )
        try:
            self._conn = self._engine.connect()
        except DBAPIError as exc:
            raise BackendExecutionError(f"Cannot open connection: {exc.orig}") from exc
        return self

    def close(self) -> None:
        """Return the connection to the engine; an open transaction is rolled back."""
        if self._conn is None:
            return
        logger.debug("Closing DB connection")
        self._conn.close()
        self._conn = None
        self._transaction = None

    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> SQLAlchemyConnection:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Quoting and compilation helpers
    # ------------------------------------------------------------------

    def quote_table_name(self, name: str) -> str:
        return self.dialect.quote_table_name(name)

    def quote_column_name(self, name: str) -> str:
        return self.dialect.quote_column_name(name)

    def quote_value(self, value: Any) -> Any:
        return self.dialect.quote_value(value)

    def quote_sql(self, sql: str) -> str:
        """Resolve ``{{table}}`` / ``[[column]]`` tokens with the table prefix."""
        return self.dialect.quote_sql(sql, self.table_prefix)

    def query_builder(self, reflect: bool = False) -> QueryBuilder:
        """Return a builder for this connection's dialect.

        Args:
            reflect: Attach the reflected schema so that values are
                type-cast by column metadata (and Oracle / empty inserts can
                find the primary key).
        """
        schema = self.get_schema() if reflect else None
        return QueryBuilder(self.dialect, schema, param_prefix=self.param_prefix)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def get_schema(self, refresh: bool = False) -> SchemaSnapshot:
        """Reflect every table of the database (cached until ``refresh``)."""
        if self._schema is None or refresh:
            self._schema = schema_from_sqlalchemy(self._bind())
            self._end_implicit_transaction()
        return self._schema

    def get_table_schema(self, name: str, refresh: bool = False) -> TableInfo | None:
        """Return the metadata of ``name``, or None if the table does not exist."""
        if self._schema is not None and not refresh:
            table = self._schema.lookup_table(name)
            if table is not None:
                return table
        table = table_from_sqlalchemy(self._bind(), name)
        self._end_implicit_transaction()
        return table

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        """Run a statement.

        Returns:
            A list of row dicts when the statement returns rows (SELECT,
            ``RETURNING``), otherwise the affected row count.

        Raises:
            ConfigurationError: If the connection is not open.
            IntegrityError: On a unique / foreign-key violation.
            BackendExecutionError: On any other driver failure.
        """
        result = self._execute(sql, params)
        if result.returns_rows:
            rows = [dict(row) for row in result.mappings()]
            self._end_implicit_transaction()
            return rows
        self._end_implicit_transaction()
        return result.rowcount

    def query_scalar(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        """Run a query and return the first column of its first row (or None)."""
        result = self._execute(sql, params)
        value = result.scalar() if result.returns_rows else None
        self._end_implicit_transaction()
        return value

    def _execute(self, sql: str, params: Mapping[str, Any] | None) -> CursorResult[Any]:
        from sqlalchemy import exc, text

        conn = self._require_open()
        sql = self.quote_sql(sql)
        binds, typed, outs = _split_params(params or {})
        statement = text(_escape_literal_colons(sql, self.dialect.backslash_escapes))
        if typed or outs:
            statement = statement.bindparams(*typed, *_out_binds(outs))

        logger.debug("Executing SQL: %s", sql)
        try:
            result = conn.execute(statement, binds)
        except exc.IntegrityError as error:
            self._end_implicit_transaction(failed=True)
            raise IntegrityError(str(error.orig), sql=sql) from error
        except exc.DBAPIError as error:
            self._end_implicit_transaction(failed=True)
            raise BackendExecutionError(str(error.orig), sql=sql) from error
        except exc.SQLAlchemyError as error:
            self._end_implicit_transaction(failed=True)
            raise BackendExecutionError(str(error), sql=sql) from error

        if outs:
            values = getattr(result.context, "out_parameters", None) or {}
            for name, out in outs.items():
                out.value = values.get(name)
        return result

    # ------------------------------------------------------------------
    # Native transactions
    # ------------------------------------------------------------------

    def begin_native(self) -> None:
        conn = self._require_open()
        if conn.in_transaction() and self._transaction is None:
            # Statements run before BEGIN (e.g. SET TRANSACTION) autobegan one.
            conn.commit()
        self._transaction = conn.begin()

    def commit_native(self) -> None:
        if self._transaction is None:
            return
        try:
            self._transaction.commit()
        finally:
            self._transaction = None

    def rollback_native(self) -> None:
        if self._transaction is None:
            return
        try:
            self._transaction.rollback()
        finally:
            self._transaction = None

    def in_transaction(self) -> bool:
        return self._transaction is not None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_open(self) -> SAConnection:
        if self._conn is None:
            raise ConfigurationError("The connection is not open; call open() first.")
        return self._conn

    def _bind(self) -> Engine | SAConnection:
        return self._conn if self._conn is not None else self._engine

    def _end_implicit_transaction(self, failed: bool = False) -> None:
        """Commit (or roll back) what SQLAlchemy autobegan outside ``begin_native``."""
        if self._conn is None or self._transaction is not None:
            return
        if not self._conn.in_transaction():
            return
        if failed:
            self._conn.rollback()
        else:
            self._conn.commit()

    def __repr__(self) -> str:
        state = "open" if self.is_open() else "closed"
        return f"SQLAlchemyConnection({self.dialect.name!r}, {state})"


# ---------------------------------------------------------------------------
# Parameter binding
# ---------------------------------------------------------------------------


def _escape_literal_colons(sql: str, backslash_escapes: bool = False) -> str:
    """Escape ``:name`` inside quoted literals so ``text()`` does not bind it."""
    literal_re = _BACKSLASH_LITERAL_RE if backslash_escapes else _LITERAL_RE
    return literal_re.sub(
        lambda match: _LITERAL_BIND_RE.sub(r"\\:", match.group(0)), sql
    )


def _split_params(
    params: Mapping[str, Any],
) -> tuple[dict[str, Any], list[Any], dict[str, OutParam]]:
    """Strip the ``:`` marker from names and separate typed / output params.

    Returns:
        ``(values, typed bindparams, output params by name)``.
    """
    from sqlalchemy import bindparam

    values: dict[str, Any] = {}
    typed: list[Any] = []
    outs: dict[str, OutParam] = {}
    for name, value in params.items():
        key = name.lstrip(":")
        if isinstance(value, OutParam):
            outs[key] = value
        elif isinstance(value, TypedValue):
            bound = value.value
            if value.type == ParamType.LOB and isinstance(bound, str):
                bound = bound.encode("utf-8")
            values[key] = bound
            typed.append(bindparam(key, type_=_sqlalchemy_type(value.type)))
        else:
            values[key] = value
    return values, typed, outs


def _out_binds(outs: Mapping[str, OutParam]) -> list[Any]:
    from sqlalchemy import String, outparam

    binds = []
    for key, out in outs.items():
        sa_type = _sqlalchemy_type(out.type)
        if out.type == ParamType.STR and out.size > 0:
            sa_type = String(out.size)
        binds.append(outparam(key, type_=sa_type))
    return binds


def _sqlalchemy_type(param_type: ParamType) -> Any:
    from sqlalchemy.types import Boolean, Integer, LargeBinary, NullType, String

    return {
        ParamType.STR: String(),
        ParamType.INT: Integer(),
        ParamType.BOOL: Boolean(),
        ParamType.NULL: NullType(),
        ParamType.LOB: LargeBinary(),
    }[param_type]

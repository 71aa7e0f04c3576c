"""dbbroker – database access broker.

Compose conditions and queries as data, compile them to parameterized SQL for
MySQL, PostgreSQL, Oracle (or plain ANSI SQL), and run them inside nested
transactions emulated with savepoints.

Public API
----------
``QueryBuilder``
    Compile a :class:`Query` (or DML statement) for one dialect.

``compile_condition``
    Compile a standalone condition tree.

``TransactionManager``
    Nested transactions over a :class:`Connection`.

``ConnectionProfile``
    Validated connection configuration; resolves its dialect.

Re-exported types
-----------------
The query and condition models, the dialects, parameter helpers, the
connection adapter, the mutexes and all error classes.

Extensibility
-------------
New dialects can be registered via::

    from dbbroker.compile.registry import DialectRegistry

    @DialectRegistry.register("sqlserver")
    class SQLServerDialect(SQLDialect):
        ...

After registration, ``ConnectionProfile.create_dialect()`` picks it up for any
profile with that target.
"""

from __future__ import annotations

from dbbroker.compile.base import CompiledSQL, SQLDialect
from dbbroker.compile.builder import QueryBuilder, compile_condition
from dbbroker.compile.mysql import MySQLDialect
from dbbroker.compile.oracle import OracleDialect
from dbbroker.compile.params import PARAM_PREFIX, OutParam, ParamTable, ParamType, TypedValue
from dbbroker.compile.postgres import PostgresDialect
from dbbroker.compile.registry import DialectRegistry
from dbbroker.connection import Connection, SQLAlchemyConnection
from dbbroker.errors import (
    BackendExecutionError,
    BuildError,
    ConfigurationError,
    DbBrokerError,
    IntegrityError,
    NestedRollbackError,
    TransactionStateError,
    UnsupportedOperationError,
)
from dbbroker.mutex import LockMode, Mutex, MySQLMutex, OracleMutex, PostgresMutex
from dbbroker.schema.conditions import (
    And,
    Between,
    Compare,
    Condition,
    Exists,
    Hash,
    In,
    Like,
    Not,
    Or,
    parse_condition,
)
from dbbroker.schema.converters import schema_from_sqlalchemy
from dbbroker.schema.expressions import Expression, SortDirection
from dbbroker.schema.profile import ConnectionProfile, ConnectionProfileBuilder
from dbbroker.schema.query import JoinClause, OrderByItem, Query, SelectItem, TableRef
from dbbroker.schema.snapshot import ColumnInfo, ColumnType, SchemaSnapshot, TableInfo
from dbbroker.transaction import IsolationLevel, TransactionManager

# ---------------------------------------------------------------------------
# Register built-in dialects with DialectRegistry
# ---------------------------------------------------------------------------

DialectRegistry.register_class("ansi", SQLDialect)
DialectRegistry.register_class("sqlite", SQLDialect)
DialectRegistry.register_class("mysql", MySQLDialect)
DialectRegistry.register_class("mysqli", MySQLDialect)
DialectRegistry.register_class("postgres", PostgresDialect)
DialectRegistry.register_class("postgresql", PostgresDialect)
DialectRegistry.register_class("pgsql", PostgresDialect)
DialectRegistry.register_class("oracle", OracleDialect)
DialectRegistry.register_class("oci", OracleDialect)
DialectRegistry.register_class("oci8", OracleDialect)

__all__ = [
    # Compilation
    "QueryBuilder",
    "compile_condition",
    "CompiledSQL",
    "DialectRegistry",
    "SQLDialect",
    "MySQLDialect",
    "PostgresDialect",
    "OracleDialect",
    # Parameters
    "PARAM_PREFIX",
    "ParamTable",
    "ParamType",
    "TypedValue",
    "OutParam",
    # Query model
    "Query",
    "SelectItem",
    "TableRef",
    "JoinClause",
    "OrderByItem",
    "Expression",
    "SortDirection",
    # Conditions
    "Condition",
    "Hash",
    "Not",
    "And",
    "Or",
    "Between",
    "In",
    "Like",
    "Exists",
    "Compare",
    "parse_condition",
    # Schema metadata
    "SchemaSnapshot",
    "TableInfo",
    "ColumnInfo",
    "ColumnType",
    "schema_from_sqlalchemy",
    # Configuration
    "ConnectionProfile",
    "ConnectionProfileBuilder",
    # Connections and transactions
    "Connection",
    "SQLAlchemyConnection",
    "TransactionManager",
    "IsolationLevel",
    # Mutexes
    "Mutex",
    "PostgresMutex",
    "OracleMutex",
    "MySQLMutex",
    "LockMode",
    # Errors
    "DbBrokerError",
    "ConfigurationError",
    "BuildError",
    "TransactionStateError",
    "UnsupportedOperationError",
    "NestedRollbackError",
    "BackendExecutionError",
    "IntegrityError",
]

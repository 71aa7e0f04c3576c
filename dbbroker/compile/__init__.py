"""dbbroker compilation layer: conditions and queries → parameterized SQL."""
from dbbroker.compile.base import CompiledSQL, SQLDialect
from dbbroker.compile.builder import QueryBuilder, compile_condition
from dbbroker.compile.mysql import MySQLDialect
from dbbroker.compile.oracle import OracleDialect
from dbbroker.compile.params import PARAM_PREFIX, OutParam, ParamTable, ParamType, TypedValue
from dbbroker.compile.postgres import PostgresDialect
from dbbroker.compile.registry import DialectRegistry

__all__ = [
    "CompiledSQL",
    "SQLDialect",
    "QueryBuilder",
    "compile_condition",
    "MySQLDialect",
    "OracleDialect",
    "PostgresDialect",
    "DialectRegistry",
    "PARAM_PREFIX",
    "OutParam",
    "ParamTable",
    "ParamType",
    "TypedValue",
]

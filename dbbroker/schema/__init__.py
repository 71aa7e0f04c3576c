"""dbbroker schema models: Query, condition tree, SchemaSnapshot, ConnectionProfile."""
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
from dbbroker.schema.expressions import Expression, SortDirection
from dbbroker.schema.profile import ConnectionProfile, ConnectionProfileBuilder
from dbbroker.schema.query import (
    JoinClause,
    OrderByItem,
    Query,
    SelectItem,
    TableRef,
    UnionClause,
)
from dbbroker.schema.snapshot import (
    ColumnInfo,
    ColumnType,
    SchemaSnapshot,
    TableInfo,
)

__all__ = [
    "And",
    "Between",
    "Compare",
    "Condition",
    "Exists",
    "Hash",
    "In",
    "Like",
    "Not",
    "Or",
    "parse_condition",
    "Expression",
    "SortDirection",
    "ConnectionProfile",
    "ConnectionProfileBuilder",
    "JoinClause",
    "OrderByItem",
    "Query",
    "SelectItem",
    "TableRef",
    "UnionClause",
    "ColumnInfo",
    "ColumnType",
    "SchemaSnapshot",
    "TableInfo",
]

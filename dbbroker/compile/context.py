"""Compilation context value object.

Packages the ``(dialect, schema)`` pair shared by ``QueryBuilder``, the
condition builder and every clause-level sub-builder into a single object.
"""
from __future__ import annotations

from dataclasses import dataclass

from dbbroker.compile.base import SQLDialect
from dbbroker.schema.snapshot import SchemaSnapshot, TableInfo


@dataclass(frozen=True)
class CompilationContext:
    """Immutable context for compilation runs.

    Attributes:
        dialect: Backend dialect strategy.
        schema: Optional table metadata used for value type-casting.
    """

    dialect: SQLDialect
    schema: SchemaSnapshot | None = None

    def lookup_table(self, name: str) -> TableInfo | None:
        """Return metadata for ``name``, or ``None`` when unknown or no schema."""
        if self.schema is None:
            return None
        return self.schema.lookup_table(name)

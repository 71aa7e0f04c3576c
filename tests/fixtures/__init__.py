"""Test fixtures: sample SchemaSnapshot JSON and SQLite DDL."""

from __future__ import annotations

import json
from pathlib import Path

from dbbroker.schema.snapshot import SchemaSnapshot

_FIXTURES_DIR = Path(__file__).parent


def load_schema_snapshot() -> SchemaSnapshot:
    """Load the canonical sample SchemaSnapshot from schema.json."""
    data = json.loads((_FIXTURES_DIR / "schema.json").read_text())
    return SchemaSnapshot.model_validate(data)


def load_ddl() -> str:
    """Return the SQLite DDL creating the sample tables."""
    return (_FIXTURES_DIR / "ddl_sqlite.sql").read_text()

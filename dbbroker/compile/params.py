"""Parameter table shared by every builder in one compilation run.

A single :class:`ParamTable` is created per statement and threaded through
the condition builder, every clause builder and every nested sub-query, so
that generated placeholder names are unique for the entire statement.
"""
from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

#: Prefix for automatically generated placeholder names.
PARAM_PREFIX = ":qp"


class ParamType(str, Enum):
    """Explicit bind type for a parameter value."""

    STR = "str"
    INT = "int"
    BOOL = "bool"
    NULL = "null"
    LOB = "lob"


@dataclass(frozen=True)
class TypedValue:
    """A value bound with an explicit type (e.g. a binary payload as LOB)."""

    value: Any
    type: ParamType = ParamType.STR


@dataclass
class OutParam:
    """An output parameter filled in by the driver after execution.

    Used for Oracle ``RETURNING ... INTO`` and PL/SQL blocks.

    Attributes:
        type: Expected bind type of the returned value.
        size: Maximum length of the returned value; ``-1`` for the driver
            default.
        column: Column the value is returned for, when applicable.
        value: The returned value, ``None`` until executed.
    """

    type: ParamType = ParamType.STR
    size: int = -1
    column: str | None = None
    value: Any = None


class ParamTable:
    """Ordered mapping of placeholder name to bound value.

    Generated names are ``prefix + index`` where the index starts at the
    current number of entries and skips names already taken, so that
    caller-supplied parameters are never overwritten.

    Args:
        initial: Parameters merged first (caller-supplied names kept as-is).
        prefix: Prefix of generated names.
    """

    def __init__(
        self,
        initial: Mapping[str, Any] | None = None,
        prefix: str = PARAM_PREFIX,
    ) -> None:
        self._params: dict[str, Any] = dict(initial or {})
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def add(self, value: Any) -> str:
        """Store ``value`` under a fresh placeholder name and return the name."""
        index = len(self._params)
        name = f"{self._prefix}{index}"
        while name in self._params:
            index += 1
            name = f"{self._prefix}{index}"
        self._params[name] = value
        return name

    def merge(self, params: Mapping[str, Any]) -> None:
        """Merge already-named parameters verbatim (later values win)."""
        self._params.update(params)

    def to_dict(self) -> dict[str, Any]:
        """Return a copy of the table as a plain dict."""
        return dict(self._params)

    def __len__(self) -> int:
        return len(self._params)

    def __contains__(self, name: object) -> bool:
        return name in self._params

    def __getitem__(self, name: str) -> Any:
        return self._params[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._params)

    def items(self) -> Iterator[tuple[str, Any]]:
        return iter(self._params.items())

    def __repr__(self) -> str:
        return f"ParamTable({self._params!r})"

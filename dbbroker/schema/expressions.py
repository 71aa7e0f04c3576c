"""Raw SQL expressions and operator constants.

``Expression`` is the escape hatch of the query model: a literal SQL fragment
plus its already-named parameters.  It is accepted anywhere a column, value,
table or condition is accepted and is emitted verbatim (the caller is
responsible for quoting any identifiers inside the text).

The operator enums define the tags recognised by the condition compiler.
Any operator not listed here is treated as a simple binary comparison.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Expression(BaseModel):
    """A raw SQL fragment: ``Expression("NOW()")``.

    Attributes:
        text: SQL text emitted unchanged.
        params: Named parameters referenced by ``text``; merged verbatim into
            the parameter table of the statement that embeds the expression.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str
    params: dict[str, Any] = Field(default_factory=dict)

    def __init__(self, text: str, params: dict[str, Any] | None = None, **data: Any) -> None:
        super().__init__(text=text, params=params or {}, **data)

    def __str__(self) -> str:
        return self.text


# ---------------------------------------------------------------------------
# Operator enums
# ---------------------------------------------------------------------------


class LogicalOp(str, Enum):
    """Logical connectives."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class RangeOp(str, Enum):
    """Range operators (3 operands: column, low, high)."""

    BETWEEN = "BETWEEN"
    NOT_BETWEEN = "NOT BETWEEN"


class MembershipOp(str, Enum):
    """Membership operators (column(s) + values or sub-query)."""

    IN = "IN"
    NOT_IN = "NOT IN"


class PatternOp(str, Enum):
    """Pattern-match operators (column, value(s), optional escape map)."""

    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    OR_LIKE = "OR LIKE"
    OR_NOT_LIKE = "OR NOT LIKE"
    ILIKE = "ILIKE"
    NOT_ILIKE = "NOT ILIKE"
    OR_ILIKE = "OR ILIKE"
    OR_NOT_ILIKE = "OR NOT ILIKE"


class ExistsOp(str, Enum):
    """Existence operators (single sub-query operand)."""

    EXISTS = "EXISTS"
    NOT_EXISTS = "NOT EXISTS"


class SortDirection(str, Enum):
    """ORDER BY direction."""

    ASC = "ASC"
    DESC = "DESC"


"""Typed condition tree for WHERE / HAVING / JOIN ON predicates.

Each operator family is its own model; the compiler dispatches on the model
type, never on a string key::

    from dbbroker.schema.conditions import And, Between, Hash, In

    cond = And(
        Hash({"status": 1, "deleted_at": None}),
        In("id", [1, 2, 3]),
        Between("age", 18, 65),
    )

Operator variants keep their operands as a positional list so that the
compiler can enforce the arity rules of each operator and report a
:class:`~dbbroker.errors.BuildError` for malformed input.  Operands are
values, column names, nested conditions, :class:`Expression` objects, or
sub-queries (:class:`~dbbroker.schema.query.Query`).

``parse_condition`` converts the compact list/dict shorthand
(``{"a": 1}``, ``["and", c1, c2]``, ``[">", "age", 30]``) into these models.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from dbbroker.errors import BuildError
from dbbroker.schema.expressions import (
    ExistsOp,
    Expression,
    LogicalOp,
    MembershipOp,
    PatternOp,
    RangeOp,
)

_CONDITION_CONFIG = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)


class Hash(BaseModel):
    """Column/value pairs combined with AND: ``Hash({"a": 1, "b": None})``.

    ``None`` values become ``IS NULL``, iterables and sub-queries become
    ``IN`` conditions, everything else an equality test.
    """

    model_config = _CONDITION_CONFIG

    columns: dict[str, Any] = Field(default_factory=dict)

    def __init__(self, columns: Mapping[str, Any] | None = None, **data: Any) -> None:
        super().__init__(columns=dict(columns or {}), **data)


class _OperatorCondition(BaseModel):
    """Shared shape of the operator variants: a tag plus positional operands."""

    model_config = _CONDITION_CONFIG

    op: str
    operands: list[Any] = Field(default_factory=list)

    def __init__(self, *operands: Any, **data: Any) -> None:
        if operands:
            data["operands"] = list(operands)
        super().__init__(**data)


class Not(_OperatorCondition):
    """``NOT (<operand>)`` — exactly one operand."""

    op: Literal["NOT"] = "NOT"


class And(_OperatorCondition):
    """``(<c1>) AND (<c2>) ...`` — empty operands are dropped."""

    op: Literal["AND"] = "AND"


class Or(_OperatorCondition):
    """``(<c1>) OR (<c2>) ...`` — empty operands are dropped."""

    op: Literal["OR"] = "OR"


class Between(_OperatorCondition):
    """``<col> [NOT] BETWEEN <low> AND <high>`` — operands: column, low, high."""

    op: Literal["BETWEEN", "NOT BETWEEN"] = "BETWEEN"


class In(_OperatorCondition):
    """``<col(s)> [NOT] IN (...)`` — operands: column or column list, values.

    The values operand may be a scalar, a list, any iterable, or a
    sub-query.  With more than one column the values are rows (mappings of
    column name to value) and a row-value IN is produced.
    """

    op: Literal["IN", "NOT IN"] = "IN"


class Like(_OperatorCondition):
    """LIKE family — operands: column, value(s), optional escape map.

    ``op`` carries an optional leading ``OR`` that joins multiple values
    with OR instead of AND, and an optional ``NOT``.  Pass ``{}`` or
    ``False`` as the escape map when the values are already escaped;
    ``None`` keeps the dialect default.
    """

    op: Literal[
        "LIKE", "NOT LIKE", "OR LIKE", "OR NOT LIKE",
        "ILIKE", "NOT ILIKE", "OR ILIKE", "OR NOT ILIKE",
    ] = "LIKE"


class Exists(_OperatorCondition):
    """``[NOT] EXISTS (<sub-query>)`` — exactly one sub-query operand."""

    op: Literal["EXISTS", "NOT EXISTS"] = "EXISTS"


class Compare(_OperatorCondition):
    """``<col> <op> <value>`` for any other operator (``>``, ``<=``, ``<>``...)."""

    op: str = "="


#: A node of the condition tree.  Plain strings are raw SQL.
Condition = Union[Expression, Hash, Not, And, Or, Between, In, Like, Exists, Compare, str]

_VARIANTS: dict[str, type[_OperatorCondition]] = {
    LogicalOp.NOT.value: Not,
    LogicalOp.AND.value: And,
    LogicalOp.OR.value: Or,
}
_VARIANTS.update({op.value: Between for op in RangeOp})
_VARIANTS.update({op.value: In for op in MembershipOp})
_VARIANTS.update({op.value: Like for op in PatternOp})
_VARIANTS.update({op.value: Exists for op in ExistsOp})

_NESTED_VARIANTS = (Not, And, Or)


def is_condition(value: Any) -> bool:
    """Return True when ``value`` is already a typed condition node."""
    return isinstance(value, (Expression, Hash, _OperatorCondition))


def parse_condition(spec: Any) -> Condition | None:
    """Convert a condition in shorthand form into a typed condition tree.

    Accepted shapes:

    * ``None`` or an empty list/dict → ``None`` (no condition);
    * a string → raw SQL, returned unchanged;
    * a typed node → returned unchanged;
    * a mapping → :class:`Hash`;
    * a list/tuple whose first item is an operator string →
      the matching variant, with operands of ``NOT`` / ``AND`` / ``OR``
      parsed recursively.  Unknown operators become :class:`Compare`.

    Args:
        spec: The shorthand condition.

    Returns:
        The typed condition, or ``None``.

    Raises:
        BuildError: If ``spec`` has an unrecognised shape.
    """
    if spec is None:
        return None
    if isinstance(spec, str) or is_condition(spec):
        return spec
    if isinstance(spec, Mapping):
        return Hash(spec) if spec else None
    if isinstance(spec, (list, tuple)):
        if not spec:
            return None
        head = spec[0]
        if not isinstance(head, str):
            raise BuildError(
                f"Condition operator must be a string, got {type(head).__name__}."
            )
        op = " ".join(head.upper().split())
        operands = list(spec[1:])
        variant = _VARIANTS.get(op)
        if variant is None:
            return Compare(*operands, op=op)
        if variant in _NESTED_VARIANTS:
            operands = [_parse_operand(o) for o in operands]
        return variant(*operands, op=op)
    raise BuildError(f"Unsupported condition shape: {type(spec).__name__}.")


def _parse_operand(operand: Any) -> Any:
    """Parse a logical operand, keeping empty shorthand as an empty string."""
    if isinstance(operand, (Mapping, list, tuple)):
        parsed = parse_condition(operand)
        return "" if parsed is None else parsed
    return operand

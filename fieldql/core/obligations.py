"""Decide whether a field operation needs an explicit resolver.

A resolver converts the value a GraphQL argument produces into the value the
storage layer expects for that operation. When every value the argument can
produce already belongs to the target shape, the resolver may be omitted and
defaults to identity. Otherwise it is mandatory.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .shapes import (
    NULL,
    UNDEFINED,
    Operation,
    Shape,
    derive_shape,
    is_subtype,
    shape_from_annotation,
    without,
)


class Obligation(str, Enum):
    OPTIONAL = 'optional'
    MANDATORY = 'mandatory'


@dataclass(frozen=True)
class ObligationVerdict:
    operation: Operation
    obligation: Obligation
    input_shape: Shape
    target_shape: Shape
    reason: str = ''

    @property
    def mandatory(self) -> bool:
        return self.obligation is Obligation.MANDATORY


def argument_input_shape(operation: Operation, arg: Any) -> Shape:
    """Shape of the value handed to the resolver for ``operation``.

    ``where`` resolvers never see an omitted argument; ``uniqueWhere`` and
    ``orderBy`` resolvers only see non-null values.
    """
    shape = shape_from_annotation(arg.type, has_default=arg.has_default)
    if operation is Operation.WHERE:
        return without(shape, UNDEFINED)
    if operation in (Operation.UNIQUE_WHERE, Operation.ORDER_BY):
        return without(shape, NULL, UNDEFINED)
    return shape


def resolver_obligation(db_field: Any, operation: Operation, arg: Optional[Any]) -> ObligationVerdict:
    """Compare the argument's value shape with the field's target shape.

    Args:
        db_field: Storage field kind of the field.
        operation: One of the five input operations.
        arg: The declared :class:`~fieldql.core.fields.Arg`, or ``None`` when
            the operation takes no argument (only meaningful for create).

    Raises:
        UnsupportedArgumentType: The argument annotation has no shape.
    """
    operation = Operation(operation)
    target = derive_shape(db_field, operation)
    if arg is None:
        if operation is Operation.CREATE:
            return ObligationVerdict(
                operation, Obligation.MANDATORY, UNDEFINED, target,
                reason="field is not settable at create time; the resolver must produce the value",
            )
        return ObligationVerdict(operation, Obligation.OPTIONAL, UNDEFINED, target, reason="no argument")
    input_shape = argument_input_shape(operation, arg)
    if arg.assume_compatible is not None:
        obligation = Obligation.OPTIONAL if arg.assume_compatible else Obligation.MANDATORY
        return ObligationVerdict(operation, obligation, input_shape, target, reason="declared by schema author")
    if is_subtype(input_shape, target):
        return ObligationVerdict(operation, Obligation.OPTIONAL, input_shape, target)
    return ObligationVerdict(
        operation, Obligation.MANDATORY, input_shape, target,
        reason=f"argument values {input_shape!r} are not all valid {target!r}",
    )

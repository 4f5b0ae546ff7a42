"""List query arguments: where / orderBy / take / skip / cursor."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Annotated, Any, Dict, List, Mapping, Optional, Tuple

import strawberry
from strawberry import UNSET

from ..errors import NonDeterministicCursorError, QueryArgumentError
from ..input_converter import convert_order_by_input, input_to_dict, validate_order_direction

_ARG_DESC_WHERE = "Filter; omitted or empty matches every record."
_ARG_DESC_ORDER_BY = "Ordered sort keys, one field per entry."
_ARG_DESC_TAKE = "Maximum number of records; omitted means unlimited."
_ARG_DESC_SKIP = "Number of records to skip."
_ARG_DESC_CURSOR = "Resume immediately after this record under orderBy."


@dataclass(frozen=True)
class FindManyArgs:
    """GraphQL arguments of a list query, keyed by Python parameter name."""

    annotations: Mapping[str, Any]
    defaults: Mapping[str, Any]

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self.annotations)


@dataclass(frozen=True)
class FindManyArgsValue:
    where: Mapping[str, Any] = field(default_factory=dict)
    order_by: Tuple[Mapping[str, str], ...] = ()
    take: Optional[int] = None
    skip: int = 0
    cursor: Optional[Mapping[str, Any]] = None


def find_many_args(types: Any) -> FindManyArgs:
    """Arguments of ``allItems``-style queries over the list whose type set is ``types``."""
    annotations = {
        'where': Annotated[types.where, strawberry.argument(description=_ARG_DESC_WHERE)],
        'order_by': Annotated[
            List[types.order_by],
            strawberry.argument(name='orderBy', description=_ARG_DESC_ORDER_BY),
        ],
        'take': Annotated[Optional[int], strawberry.argument(description=_ARG_DESC_TAKE)],
        'skip': Annotated[int, strawberry.argument(description=_ARG_DESC_SKIP)],
        'cursor': Annotated[Optional[types.unique_where], strawberry.argument(description=_ARG_DESC_CURSOR)],
    }
    # Omitted where/orderBy arrive as an empty filter and an empty ordering.
    defaults = {'where': {}, 'order_by': [], 'take': None, 'skip': 0, 'cursor': None}
    return FindManyArgs(MappingProxyType(annotations), MappingProxyType(defaults))


def normalize_find_many_args(
    where: Any = None,
    order_by: Any = None,
    take: Optional[int] = None,
    skip: Optional[int] = 0,
    cursor: Any = None,
) -> FindManyArgsValue:
    """Turn raw argument values (input objects or mappings) into a value.

    Raises:
        QueryArgumentError: negative take/skip or an orderBy entry that does
            not name exactly one field.
        NonDeterministicCursorError: a cursor without an orderBy.
    """
    where_value = input_to_dict(where)
    if where_value is None or where_value is UNSET:
        where_value = {}
    entries: List[Dict[str, str]] = []
    for entry in convert_order_by_input(None if order_by is UNSET else order_by):
        keys = [k for k, v in entry.items() if v is not None]
        if len(keys) != 1:
            raise QueryArgumentError(f"orderBy entries must name exactly one field, got {sorted(entry)}")
        try:
            entries.append({keys[0]: validate_order_direction(entry[keys[0]])})
        except ValueError as e:
            raise QueryArgumentError(str(e)) from None
    if take is UNSET:
        take = None
    if skip is None or skip is UNSET:
        skip = 0
    if take is not None and take < 0:
        raise QueryArgumentError(f"take must not be negative, got {take}")
    if skip < 0:
        raise QueryArgumentError(f"skip must not be negative, got {skip}")
    cursor_value = input_to_dict(cursor)
    if cursor_value is UNSET:
        cursor_value = None
    if cursor_value is not None and not entries:
        raise NonDeterministicCursorError(
            "cursor requires a non-empty orderBy; without one the position after the cursor is undefined"
        )
    return FindManyArgsValue(
        where=where_value,
        order_by=tuple(entries),
        take=take,
        skip=skip,
        cursor=cursor_value,
    )

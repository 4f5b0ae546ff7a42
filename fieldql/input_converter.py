"""
Input converter utilities for GraphQL input types.

This module converts Strawberry input objects into the plain mappings field
resolvers and the storage driver work with: omitted input fields disappear,
explicit nulls stay ``None``, enum members become their values and keys use
the GraphQL field names (``in`` rather than ``in_``).
"""

from dataclasses import fields as dataclass_fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from strawberry import UNSET


def _graphql_names(obj: Any) -> Dict[str, str]:
    definition = getattr(type(obj), '__strawberry_definition__', None)
    names: Dict[str, str] = {}
    for f in getattr(definition, 'fields', None) or []:
        names[f.python_name] = f.graphql_name or f.python_name
    return names


def input_to_dict(value: Any) -> Any:
    """
    Convert a Strawberry input value (or nested lists/mappings) to plain Python.

    Args:
        value: Input object instance, list, mapping, enum member or scalar

    Returns:
        The same value with input objects turned into dictionaries
    """
    if value is UNSET or value is None:
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [input_to_dict(v) for v in value]
    if isinstance(value, Mapping):
        return {k: input_to_dict(v) for k, v in value.items() if v is not UNSET}
    if is_dataclass(value) and not isinstance(value, type):
        names = _graphql_names(value)
        result = {}
        for f in dataclass_fields(value):
            v = getattr(value, f.name, UNSET)
            if v is UNSET:
                continue
            result[names.get(f.name, f.name)] = input_to_dict(v)
        return result
    return value


def convert_order_by_input(order_by: Optional[List[Any]]) -> Tuple[Dict[str, Any], ...]:
    """
    Convert a GraphQL orderBy list into a tuple of ``{field: direction}`` dicts.

    Entries keep their position; keys inside an entry keep declaration order.
    """
    if not order_by:
        return ()
    return tuple(input_to_dict(entry) for entry in order_by)


def validate_order_direction(direction: Any) -> str:
    """
    Validate and normalize order direction.

    Args:
        direction: Direction string or OrderDirection member

    Returns:
        Normalized direction ('asc' or 'desc')

    Raises:
        ValueError: If direction is invalid
    """
    direction = str(getattr(direction, 'value', direction)).lower().strip()
    if direction not in ('asc', 'desc'):
        raise ValueError(f"Invalid order direction '{direction}'. Must be 'asc' or 'desc'.")
    return direction

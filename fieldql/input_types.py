"""
Shared GraphQL input types and scalars.

This module defines the Strawberry enums, scalars and per-scalar filter input
types that built-in field types use for their ``where`` and ``orderBy``
arguments. Per-list types (create/update/where/...) are generated by the
registry; these are the leaves they are built from.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, NewType, Optional

import strawberry


@strawberry.enum(name="OrderDirection")
class OrderDirection(Enum):
    asc = "asc"
    desc = "desc"


@strawberry.enum(name="QueryMode")
class QueryMode(Enum):
    default = "default"
    insensitive = "insensitive"


BigInt = strawberry.scalar(
    NewType("BigInt", int),
    name="BigInt",
    description="Arbitrary precision integer, serialized as a string.",
    serialize=lambda v: str(v),
    parse_value=lambda v: int(v),
)

DecimalScalar = strawberry.scalar(
    NewType("Decimal", Decimal),
    name="Decimal",
    description="Decimal number, serialized as a string.",
    serialize=lambda v: str(v),
    parse_value=lambda v: Decimal(str(v)),
)


@strawberry.input
class StringFilter:
    """Comparison operations for String fields."""
    equals: Optional[str] = strawberry.UNSET
    in_: Optional[List[str]] = strawberry.field(name="in", default=strawberry.UNSET)
    not_in: Optional[List[str]] = strawberry.field(name="notIn", default=strawberry.UNSET)
    lt: Optional[str] = strawberry.UNSET
    lte: Optional[str] = strawberry.UNSET
    gt: Optional[str] = strawberry.UNSET
    gte: Optional[str] = strawberry.UNSET
    contains: Optional[str] = strawberry.UNSET
    starts_with: Optional[str] = strawberry.field(name="startsWith", default=strawberry.UNSET)
    ends_with: Optional[str] = strawberry.field(name="endsWith", default=strawberry.UNSET)
    mode: Optional[QueryMode] = strawberry.UNSET
    not_: Optional["StringFilter"] = strawberry.field(name="not", default=strawberry.UNSET)


@strawberry.input
class IntFilter:
    """Comparison operations for Int fields."""
    equals: Optional[int] = strawberry.UNSET
    in_: Optional[List[int]] = strawberry.field(name="in", default=strawberry.UNSET)
    not_in: Optional[List[int]] = strawberry.field(name="notIn", default=strawberry.UNSET)
    lt: Optional[int] = strawberry.UNSET
    lte: Optional[int] = strawberry.UNSET
    gt: Optional[int] = strawberry.UNSET
    gte: Optional[int] = strawberry.UNSET
    not_: Optional["IntFilter"] = strawberry.field(name="not", default=strawberry.UNSET)


@strawberry.input
class FloatFilter:
    """Comparison operations for Float fields."""
    equals: Optional[float] = strawberry.UNSET
    in_: Optional[List[float]] = strawberry.field(name="in", default=strawberry.UNSET)
    not_in: Optional[List[float]] = strawberry.field(name="notIn", default=strawberry.UNSET)
    lt: Optional[float] = strawberry.UNSET
    lte: Optional[float] = strawberry.UNSET
    gt: Optional[float] = strawberry.UNSET
    gte: Optional[float] = strawberry.UNSET
    not_: Optional["FloatFilter"] = strawberry.field(name="not", default=strawberry.UNSET)


@strawberry.input
class BigIntFilter:
    """Comparison operations for BigInt fields."""
    equals: Optional[BigInt] = strawberry.UNSET
    in_: Optional[List[BigInt]] = strawberry.field(name="in", default=strawberry.UNSET)
    not_in: Optional[List[BigInt]] = strawberry.field(name="notIn", default=strawberry.UNSET)
    lt: Optional[BigInt] = strawberry.UNSET
    lte: Optional[BigInt] = strawberry.UNSET
    gt: Optional[BigInt] = strawberry.UNSET
    gte: Optional[BigInt] = strawberry.UNSET
    not_: Optional["BigIntFilter"] = strawberry.field(name="not", default=strawberry.UNSET)


@strawberry.input
class DecimalFilter:
    """Comparison operations for Decimal fields."""
    equals: Optional[DecimalScalar] = strawberry.UNSET
    in_: Optional[List[DecimalScalar]] = strawberry.field(name="in", default=strawberry.UNSET)
    not_in: Optional[List[DecimalScalar]] = strawberry.field(name="notIn", default=strawberry.UNSET)
    lt: Optional[DecimalScalar] = strawberry.UNSET
    lte: Optional[DecimalScalar] = strawberry.UNSET
    gt: Optional[DecimalScalar] = strawberry.UNSET
    gte: Optional[DecimalScalar] = strawberry.UNSET
    not_: Optional["DecimalFilter"] = strawberry.field(name="not", default=strawberry.UNSET)


@strawberry.input
class DateTimeFilter:
    """Comparison operations for DateTime fields."""
    equals: Optional[datetime] = strawberry.UNSET
    in_: Optional[List[datetime]] = strawberry.field(name="in", default=strawberry.UNSET)
    not_in: Optional[List[datetime]] = strawberry.field(name="notIn", default=strawberry.UNSET)
    lt: Optional[datetime] = strawberry.UNSET
    lte: Optional[datetime] = strawberry.UNSET
    gt: Optional[datetime] = strawberry.UNSET
    gte: Optional[datetime] = strawberry.UNSET
    not_: Optional["DateTimeFilter"] = strawberry.field(name="not", default=strawberry.UNSET)


@strawberry.input
class BooleanFilter:
    """Comparison operations for Boolean fields."""
    equals: Optional[bool] = strawberry.UNSET
    not_: Optional["BooleanFilter"] = strawberry.field(name="not", default=strawberry.UNSET)


# Export all input types
__all__ = [
    'OrderDirection',
    'QueryMode',
    'BigInt',
    'DecimalScalar',
    'StringFilter',
    'IntFilter',
    'FloatFilter',
    'BigIntFilter',
    'DecimalFilter',
    'DateTimeFilter',
    'BooleanFilter',
]

"""Value shapes derived from storage field kinds.

A :class:`Shape` describes the set of Python values an operation accepts or
produces for one field. Shapes are a closed variant set so that the subtype
relation (:func:`is_subtype`) and runtime checks (:func:`conforms`) are plain
pattern matching instead of open-ended structural inference.

``strawberry.UNSET`` is the runtime representation of ``UNDEFINED``: an
argument or input field the client did not send.
"""
from __future__ import annotations

import collections.abc
import datetime
import decimal
import types
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Mapping, Tuple, Union, get_args, get_origin

from strawberry import UNSET
from strawberry.scalars import JSON

from .kinds import (
    EnumDBField,
    Mode,
    MultiDBField,
    NoDBField,
    RelationDBField,
    RelationMode,
    ScalarDBField,
    ScalarType,
)


class Operation(str, Enum):
    CREATE = 'create'
    UPDATE = 'update'
    WHERE = 'where'
    UNIQUE_WHERE = 'uniqueWhere'
    ORDER_BY = 'orderBy'
    OUTPUT = 'output'


INPUT_OPERATIONS: Tuple[Operation, ...] = (
    Operation.CREATE,
    Operation.UPDATE,
    Operation.WHERE,
    Operation.UNIQUE_WHERE,
    Operation.ORDER_BY,
)


class Shape:
    """Base class of every shape variant."""

    __slots__ = ()


@dataclass(frozen=True)
class Atom(Shape):
    name: str

    def __repr__(self) -> str:
        return self.name.upper()


UNDEFINED = Atom('undefined')
NULL = Atom('null')
ANYTHING = Atom('anything')
# Field-level filter fragment; any input object is acceptable here.
FILTER = Atom('filter')


@dataclass(frozen=True)
class ScalarShape(Shape):
    scalar: ScalarType


@dataclass(frozen=True)
class EnumShape(Shape):
    name: str
    values: Tuple[str, ...]


DIRECTION = EnumShape('OrderDirection', ('asc', 'desc'))


@dataclass(frozen=True)
class ListOf(Shape):
    item: Shape


@dataclass(frozen=True)
class OneOf(Shape):
    options: FrozenSet[Shape]


@dataclass(frozen=True)
class Record(Shape):
    fields: Tuple[Tuple[str, Shape], ...]

    def get(self, key: str, default: Shape = UNDEFINED) -> Shape:
        for name, shape in self.fields:
            if name == key:
                return shape
        return default

    def keys(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.fields)


@dataclass(frozen=True)
class InputObject(Shape):
    """Opaque GraphQL input object; never structurally compared."""

    name: str


@dataclass(frozen=True)
class ListTypeRef(Shape):
    """Reference to one of another list's generated types, by name."""

    list: str
    type: str


@dataclass(frozen=True)
class RelationInput(Shape):
    list: str
    mode: RelationMode


@dataclass(frozen=True)
class RelatedItem(Shape):
    """Lazy accessor: ``await accessor()`` returns the related record or None."""

    list: str


@dataclass(frozen=True)
class RelatedItems(Shape):
    """Accessor exposing ``find_many(args)`` and ``count(where)``."""

    list: str


def union(*shapes: Shape) -> Shape:
    """Flatten and deduplicate shapes into one ``OneOf`` (or the single member)."""
    flat = set()
    for s in shapes:
        if isinstance(s, OneOf):
            flat.update(s.options)
        else:
            flat.add(s)
    if len(flat) == 1:
        return next(iter(flat))
    return OneOf(frozenset(flat))


def without(shape: Shape, *removed: Shape) -> Shape:
    if isinstance(shape, OneOf):
        kept = [o for o in shape.options if o not in removed]
        if not kept:
            return UNDEFINED
        return union(*kept)
    return UNDEFINED if shape in removed else shape


# --- Derivation ----------------------------------------------------------

def _value_of(db_field) -> Shape:
    if isinstance(db_field, ScalarDBField):
        return ScalarShape(db_field.scalar)
    return EnumShape(db_field.name, db_field.values)


def _scalarish_shape(db_field, operation: Operation) -> Shape:
    value = _value_of(db_field)
    mode = db_field.mode
    if operation in (Operation.CREATE, Operation.UPDATE):
        if mode is Mode.OPTIONAL:
            return union(value, NULL, UNDEFINED)
        if mode is Mode.REQUIRED:
            return union(value, UNDEFINED)
        return union(ListOf(value), UNDEFINED)
    if operation is Operation.OUTPUT:
        if mode is Mode.OPTIONAL:
            return union(value, NULL)
        if mode is Mode.REQUIRED:
            return value
        return ListOf(value)
    if operation is Operation.ORDER_BY:
        return union(DIRECTION, UNDEFINED)
    if operation is Operation.UNIQUE_WHERE:
        return ANYTHING if mode is Mode.MANY else value
    return union(FILTER, NULL)


def derive_shape(db_field, operation: Operation) -> Shape:
    """Return the shape ``operation`` admits for a field stored as ``db_field``.

    Pure: equal inputs always produce equal shapes.
    """
    operation = Operation(operation)
    if isinstance(db_field, NoDBField):
        return UNDEFINED
    if isinstance(db_field, (ScalarDBField, EnumDBField)):
        return _scalarish_shape(db_field, operation)
    if isinstance(db_field, RelationDBField):
        if operation in (Operation.CREATE, Operation.UPDATE):
            return union(RelationInput(db_field.list, db_field.mode), UNDEFINED)
        if operation is Operation.OUTPUT:
            if db_field.mode is RelationMode.ONE:
                return RelatedItem(db_field.list)
            return RelatedItems(db_field.list)
        if operation is Operation.ORDER_BY:
            return UNDEFINED
        if operation is Operation.UNIQUE_WHERE:
            return ANYTHING
        return union(FILTER, NULL)
    if isinstance(db_field, MultiDBField):
        if operation is Operation.WHERE:
            return union(FILTER, NULL)
        return Record(tuple(
            (name, _scalarish_shape(sub, operation)) for name, sub in db_field.fields.items()
        ))
    raise TypeError(f"Unsupported storage field kind: {type(db_field).__name__}")


# --- Subtyping -----------------------------------------------------------

_SCALAR_WIDENING = frozenset({
    (ScalarType.INT, ScalarType.FLOAT),
    (ScalarType.INT, ScalarType.BIGINT),
})

_JSON_COMPATIBLE_SCALARS = frozenset({
    ScalarType.STRING, ScalarType.BOOLEAN, ScalarType.INT, ScalarType.FLOAT, ScalarType.JSON,
})


def _json_compatible(shape: Shape) -> bool:
    if isinstance(shape, OneOf):
        return all(_json_compatible(o) for o in shape.options)
    if shape is NULL or isinstance(shape, EnumShape):
        return True
    if isinstance(shape, ScalarShape):
        return shape.scalar in _JSON_COMPATIBLE_SCALARS
    if isinstance(shape, ListOf):
        return _json_compatible(shape.item)
    if isinstance(shape, Record):
        return all(_json_compatible(s) for _, s in shape.fields)
    return False


def is_subtype(a: Shape, b: Shape) -> bool:
    """True when every value of shape ``a`` is also a value of shape ``b``."""
    if b == ANYTHING:
        return True
    if isinstance(a, OneOf):
        return all(is_subtype(o, b) for o in a.options)
    if isinstance(b, OneOf):
        return any(is_subtype(a, o) for o in b.options)
    if a == b:
        return True
    if a == ANYTHING:
        return False
    if isinstance(a, ScalarShape) and isinstance(b, ScalarShape):
        if b.scalar is ScalarType.JSON:
            return a.scalar in _JSON_COMPATIBLE_SCALARS
        return (a.scalar, b.scalar) in _SCALAR_WIDENING
    if isinstance(a, EnumShape):
        if isinstance(b, EnumShape):
            return set(a.values) <= set(b.values)
        return isinstance(b, ScalarShape) and b.scalar in (ScalarType.STRING, ScalarType.JSON)
    if isinstance(b, ScalarShape) and b.scalar is ScalarType.JSON:
        return isinstance(a, (ListOf, Record)) and _json_compatible(a)
    if isinstance(a, ListOf) and isinstance(b, ListOf):
        return is_subtype(a.item, b.item)
    if isinstance(a, Record) and isinstance(b, Record):
        return all(is_subtype(a.get(key), shape) for key, shape in b.fields)
    if b == FILTER:
        return isinstance(a, (InputObject, Record, ListTypeRef))
    return False


# --- Runtime conformance -------------------------------------------------

def _is_json_value(value: Any) -> bool:
    if value is None or isinstance(value, (str, bool, int, float)):
        return True
    if isinstance(value, (list, tuple)):
        return all(_is_json_value(v) for v in value)
    if isinstance(value, Mapping):
        return all(isinstance(k, str) and _is_json_value(v) for k, v in value.items())
    return False


def _conforms_scalar(scalar: ScalarType, value: Any) -> bool:
    if scalar is ScalarType.STRING:
        return isinstance(value, str)
    if scalar is ScalarType.BOOLEAN:
        return isinstance(value, bool)
    if scalar in (ScalarType.INT, ScalarType.BIGINT):
        return isinstance(value, int) and not isinstance(value, bool)
    if scalar is ScalarType.FLOAT:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if scalar is ScalarType.DATETIME:
        return isinstance(value, datetime.datetime)
    if scalar is ScalarType.DECIMAL:
        return isinstance(value, decimal.Decimal)
    return _is_json_value(value)


def conforms(shape: Shape, value: Any) -> bool:
    """Check a runtime value against a shape."""
    if shape == ANYTHING:
        return True
    if isinstance(shape, OneOf):
        return any(conforms(o, value) for o in shape.options)
    if shape == UNDEFINED:
        return value is UNSET
    if shape == NULL:
        return value is None
    if value is UNSET:
        return False
    if isinstance(shape, ScalarShape):
        return _conforms_scalar(shape.scalar, value)
    if isinstance(shape, EnumShape):
        return isinstance(value, str) and value in shape.values
    if isinstance(shape, ListOf):
        return isinstance(value, (list, tuple)) and all(conforms(shape.item, v) for v in value)
    if isinstance(shape, Record):
        return isinstance(value, Mapping) and all(
            conforms(s, value.get(k, UNSET)) for k, s in shape.fields
        )
    if shape == FILTER or isinstance(shape, RelationInput):
        return isinstance(value, Mapping)
    if isinstance(shape, RelatedItem):
        return callable(value)
    if isinstance(shape, RelatedItems):
        return hasattr(value, 'find_many') and hasattr(value, 'count')
    return True


# --- Argument annotations ------------------------------------------------

class UnsupportedArgumentType(TypeError):
    """An argument annotation outside the closed annotation table."""


def _annotation_scalars():
    from ..input_types import BigInt, DecimalScalar

    return {
        str: ScalarType.STRING,
        bool: ScalarType.BOOLEAN,
        int: ScalarType.INT,
        float: ScalarType.FLOAT,
        datetime.datetime: ScalarType.DATETIME,
        decimal.Decimal: ScalarType.DECIMAL,
        DecimalScalar: ScalarType.DECIMAL,
        BigInt: ScalarType.BIGINT,
        JSON: ScalarType.JSON,
    }


def is_input_object(tp: Any) -> bool:
    """Strawberry input classes, including placeholders not yet decorated."""
    if getattr(tp, '__fieldql_input__', False):
        return True
    definition = getattr(tp, '__strawberry_definition__', None)
    return bool(getattr(definition, 'is_input', False))


def _unwrap_annotated(tp: Any) -> Any:
    while get_origin(tp) is typing.Annotated:
        tp = get_args(tp)[0]
    return tp


def _split_optional(tp: Any) -> Tuple[Any, bool]:
    origin = get_origin(tp)
    if origin is Union or (hasattr(types, 'UnionType') and origin is types.UnionType):
        args = [a for a in get_args(tp) if a is not type(None)]
        nullable = len(args) != len(get_args(tp))
        if len(args) != 1:
            raise UnsupportedArgumentType(f"Union arguments are not supported: {tp!r}")
        return args[0], nullable
    return tp, False


def _value_shape(tp: Any) -> Shape:
    tp = _unwrap_annotated(tp)
    for candidate, scalar in _annotation_scalars().items():
        if tp is candidate:
            return ScalarShape(scalar)
    origin = get_origin(tp)
    if origin in (list, tuple, collections.abc.Sequence):
        args = get_args(tp)
        if not args:
            raise UnsupportedArgumentType(f"List argument needs an item type: {tp!r}")
        inner, nullable = _split_optional(_unwrap_annotated(args[0]))
        item = _value_shape(inner)
        return ListOf(union(item, NULL) if nullable else item)
    if isinstance(tp, type) and issubclass(tp, Enum):
        return EnumShape(tp.__name__, tuple(str(m.value) for m in tp))
    if is_input_object(tp):
        return InputObject(getattr(tp, '__name__', str(tp)))
    raise UnsupportedArgumentType(f"Cannot derive a value shape from argument type {tp!r}")


def shape_from_annotation(annotation: Any, *, has_default: bool = False) -> Shape:
    """Shape of the values a GraphQL argument declared as ``annotation`` yields.

    Nullable arguments may also be omitted (``UNDEFINED``) unless they carry a
    default; non-null arguments always carry a value.
    """
    inner, nullable = _split_optional(_unwrap_annotated(annotation))
    shape = _value_shape(inner)
    if not nullable:
        return shape
    if has_default:
        return union(shape, NULL)
    return union(shape, NULL, UNDEFINED)

"""Closed vocabulary of storage field kinds.

Everything a field type can ask the storage layer for is expressed with the
variants in this module:

- NoDBField: the field exists in the API but stores nothing
- ScalarDBField: one column of a ScalarType
- EnumDBField: one column restricted to a fixed set of string values
- RelationDBField: a link to records of another list
- MultiDBField: several Scalar/Enum columns owned by one API field

Construction only normalises spellings (``'required'`` -> ``Mode.REQUIRED``).
Legality is reported by :func:`db_field_problems` so that the compiler can
collect every problem of a schema before failing.
"""
from __future__ import annotations

import datetime
import decimal
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple, Union


class ScalarType(str, Enum):
    STRING = 'String'
    BOOLEAN = 'Boolean'
    INT = 'Int'
    FLOAT = 'Float'
    DATETIME = 'DateTime'
    BIGINT = 'BigInt'
    JSON = 'Json'
    DECIMAL = 'Decimal'


# Host value type each scalar is bound to. Json values are any JSON-compatible
# Python value, hence ``object``.
SCALAR_HOST_TYPES: Mapping[ScalarType, type] = MappingProxyType({
    ScalarType.STRING: str,
    ScalarType.BOOLEAN: bool,
    ScalarType.INT: int,
    ScalarType.FLOAT: float,
    ScalarType.DATETIME: datetime.datetime,
    ScalarType.BIGINT: int,
    ScalarType.JSON: object,
    ScalarType.DECIMAL: decimal.Decimal,
})


class Mode(str, Enum):
    """Cardinality mode of a scalar-ish field."""

    REQUIRED = 'required'
    OPTIONAL = 'optional'
    MANY = 'many'


class RelationMode(str, Enum):
    ONE = 'one'
    MANY = 'many'


class IndexKind(str, Enum):
    UNIQUE = 'unique'
    INDEX = 'index'


# --- Default policies ----------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: Any
    kind = 'literal'


@dataclass(frozen=True)
class Cuid:
    kind = 'cuid'


@dataclass(frozen=True)
class Uuid:
    kind = 'uuid'


@dataclass(frozen=True)
class Random:
    """Random string of ``bytes`` random bytes rendered as hex or base64url."""

    bytes: int
    encoding: str = 'hex'
    kind = 'random'


@dataclass(frozen=True)
class Autoincrement:
    kind = 'autoincrement'


@dataclass(frozen=True)
class Now:
    kind = 'now'


@dataclass(frozen=True)
class DbGenerated:
    """Opaque expression forwarded to the storage layer."""

    expression: str
    kind = 'dbgenerated'


DefaultPolicy = Union[Literal, Cuid, Uuid, Random, Autoincrement, Now, DbGenerated]


# --- Field kinds ---------------------------------------------------------

def _coerce_enum(enum_cls, value, what: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        valid = [m.value for m in enum_cls]
        raise ValueError(f"Invalid {what} {value!r}. Valid values: {valid}") from None


@dataclass(frozen=True)
class NoDBField:
    kind = 'none'


@dataclass(frozen=True)
class ScalarDBField:
    scalar: ScalarType
    mode: Mode = Mode.OPTIONAL
    default: Optional[DefaultPolicy] = None
    index: Optional[IndexKind] = None
    map: Optional[str] = None
    native_type: Optional[str] = None
    updated_at: bool = False
    kind = 'scalar'

    def __post_init__(self) -> None:
        object.__setattr__(self, 'scalar', _coerce_enum(ScalarType, self.scalar, 'scalar type'))
        object.__setattr__(self, 'mode', _coerce_enum(Mode, self.mode, 'mode'))
        if self.index is not None:
            object.__setattr__(self, 'index', _coerce_enum(IndexKind, self.index, 'index'))


@dataclass(frozen=True)
class EnumDBField:
    name: str
    values: Tuple[str, ...]
    mode: Mode = Mode.OPTIONAL
    default: Optional[Literal] = None
    index: Optional[IndexKind] = None
    map: Optional[str] = None
    kind = 'enum'

    def __post_init__(self) -> None:
        object.__setattr__(self, 'values', tuple(self.values))
        object.__setattr__(self, 'mode', _coerce_enum(Mode, self.mode, 'mode'))
        if self.index is not None:
            object.__setattr__(self, 'index', _coerce_enum(IndexKind, self.index, 'index'))


@dataclass(frozen=True)
class ForeignKey:
    """Foreign key ownership marker; ``map`` renames the key column."""

    map: Optional[str] = None


@dataclass(frozen=True)
class RelationDBField:
    """Link to records of list ``list``.

    Attributes:
        mode: ``one`` or ``many``.
        list: Target list key.
        field: Field on the target list holding the other side, when the
            relation is two-sided.
        foreign_key: ``True``, a column name or a :class:`ForeignKey` marks
            this side as the owner of the key column. Only meaningful for
            ``one``.
        relation_name: Names the join table of a many relation.
    """

    mode: RelationMode
    list: str
    field: Optional[str] = None
    foreign_key: Union[bool, str, ForeignKey, None] = None
    relation_name: Optional[str] = None
    kind = 'relation'

    def __post_init__(self) -> None:
        object.__setattr__(self, 'mode', _coerce_enum(RelationMode, self.mode, 'relation mode'))
        if self.foreign_key is True:
            object.__setattr__(self, 'foreign_key', ForeignKey())
        elif self.foreign_key is False:
            object.__setattr__(self, 'foreign_key', None)
        elif isinstance(self.foreign_key, str):
            object.__setattr__(self, 'foreign_key', ForeignKey(map=self.foreign_key))

    @property
    def owns_foreign_key(self) -> bool:
        return self.foreign_key is not None


ScalarishDBField = Union[ScalarDBField, EnumDBField]


@dataclass(frozen=True)
class MultiDBField:
    """One API field stored as several Scalar/Enum columns (one level only)."""

    fields: Mapping[str, ScalarishDBField] = field(default_factory=dict)
    kind = 'multi'

    def __post_init__(self) -> None:
        object.__setattr__(self, 'fields', MappingProxyType(dict(self.fields)))


DBField = Union[NoDBField, ScalarDBField, EnumDBField, RelationDBField, MultiDBField]

SCALARISH_KINDS = (ScalarDBField, EnumDBField)
DB_FIELD_KINDS = (NoDBField, ScalarDBField, EnumDBField, RelationDBField, MultiDBField)


def is_scalarish(db_field: Any) -> bool:
    return isinstance(db_field, SCALARISH_KINDS)


def db_field_problems(db_field: Any) -> List[str]:
    """Return structural problems of ``db_field`` (empty when legal).

    Default legality is checked separately by
    :func:`fieldql.core.defaults.default_problems`.
    """
    if not isinstance(db_field, DB_FIELD_KINDS):
        return [f"unsupported storage field kind {type(db_field).__name__}"]
    problems: List[str] = []
    if isinstance(db_field, RelationDBField):
        if db_field.foreign_key is not None and db_field.relation_name is not None:
            problems.append("relation sets both foreign_key and relation_name")
        if db_field.mode is RelationMode.MANY and db_field.foreign_key is not None:
            problems.append("foreign_key is only allowed on one relations")
        if db_field.mode is RelationMode.ONE and db_field.relation_name is not None:
            problems.append("relation_name is only allowed on many relations")
        if not db_field.list:
            problems.append("relation has no target list")
    elif isinstance(db_field, EnumDBField):
        if not db_field.values:
            problems.append(f"enum {db_field.name!r} has no values")
        elif len(set(db_field.values)) != len(db_field.values):
            problems.append(f"enum {db_field.name!r} has duplicate values")
    elif isinstance(db_field, ScalarDBField):
        if db_field.updated_at and db_field.scalar is not ScalarType.DATETIME:
            problems.append("updated_at is only allowed on DateTime fields")
    elif isinstance(db_field, MultiDBField):
        if not db_field.fields:
            problems.append("multi field has no subfields")
        for name, sub in db_field.fields.items():
            if not is_scalarish(sub):
                problems.append(
                    f"multi subfield {name!r} must be a scalar or enum field, got {type(sub).__name__}"
                )
                continue
            problems.extend(f"subfield {name!r}: {p}" for p in db_field_problems(sub))
    return problems

"""
Built-in field types.

Each factory returns a :class:`~fieldql.core.fields.FieldSpec` whose builder
pairs a storage field kind with its GraphQL wiring. Place them as class
attributes of a list registered with ``@schema.list()``::

    @schema.list()
    class Post:
        title = text(required=True)
        status = select(['draft', 'published'], required=True, default='draft')
        author = relationship('User.posts')
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import strawberry
from strawberry import UNSET
from strawberry.scalars import JSON

from .core.args import find_many_args, normalize_find_many_args
from .core.fields import Arg, FieldData, FieldInput, FieldOutput, FieldSpec, field_type
from .core.kinds import (
    Autoincrement,
    EnumDBField,
    ForeignKey,
    IndexKind,
    Literal,
    Mode,
    MultiDBField,
    NoDBField,
    Now,
    RelationDBField,
    ScalarDBField,
    ScalarType,
)
from .core.naming import pascal
from .input_types import (
    BigInt,
    BigIntFilter,
    BooleanFilter,
    DateTimeFilter,
    DecimalFilter,
    DecimalScalar,
    FloatFilter,
    IntFilter,
    OrderDirection,
    StringFilter,
)

__all__ = [
    'id_field',
    'text',
    'integer',
    'big_int',
    'float_field',
    'decimal',
    'checkbox',
    'timestamp',
    'json',
    'select',
    'relationship',
    'virtual',
    'composite',
]

_PY_TYPES = {
    ScalarType.STRING: str,
    ScalarType.BOOLEAN: bool,
    ScalarType.INT: int,
    ScalarType.FLOAT: float,
    ScalarType.DATETIME: datetime,
    ScalarType.BIGINT: BigInt,
    ScalarType.JSON: JSON,
    ScalarType.DECIMAL: DecimalScalar,
}

_FILTERS = {
    ScalarType.STRING: StringFilter,
    ScalarType.BOOLEAN: BooleanFilter,
    ScalarType.INT: IntFilter,
    ScalarType.FLOAT: FloatFilter,
    ScalarType.DATETIME: DateTimeFilter,
    ScalarType.BIGINT: BigIntFilter,
    ScalarType.DECIMAL: DecimalFilter,
}


def _mode(required: bool, many: bool) -> Mode:
    if many:
        return Mode.MANY
    return Mode.REQUIRED if required else Mode.OPTIONAL


def _index(unique: bool, index: bool) -> Optional[IndexKind]:
    if unique:
        return IndexKind.UNIQUE
    if index:
        return IndexKind.INDEX
    return None


def _policy(default: Any) -> Any:
    """Literal values become ``Literal``; policy objects pass through."""
    if default is None:
        return None
    if hasattr(default, 'kind'):
        return default
    return Literal(default)


def _non_null(label: str) -> Callable[[Any, Any], Any]:
    def resolve(value, context):
        if value is None:
            raise ValueError(f"{label} cannot be null")
        return value
    return resolve


def _null_as_unset(value, context):
    return UNSET if value is None else value


def _scalarish_inputs(
    data: FieldData,
    py_type: Any,
    mode: Mode,
    *,
    filter_cls: Any = None,
    unique: bool = False,
    sortable: bool = True,
    settable: bool = True,
) -> Dict[str, FieldInput]:
    label = f"{data.list_key}.{data.field_key}"
    inputs: Dict[str, FieldInput] = {}
    if settable:
        value_type = List[py_type] if mode is Mode.MANY else py_type
        # Nullable at the GraphQL boundary; required/many fields reject null.
        resolve = None if mode is Mode.OPTIONAL else _non_null(label)
        inputs['create'] = FieldInput(Arg(Optional[value_type]), resolve)
        inputs['update'] = FieldInput(Arg(Optional[value_type]), resolve)
    if mode is Mode.MANY:
        return inputs
    if filter_cls is not None:
        inputs['where'] = FieldInput(Arg(Optional[filter_cls]))
    if unique:
        inputs['uniqueWhere'] = FieldInput(Arg(Optional[py_type]))
    if sortable:
        inputs['orderBy'] = FieldInput(Arg(Optional[OrderDirection]))
    return inputs


def _output_type(py_type: Any, mode: Mode) -> Any:
    if mode is Mode.MANY:
        return List[py_type]
    if mode is Mode.REQUIRED:
        return py_type
    return Optional[py_type]


def _scalar(
    scalar: ScalarType,
    *,
    required: bool = False,
    many: bool = False,
    default: Any = None,
    unique: bool = False,
    index: bool = False,
    map: Optional[str] = None,
    native_type: Optional[str] = None,
    updated_at: bool = False,
    settable: bool = True,
    sortable: bool = True,
    filterable: bool = True,
    label: Optional[str] = None,
    description: Optional[str] = None,
    views: Optional[str] = None,
) -> FieldSpec:
    mode = _mode(required, many)
    py_type = _PY_TYPES[scalar]

    def build(data: FieldData):
        db_field = ScalarDBField(
            scalar,
            mode=mode,
            default=_policy(default),
            index=_index(unique, index),
            map=map,
            native_type=native_type,
            updated_at=updated_at,
        )
        return field_type(db_field)(
            input=_scalarish_inputs(
                data, py_type, mode,
                filter_cls=_FILTERS.get(scalar) if filterable else None,
                unique=unique,
                sortable=sortable,
                settable=settable,
            ),
            output=FieldOutput(_output_type(py_type, mode), description=description),
            views=views or f"fieldql/{scalar.value.lower()}",
            label=label,
        )

    return FieldSpec(build, label=label)


def id_field(*, label: Optional[str] = 'ID') -> FieldSpec:
    """Autoincrement integer primary key."""
    return _scalar(
        ScalarType.INT, required=True, default=Autoincrement(), unique=True,
        settable=False, label=label, views='fieldql/id',
    )


def text(*, required: bool = False, many: bool = False, default: Any = None, unique: bool = False,
         index: bool = False, map: Optional[str] = None, **kw) -> FieldSpec:
    return _scalar(ScalarType.STRING, required=required, many=many, default=default,
                   unique=unique, index=index, map=map, **kw)


def integer(*, required: bool = False, many: bool = False, default: Any = None, unique: bool = False,
            index: bool = False, map: Optional[str] = None, **kw) -> FieldSpec:
    """Int column; ``default='autoincrement'`` asks storage for a sequence."""
    if default == 'autoincrement':
        default = Autoincrement()
    return _scalar(ScalarType.INT, required=required, many=many, default=default,
                   unique=unique, index=index, map=map, **kw)


def big_int(*, required: bool = False, default: Any = None, unique: bool = False,
            index: bool = False, map: Optional[str] = None, **kw) -> FieldSpec:
    if default == 'autoincrement':
        default = Autoincrement()
    return _scalar(ScalarType.BIGINT, required=required, default=default,
                   unique=unique, index=index, map=map, **kw)


def float_field(*, required: bool = False, default: Any = None, index: bool = False,
                map: Optional[str] = None, **kw) -> FieldSpec:
    return _scalar(ScalarType.FLOAT, required=required, default=default, index=index, map=map, **kw)


def decimal(*, required: bool = False, default: Any = None, precision: int = 18, scale: int = 4,
            index: bool = False, map: Optional[str] = None, **kw) -> FieldSpec:
    if default is not None and not hasattr(default, 'kind'):
        default = str(default)
    return _scalar(ScalarType.DECIMAL, required=required, default=default, index=index, map=map,
                   native_type=f"Decimal({precision}, {scale})", **kw)


def checkbox(*, default: bool = False, map: Optional[str] = None, **kw) -> FieldSpec:
    """Required boolean defaulting to ``False``."""
    return _scalar(ScalarType.BOOLEAN, required=True, default=default, map=map, **kw)


def timestamp(*, required: bool = False, default_now: bool = False, updated_at: bool = False,
              default: Any = None, index: bool = False, map: Optional[str] = None, **kw) -> FieldSpec:
    """DateTime column.

    ``default_now`` fills the current time on create; ``updated_at`` stamps
    the current time on every create and update and is not client settable.
    """
    if default_now:
        default = Now()
    return _scalar(ScalarType.DATETIME, required=required, default=default, index=index,
                   map=map, updated_at=updated_at, settable=not updated_at, **kw)


def json(*, default: Any = None, map: Optional[str] = None, **kw) -> FieldSpec:
    """Optional JSON value; ``default`` is JSON text."""
    return _scalar(ScalarType.JSON, default=default, map=map, sortable=False, filterable=False, **kw)


# --- select --------------------------------------------------------------

def _graphql_enum(name: str, values: Sequence[str]) -> Any:
    members = {v: v for v in values}
    return strawberry.enum(Enum(name, members), name=name)


def _enum_filter(name: str, enum_cls: Any) -> Any:
    plain = type(f"{name}Filter", (), {
        '__doc__': f"Comparison operations for {name} fields.",
        '__module__': __name__,
        'equals': UNSET,
        'in_': strawberry.field(name='in', default=UNSET),
        'not_in': strawberry.field(name='notIn', default=UNSET),
        'not_': strawberry.field(name='not', default=UNSET),
    })
    plain.__annotations__ = {
        'equals': Optional[enum_cls],
        'in_': Optional[List[enum_cls]],
        'not_in': Optional[List[enum_cls]],
        'not_': Optional[plain],
    }
    return strawberry.input(plain)


def select(options: Sequence[str], *, required: bool = False, default: Optional[str] = None,
           unique: bool = False, index: bool = False, map: Optional[str] = None,
           enum_name: Optional[str] = None, label: Optional[str] = None,
           description: Optional[str] = None) -> FieldSpec:
    """Enum column restricted to ``options``; exposed as a GraphQL enum."""
    values = tuple(getattr(o, 'value', o) for o in options)
    mode = _mode(required, False)

    def build(data: FieldData):
        name = enum_name or f"{data.list_key}{pascal(data.field_key)}Type"
        db_field = EnumDBField(
            name, values, mode=mode, default=_policy(default), index=_index(unique, index), map=map,
        )
        if not values or len(set(values)) != len(values):
            # Reported by the assembler; no GraphQL enum can be built.
            return field_type(db_field)(label=label)
        enum_cls = _graphql_enum(name, values)

        def resolve_output(value, item, context):
            return None if value is None else enum_cls(value)

        return field_type(db_field)(
            input=_scalarish_inputs(data, enum_cls, mode, filter_cls=_enum_filter(name, enum_cls), unique=unique),
            output=FieldOutput(_output_type(enum_cls, mode), resolve_output, description),
            views='fieldql/select',
            admin_meta=lambda: {'options': list(values)},
            label=label,
        )

    return FieldSpec(build, label=label)


# --- relationship --------------------------------------------------------

def relationship(ref: str, *, many: bool = False, foreign_key: Union[bool, str, None] = None,
                 relation_name: Optional[str] = None, label: Optional[str] = None,
                 description: Optional[str] = None) -> FieldSpec:
    """Link to another list.

    Args:
        ref: ``'List'`` for a one-sided relation or ``'List.field'`` naming the
            field of the other side.
        many: ``True`` for a to-many relation.
        foreign_key: Marks this side of a one-to-one relation as the owner of
            the key column; a string renames the column.
        relation_name: Join table name of a many-to-many relation.
    """
    target, _, back = ref.partition('.')

    def build(data: FieldData):
        db_field = RelationDBField(
            'many' if many else 'one',
            target,
            field=back or None,
            foreign_key=ForeignKey(map=foreign_key) if isinstance(foreign_key, str) else foreign_key,
            relation_name=relation_name,
        )
        types = data.lists.get(target)
        if types is None:
            # Unknown target is reported by relation planning.
            return field_type(db_field)(label=label)
        meta = lambda: {'refListKey': target, 'refFieldKey': back or None, 'many': many}
        if not many:
            return field_type(db_field)(
                input={
                    'create': FieldInput(Arg(Optional[types.relate_to.one.create], assume_compatible=True), _null_as_unset),
                    'update': FieldInput(Arg(Optional[types.relate_to.one.update], assume_compatible=True), _null_as_unset),
                    'where': FieldInput(Arg(Optional[types.where])),
                },
                output=FieldOutput(Optional[types.output], _resolve_one, description),
                views='fieldql/relationship',
                admin_meta=meta,
                label=label,
            )
        args = find_many_args(types)
        output_args = {name: Arg(ann, args.defaults[name]) for name, ann in args.annotations.items()}
        return field_type(db_field)(
            input={
                'create': FieldInput(Arg(Optional[types.relate_to.many.create], assume_compatible=True), _null_as_unset),
                'update': FieldInput(Arg(Optional[types.relate_to.many.update], assume_compatible=True), _null_as_unset),
                'where': FieldInput(Arg(Optional[types.relate_to.many.where])),
            },
            output=FieldOutput(List[types.output], _resolve_many, description, output_args),
            extra_outputs={
                f"{data.field_key}Count": FieldOutput(
                    int, _resolve_count, None, {'where': output_args['where']},
                ),
            },
            views='fieldql/relationship',
            admin_meta=meta,
            label=label,
        )

    return FieldSpec(build, label=label)


async def _resolve_one(accessor, item, context):
    return await accessor()


async def _resolve_many(items, item, context, **args):
    return await items.find_many(normalize_find_many_args(**args))


async def _resolve_count(items, item, context, where=None):
    value = normalize_find_many_args(where=where)
    return await items.count(value.where)


# --- virtual / composite -------------------------------------------------

def virtual(returns: Any, resolve: Callable[[Any, Any], Any], *, label: Optional[str] = None,
            description: Optional[str] = None) -> FieldSpec:
    """Output-only field computed from the item: ``resolve(item, context)``."""

    def build(data: FieldData):
        return field_type(NoDBField())(
            output=FieldOutput(returns, lambda value, item, context: resolve(item, context), description),
            views='fieldql/virtual',
            label=label,
        )

    return FieldSpec(build, label=label)


def composite(subfields: Mapping[str, Any], *, label: Optional[str] = None,
              description: Optional[str] = None) -> FieldSpec:
    """One API field stored as several columns (``<field>_<subfield>``).

    ``subfields`` maps names to :class:`ScalarDBField`/:class:`EnumDBField`.
    """
    subs = dict(subfields)

    def build(data: FieldData):
        db_field = MultiDBField(subs)
        base = f"{data.list_key}{pascal(data.field_key)}"
        try:
            py_types = {name: _sub_type(f"{base}{pascal(name)}", sub) for name, sub in subs.items()}
        except TypeError:
            # Illegal subfield kinds are reported by the assembler.
            return field_type(db_field)(label=label)
        in_plain = type(f"{base}Input", (), {'__doc__': f"Input for {data.field_key}", '__module__': __name__})
        out_plain = type(base, (), {'__doc__': description or f"Value of {data.field_key}", '__module__': __name__})
        in_anns: Dict[str, Any] = {}
        out_anns: Dict[str, Any] = {}
        for name, sub in subs.items():
            in_anns[name] = Optional[List[py_types[name]] if sub.mode is Mode.MANY else py_types[name]]
            setattr(in_plain, name, UNSET)
            out_anns[name] = _output_type(py_types[name], sub.mode)
        in_plain.__annotations__ = in_anns
        out_plain.__annotations__ = out_anns
        input_cls = strawberry.input(in_plain)
        output_cls = strawberry.type(out_plain)
        enums = {name: t for name, t in py_types.items() if isinstance(subs[name], EnumDBField)}

        def resolve_input(value, context):
            if value is None or value is UNSET:
                return {}
            return value

        def resolve_output(value, item, context):
            kwargs = {}
            for name in subs:
                v = value.get(name)
                kwargs[name] = enums[name](v) if name in enums and v is not None else v
            return output_cls(**kwargs)

        return field_type(db_field)(
            input={
                'create': FieldInput(Arg(Optional[input_cls], assume_compatible=True), resolve_input),
                'update': FieldInput(Arg(Optional[input_cls], assume_compatible=True), resolve_input),
            },
            output=FieldOutput(output_cls, resolve_output, description),
            views='fieldql/composite',
            admin_meta=lambda: {'subfields': list(subs)},
            label=label,
        )

    return FieldSpec(build, label=label)


def _sub_type(name: str, sub: Any) -> Any:
    if isinstance(sub, ScalarDBField):
        py = _PY_TYPES[sub.scalar]
    elif isinstance(sub, EnumDBField):
        py = _graphql_enum(name, sub.values)
    else:
        raise TypeError(name)
    return py

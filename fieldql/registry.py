"""Schema registry and Strawberry schema builder.

Lists are declared with the :meth:`FieldQLSchema.list` class decorator and
compiled in two phases: placeholder types for every list first, then field
assembly and relation planning. The resulting :class:`CompiledSchema` is
immutable and builds the executable ``strawberry.Schema``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field as dc_field
from functools import cached_property
from types import MappingProxyType
from typing import TYPE_CHECKING, Annotated, Any, Callable, Dict, List, Mapping, Optional, Tuple

import strawberry
from strawberry import UNSET
from strawberry.schema.config import StrawberryConfig
from strawberry.types import Info as StrawberryInfo

from .core.args import FindManyArgs, find_many_args, normalize_find_many_args
from .core.fields import Arg, BuildContext, FieldData, FieldDescriptor, FieldOutput, FieldSpec, assemble_field
from .core.kinds import Autoincrement, NoDBField, RelationDBField, ScalarDBField, ScalarType
from .core.naming import ListNames, is_identifier, list_names
from .core.relations import Quantifier, RelationPlan, SetPolicy, plan_relations
from .core.shapes import Operation
from .core.utils import context_get, context_set, get_db_session
from .errors import ConfigurationError
from .field_types import id_field
from .input_converter import input_to_dict
from .operations import LOGICAL_KEYS, Operations

if TYPE_CHECKING:  # pragma: no cover
    from .sql.tables import SchemaTables

_logger = logging.getLogger("fieldql")

_OPERATIONS_CONTEXT_KEY = '_fieldql_operations'
_DRIVER_CONTEXT_KEY = 'fieldql_driver'


# --- Type sets -----------------------------------------------------------

def _placeholder(name: str, doc: str, *, is_input: bool) -> type:
    ns: Dict[str, Any] = {'__doc__': doc, '__module__': __name__}
    if is_input:
        # Lets argument shape derivation recognize the class before decoration.
        ns['__fieldql_input__'] = True
    return type(name, (), ns)


@dataclass(frozen=True)
class RelateToOne:
    create: type
    update: type


@dataclass(frozen=True)
class RelateToMany:
    where: type
    create: type
    update: type


@dataclass(frozen=True)
class RelateTo:
    one: RelateToOne
    many: RelateToMany


class ListTypeSet:
    """Generated Strawberry classes of one list.

    Classes start as plain placeholders so that field builders can reference
    any list (including their own) while the schema compiles; they are
    decorated in place once every field has been assembled, keeping their
    identity.
    """

    def __init__(self, names: ListNames, description: Optional[str] = None):
        key = names.key
        self.names = names
        self.description = description
        self.output = _placeholder(names.output, description or f"A {key} record.", is_input=False)
        self.create = _placeholder(names.create_input, f"Data for a new {key}.", is_input=True)
        self.update = _placeholder(names.update_input, f"Changes to an existing {key}.", is_input=True)
        self.where = _placeholder(names.where_input, f"Filter over {key} records.", is_input=True)
        self.unique_where = _placeholder(names.unique_where_input, f"Identifies exactly one {key}.", is_input=True)
        self.order_by = _placeholder(names.order_by_input, f"One sort key over {key} records.", is_input=True)
        self.relate_to = RelateTo(
            one=RelateToOne(
                create=_placeholder(names.one_create_input, f"Link a new record to one {key}.", is_input=True),
                update=_placeholder(names.one_update_input, f"Change the {key} a record links to.", is_input=True),
            ),
            many=RelateToMany(
                where=_placeholder(names.many_where_input, f"Quantified filter over related {key} records.", is_input=True),
                create=_placeholder(names.many_create_input, f"Link a new record to several {key} records.", is_input=True),
                update=_placeholder(names.many_update_input, f"Change the {key} records a record links to.", is_input=True),
            ),
        )
        self.find_many_args: FindManyArgs = find_many_args(self)


# --- Compiled schema -----------------------------------------------------

@dataclass(frozen=True)
class CompiledList:
    key: str
    names: ListNames
    fields: Mapping[str, FieldDescriptor]
    types: ListTypeSet
    relations: Mapping[str, RelationPlan]
    description: Optional[str] = None

    @property
    def find_many_args(self) -> FindManyArgs:
        return self.types.find_many_args

    @cached_property
    def storage_fields(self) -> Mapping[str, Any]:
        """Storage kinds of every field held in the list's own columns."""
        return MappingProxyType({
            key: desc.db_field for key, desc in self.fields.items()
            if not isinstance(desc.db_field, (RelationDBField, NoDBField))
        })

    def fields_for(self, operation: Operation) -> List[FieldDescriptor]:
        return [d for d in self.fields.values() if d.accepts(operation) and d.arg(operation) is not None]


@dataclass
class CompiledSchema:
    lists: Mapping[str, CompiledList]
    relations: Mapping[Tuple[str, str], RelationPlan]
    provider: str = 'sqlite'
    set_policy: SetPolicy = SetPolicy.REJECT
    _tables: Optional['SchemaTables'] = dc_field(default=None, repr=False)

    def list(self, key: str) -> CompiledList:
        return self.lists[key]

    def admin_meta(self) -> Dict[str, Any]:
        """Per-list, per-field metadata for admin tooling."""
        return {
            key: {
                'key': key,
                'plural': compiled.names.plural,
                'description': compiled.description,
                'fields': {fkey: desc.admin_meta() for fkey, desc in compiled.fields.items()},
            }
            for key, compiled in self.lists.items()
        }

    def sql_tables(self) -> 'SchemaTables':
        if self._tables is None:
            from .sql.tables import build_tables
            self._tables = build_tables(self)
        return self._tables

    def operations(self, driver: Any, *, set_policy: Optional[SetPolicy] = None) -> Operations:
        return Operations(self, driver, set_policy=set_policy)

    def to_strawberry(self, strawberry_config: Optional[StrawberryConfig] = None) -> strawberry.Schema:
        return _StrawberryBuilder(self).build(strawberry_config)


# --- Declaration ---------------------------------------------------------

@dataclass
class _ListDeclaration:
    key: str
    specs: Dict[str, FieldSpec]
    plural: Optional[str] = None
    description: Optional[str] = None


class FieldQLSchema:
    """Registry of lists declared with ``@schema.list()``.

    Example:
        schema = FieldQLSchema()

        @schema.list()
        class Post:
            title = text(required=True)

        strawberry_schema = schema.to_strawberry()
    """

    def __init__(self, *, provider: str = 'sqlite', set_policy: SetPolicy = SetPolicy.REJECT,
                 storage: Optional[Mapping[str, Any]] = None):
        self.provider = provider
        self.set_policy = SetPolicy(set_policy)
        self.storage = dict(storage or {})
        self._lists: Dict[str, _ListDeclaration] = {}
        self._problems: List[str] = []
        self._compiled: Optional[CompiledSchema] = None

    def list(self, key: Optional[str] = None, *, plural: Optional[str] = None,
             description: Optional[str] = None) -> Callable[[type], type]:
        """Register the decorated class as a list; fields are its ``FieldSpec`` attributes."""

        def deco(cls: type) -> type:
            list_key = key or cls.__name__
            specs: Dict[str, FieldSpec] = {}
            for name, value in vars(cls).items():
                if isinstance(value, FieldSpec):
                    specs[name] = value
            if 'id' not in specs:
                specs = {'id': id_field(), **specs}
            if list_key in self._lists:
                self._problems.append(f"{list_key}: list is declared more than once")
            if not is_identifier(list_key) or not list_key[:1].isupper():
                self._problems.append(f"{list_key}: list keys must be PascalCase identifiers")
            self._lists[list_key] = _ListDeclaration(
                list_key, specs, plural=plural, description=description or (cls.__doc__ or None),
            )
            self._compiled = None
            setattr(cls, '__fieldql_list__', list_key)
            return cls

        return deco

    def compile(self) -> CompiledSchema:
        """Assemble every field and plan every relation.

        Raises:
            ConfigurationError: Listing every problem found in the schema.
        """
        if self._compiled is not None:
            return self._compiled
        problems: List[str] = list(self._problems)
        if not self._lists:
            problems.append("schema declares no lists")
        types = {
            key: ListTypeSet(list_names(key, decl.plural), decl.description)
            for key, decl in self._lists.items()
        }
        ctx = BuildContext(
            lists=MappingProxyType(types),
            provider=self.provider,
            storage=MappingProxyType(self.storage),
        )
        assembled: Dict[str, Dict[str, FieldDescriptor]] = {}
        for key, decl in self._lists.items():
            fields: Dict[str, FieldDescriptor] = {}
            for field_key, spec in decl.specs.items():
                if not is_identifier(field_key) or field_key in LOGICAL_KEYS:
                    problems.append(f"{key}.{field_key}: not a valid field key")
                    continue
                try:
                    fields[field_key] = assemble_field(spec, FieldData(ctx, key, field_key))
                except ConfigurationError as e:
                    problems.extend(e.problems)
            problems.extend(_list_problems(key, fields))
            assembled[key] = fields
        plans, relation_problems = plan_relations({
            key: {fkey: desc.db_field for fkey, desc in fields.items()}
            for key, fields in assembled.items()
        })
        problems.extend(relation_problems)
        if problems:
            _logger.error("fieldql: schema has %d configuration problem(s)", len(problems))
            raise ConfigurationError(problems)

        lists = {}
        for key, fields in assembled.items():
            lists[key] = CompiledList(
                key=key,
                names=types[key].names,
                fields=MappingProxyType(fields),
                types=types[key],
                relations=MappingProxyType({f: p for (lk, f), p in plans.items() if lk == key}),
                description=self._lists[key].description,
            )
        compiled = CompiledSchema(
            lists=MappingProxyType(lists),
            relations=MappingProxyType(dict(plans)),
            provider=self.provider,
            set_policy=self.set_policy,
        )
        _decorate_types(compiled)
        _logger.debug("fieldql: compiled %d lists, %d relation sides", len(lists), len(plans))
        self._compiled = compiled
        return compiled

    def to_strawberry(self, strawberry_config: Optional[StrawberryConfig] = None) -> strawberry.Schema:
        return self.compile().to_strawberry(strawberry_config)


def _list_problems(key: str, fields: Mapping[str, FieldDescriptor]) -> List[str]:
    problems = []
    id_desc = fields.get('id')
    if id_desc is not None:
        db_field = id_desc.db_field
        if not (
            isinstance(db_field, ScalarDBField)
            and db_field.scalar is ScalarType.INT
            and isinstance(db_field.default, Autoincrement)
            and not id_desc.accepts(Operation.CREATE)
        ):
            problems.append(f"{key}.id: must be the autoincrement Int key")
    for desc in fields.values():
        for name in desc.extra_outputs:
            if name in fields or not is_identifier(name):
                problems.append(f"{key}.{desc.key}: output {name!r} clashes with another field")
    if not any(d.arg(Operation.CREATE) is not None for d in fields.values()):
        problems.append(f"{key}: no field is settable on create")
    return problems


# --- Strawberry types ----------------------------------------------------

def _input_field(arg: Arg) -> Any:
    default = arg.default if arg.has_default else UNSET
    return strawberry.field(default=default, description=arg.description)


def _decorate_input(cls: type, annotations: Dict[str, Any], attrs: Dict[str, Any]) -> None:
    for name, value in attrs.items():
        setattr(cls, name, value)
    cls.__annotations__ = annotations
    strawberry.input(cls)


def _decorate_operation_inputs(compiled: CompiledList) -> None:
    types = compiled.types
    for operation, cls in (
        (Operation.CREATE, types.create),
        (Operation.UPDATE, types.update),
        (Operation.WHERE, types.where),
        (Operation.UNIQUE_WHERE, types.unique_where),
        (Operation.ORDER_BY, types.order_by),
    ):
        annotations: Dict[str, Any] = {}
        attrs: Dict[str, Any] = {}
        for desc in compiled.fields_for(operation):
            arg = desc.arg(operation)
            annotations[desc.key] = arg.type
            attrs[desc.key] = _input_field(arg)
        if operation is Operation.WHERE:
            for logical in LOGICAL_KEYS:
                annotations[logical] = Optional[List[types.where]]
                attrs[logical] = strawberry.field(default=UNSET)
        _decorate_input(cls, annotations, attrs)


def _decorate_relate_to(types: ListTypeSet) -> None:
    one, many = types.relate_to.one, types.relate_to.many
    unset = lambda: strawberry.field(default=UNSET)
    one_create = {'create': Optional[types.create], 'connect': Optional[types.unique_where]}
    _decorate_input(one.create, dict(one_create), {k: unset() for k in one_create})
    one_update = dict(one_create, disconnect=Optional[bool])
    _decorate_input(one.update, one_update, {k: unset() for k in one_update})
    many_where = {q.value: Optional[types.where] for q in Quantifier}
    _decorate_input(many.where, many_where, {k: unset() for k in many_where})
    many_create = {'create': Optional[List[types.create]], 'connect': Optional[List[types.unique_where]]}
    _decorate_input(many.create, many_create, {k: unset() for k in many_create})
    many_update = {
        'set': Optional[List[types.unique_where]],
        'disconnect': Optional[List[types.unique_where]],
        'connect': Optional[List[types.unique_where]],
        'create': Optional[List[types.create]],
    }
    _decorate_input(many.update, many_update, {k: unset() for k in many_update})


def _make_resolver(func_name: str, params: Mapping[str, Arg], impl: Callable[..., Any], return_type: Any) -> Callable[..., Any]:
    """Build ``async def func_name(self, info, *, <params>)`` delegating to ``impl``.

    Strawberry reads arguments from the signature, so it is generated per field.
    """
    names = list(params)
    sig = ''.join(
        f", {n}=_defaults[{n!r}]" if params[n].has_default else f", {n}" for n in names
    )
    call = ', '.join(f"{n!r}: {n}" for n in names)
    src = (
        f"async def {func_name}(self, info{', *' if names else ''}{sig}):\n"
        f"    return await _impl(self, info, {{{call}}})\n"
    )
    env: Dict[str, Any] = {
        '_impl': impl,
        '_defaults': {n: a.default for n, a in params.items() if a.has_default},
    }
    exec(src, env)
    fn = env[func_name]
    fn.__module__ = __name__
    annotations: Dict[str, Any] = {'info': StrawberryInfo}
    for n, a in params.items():
        annotations[n] = a.type if a.description is None else Annotated[a.type, strawberry.argument(description=a.description)]
    annotations['return'] = return_type
    fn.__annotations__ = annotations
    return fn


def _wrap(output_cls: type, record: Optional[Mapping[str, Any]]) -> Any:
    """Output object of ``output_cls`` carrying the stored ``record``."""
    if record is None:
        return None
    obj = output_cls.__new__(output_cls)
    obj._fieldql_record = record
    return obj


def get_operations(info: Any, schema: CompiledSchema) -> Operations:
    """Request-scoped :class:`Operations`, cached on the GraphQL context.

    The context may carry a ready ``fieldql_driver``; otherwise the SQLAlchemy
    session found in it is wrapped in a :class:`SQLAlchemyDriver`.
    """
    ops = context_get(info, _OPERATIONS_CONTEXT_KEY)
    if ops is not None and ops.schema is schema:
        return ops
    driver = context_get(info, _DRIVER_CONTEXT_KEY)
    if driver is None:
        session = get_db_session(info)
        if session is None:
            raise ValueError("No db_session in context")
        from .sql.driver import SQLAlchemyDriver
        driver = SQLAlchemyDriver(session, schema)
    ops = schema.operations(driver)
    context_set(info, _OPERATIONS_CONTEXT_KEY, ops)
    return ops


def _output_resolver(schema: CompiledSchema, desc: FieldDescriptor, name: str, output: FieldOutput) -> Callable[..., Any]:
    list_key, key = desc.list_key, desc.key
    main = name == key
    target_cls = None
    if main and isinstance(desc.db_field, RelationDBField):
        target_cls = schema.lists[desc.db_field.list].types.output

    async def impl(root, info, kwargs):
        record = root._fieldql_record
        ops = get_operations(info, schema).list(list_key)
        value = ops.field_value(record, key, info.context)
        if main:
            result = await desc.resolve_output(value, record, info.context, **kwargs)
        else:
            result = await desc.resolve_extra_output(name, value, record, info.context, **kwargs)
        if target_cls is None:
            return result
        if isinstance(result, (list, tuple)):
            return [_wrap(target_cls, r) for r in result]
        return _wrap(target_cls, result)

    return _make_resolver(f"resolve_{list_key}_{name}", output.args, impl, output.type)


def _decorate_output(schema: CompiledSchema, compiled: CompiledList) -> None:
    cls = compiled.types.output
    annotations: Dict[str, Any] = {}
    for desc in compiled.fields.values():
        outputs = {}
        if desc.output is not None:
            outputs[desc.key] = desc.output
        outputs.update(desc.extra_outputs)
        for name, output in outputs.items():
            fn = _output_resolver(schema, desc, name, output)
            setattr(cls, name, strawberry.field(resolver=fn, description=output.description))
    cls.__annotations__ = annotations
    strawberry.type(cls, description=compiled.description)


def _decorate_types(schema: CompiledSchema) -> None:
    for compiled in schema.lists.values():
        _decorate_operation_inputs(compiled)
        _decorate_relate_to(compiled.types)
        _decorate_output(schema, compiled)


class _StrawberryBuilder:
    """Root Query/Mutation fields over every list of a compiled schema."""

    def __init__(self, schema: CompiledSchema):
        self.schema = schema

    def _ops(self, info, list_key: str):
        return get_operations(info, self.schema).list(list_key)

    def _query_fields(self, compiled: CompiledList) -> Dict[str, Any]:
        key, names, types = compiled.key, compiled.names, compiled.types
        output = types.output
        fm = compiled.find_many_args
        many_params = {n: Arg(ann, fm.defaults[n]) for n, ann in fm.annotations.items()}

        async def find_many(root, info, kwargs):
            records = await self._ops(info, key).find_many(normalize_find_many_args(**kwargs), info.context)
            return [_wrap(output, r) for r in records]

        async def find_one(root, info, kwargs):
            record = await self._ops(info, key).find_one(input_to_dict(kwargs['where']), info.context)
            return _wrap(output, record)

        async def count(root, info, kwargs):
            where = normalize_find_many_args(where=kwargs['where']).where
            return await self._ops(info, key).count(where, info.context)

        return {
            names.plural: strawberry.field(
                resolver=_make_resolver(names.plural, many_params, find_many, List[output]),
                description=f"Search {key} records.",
            ),
            names.singular: strawberry.field(
                resolver=_make_resolver(names.singular, {'where': Arg(types.unique_where)}, find_one, Optional[output]),
                description=f"Read one {key} record.",
            ),
            names.count: strawberry.field(
                resolver=_make_resolver(names.count, {'where': many_params['where']}, count, int),
                description=f"Count {key} records.",
            ),
        }

    def _mutation_fields(self, compiled: CompiledList) -> Dict[str, Any]:
        key, names, types = compiled.key, compiled.names, compiled.types
        output = types.output

        async def create(root, info, kwargs):
            record = await self._ops(info, key).create_one(input_to_dict(kwargs['data']), info.context)
            return _wrap(output, record)

        async def update(root, info, kwargs):
            record = await self._ops(info, key).update_one(
                input_to_dict(kwargs['where']), input_to_dict(kwargs['data']), info.context,
            )
            return _wrap(output, record)

        return {
            names.create: strawberry.field(
                resolver=_make_resolver(names.create, {'data': Arg(types.create)}, create, Optional[output]),
                description=f"Create one {key} record.",
            ),
            names.update: strawberry.field(
                resolver=_make_resolver(
                    names.update,
                    {'where': Arg(types.unique_where), 'data': Arg(types.update)},
                    update,
                    Optional[output],
                ),
                description=f"Update one {key} record.",
            ),
        }

    def build(self, strawberry_config: Optional[StrawberryConfig] = None) -> strawberry.Schema:
        query_ns: Dict[str, Any] = {'__module__': __name__, '__annotations__': {}}
        mutation_ns: Dict[str, Any] = {'__module__': __name__, '__annotations__': {}}
        for compiled in self.schema.lists.values():
            query_ns.update(self._query_fields(compiled))
            mutation_ns.update(self._mutation_fields(compiled))
        Query = strawberry.type(type('Query', (), query_ns))
        Mutation = strawberry.type(type('Mutation', (), mutation_ns)) if self.schema.lists else None
        config = strawberry_config or StrawberryConfig(auto_camel_case=False)
        return strawberry.Schema(query=Query, mutation=Mutation, config=config)


__all__ = [
    'FieldQLSchema',
    'CompiledSchema',
    'CompiledList',
    'ListTypeSet',
    'RelateTo',
    'RelateToOne',
    'RelateToMany',
    'get_operations',
]

"""Field declaration and assembly.

A field type is declared with :func:`field_type` (storage kind plus GraphQL
wiring) and wrapped in a :class:`FieldSpec` placed on a list class. During
compilation :func:`assemble_field` checks the wiring against the derived
shapes and resolver obligations and produces an immutable
:class:`FieldDescriptor`, which also runs the field's resolvers at request
time.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from strawberry import UNSET

from ..errors import ConfigurationError, FieldQLError, ResolutionError
from .defaults import default_problems
from .kinds import db_field_problems
from .obligations import ObligationVerdict, resolver_obligation
from .shapes import (
    INPUT_OPERATIONS,
    Operation,
    Shape,
    UnsupportedArgumentType,
    conforms,
    derive_shape,
)

InputResolver = Callable[[Any, Any], Union[Any, Awaitable[Any]]]
OutputResolver = Callable[..., Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class Arg:
    """GraphQL argument declaration for one field operation.

    Attributes:
        type: Python/Strawberry annotation of the argument (``Optional[str]``,
            a filter input class, ...).
        default: GraphQL default value; ``UNSET`` means no default.
        description: Optional GraphQL description.
        assume_compatible: Explicit compatibility entry. ``True`` declares the
            argument values already valid for storage (resolver optional),
            ``False`` forces a resolver. ``None`` derives it from shapes.
    """

    type: Any
    default: Any = UNSET
    description: Optional[str] = None
    assume_compatible: Optional[bool] = None

    @property
    def has_default(self) -> bool:
        return self.default is not UNSET


@dataclass(frozen=True)
class FieldInput:
    """Argument plus resolver for one input operation.

    ``resolve(value, context)`` may be sync or async. ``arg=None`` is only
    meaningful for create: the field is not client-settable and the resolver
    produces the value from ``UNSET``.
    """

    arg: Optional[Arg] = None
    resolve: Optional[InputResolver] = None


@dataclass(frozen=True)
class FieldOutput:
    """Output wiring: ``resolve(value, item, context, **args)``.

    ``args`` declares GraphQL arguments of the output field, keyed by Python
    name; received values are passed to the resolver as keyword arguments.
    """

    type: Any
    resolve: Optional[OutputResolver] = None
    description: Optional[str] = None
    args: Mapping[str, Arg] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldType:
    """What a field type builder returns for one field."""

    db_field: Any
    input: Mapping[Operation, FieldInput] = field(default_factory=dict)
    output: Optional[FieldOutput] = None
    extra_outputs: Mapping[str, FieldOutput] = field(default_factory=dict)
    views: Optional[str] = None
    admin_meta: Optional[Callable[[], Mapping[str, Any]]] = None
    label: Optional[str] = None


def field_type(db_field: Any) -> Callable[..., FieldType]:
    """Bind a storage field kind; call the result with the GraphQL wiring.

    Example:
        field_type(ScalarDBField('String', mode='required'))(
            input={'create': FieldInput(Arg(str))},
            output=FieldOutput(str),
        )
    """

    def build(
        *,
        input: Optional[Mapping[Any, FieldInput]] = None,
        output: Optional[FieldOutput] = None,
        extra_outputs: Optional[Mapping[str, FieldOutput]] = None,
        views: Optional[str] = None,
        admin_meta: Optional[Callable[[], Mapping[str, Any]]] = None,
        label: Optional[str] = None,
    ) -> FieldType:
        inputs: Dict[Any, FieldInput] = {}
        for op, wiring in (input or {}).items():
            try:
                op = Operation(op)
            except ValueError:
                pass  # reported by assemble_field
            inputs[op] = wiring
        return FieldType(
            db_field=db_field,
            input=MappingProxyType(inputs),
            output=output,
            extra_outputs=MappingProxyType(dict(extra_outputs or {})),
            views=views,
            admin_meta=admin_meta,
            label=label,
        )

    return build


# --- Build context -------------------------------------------------------

@dataclass(frozen=True)
class BuildContext:
    """State shared by every field builder of one compile pass.

    Attributes:
        lists: list key -> :class:`~fieldql.registry.ListTypeSet`. Type sets
            hold placeholder classes until the pass finishes, so builders may
            reference any list, including their own.
        provider: Storage provider name (``sqlite``, ``postgresql``, ...).
        storage: Named storage configuration entries.
    """

    lists: Mapping[str, Any]
    provider: str = 'sqlite'
    storage: Mapping[str, Any] = field(default_factory=dict)

    def get_storage(self, key: str) -> Any:
        try:
            return self.storage[key]
        except KeyError:
            raise KeyError(f"Unknown storage configuration {key!r}") from None


@dataclass(frozen=True)
class FieldData:
    ctx: BuildContext
    list_key: str
    field_key: str

    @property
    def lists(self) -> Mapping[str, Any]:
        return self.ctx.lists

    @property
    def provider(self) -> str:
        return self.ctx.provider

    def get_storage(self, key: str) -> Any:
        return self.ctx.get_storage(key)


class FieldSpec:
    """Field declaration placed on a list class.

    Wraps a builder ``FieldData -> FieldType`` that runs during compilation,
    once every list has been registered. Built-in factories in
    :mod:`fieldql.field_types` return ``FieldSpec`` instances.
    """

    def __init__(self, builder: Callable[[FieldData], FieldType], *, label: Optional[str] = None):
        self.builder = builder
        self.label = label
        self.name: Optional[str] = None

    def __set_name__(self, owner, name):  # pragma: no cover - simple
        self.name = name

    def build(self, data: FieldData) -> FieldType:
        return self.builder(data)


# --- Descriptor ----------------------------------------------------------

async def _call(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def _humanize(key: str) -> str:
    out = []
    for i, ch in enumerate(key):
        if ch.isupper() and i:
            out.append(' ')
        out.append(ch)
    text = ''.join(out).replace('_', ' ').strip()
    return text[:1].upper() + text[1:]


@dataclass(frozen=True)
class FieldDescriptor:
    """Immutable result of assembling one field.

    ``shapes`` holds the derived shape of every operation and ``obligations``
    the resolver verdict of every wired input operation.
    """

    list_key: str
    key: str
    db_field: Any
    inputs: Mapping[Operation, FieldInput]
    output: Optional[FieldOutput]
    extra_outputs: Mapping[str, FieldOutput]
    shapes: Mapping[Operation, Shape]
    obligations: Mapping[Operation, ObligationVerdict]
    label: str
    views: Optional[str] = None
    admin_meta_supplier: Optional[Callable[[], Mapping[str, Any]]] = None

    @property
    def path(self):
        return (self.list_key, self.key)

    def arg(self, operation: Operation) -> Optional[Arg]:
        wiring = self.inputs.get(Operation(operation))
        return wiring.arg if wiring is not None else None

    def accepts(self, operation: Operation) -> bool:
        return Operation(operation) in self.inputs

    def admin_meta(self) -> Dict[str, Any]:
        meta: Dict[str, Any] = {'label': self.label, 'views': self.views}
        if self.admin_meta_supplier is not None:
            meta.update(self.admin_meta_supplier() or {})
        return meta

    async def resolve_input(self, operation: Operation, value: Any, context: Any = None) -> Any:
        """Convert an argument value into the storage value for ``operation``.

        Raises:
            ResolutionError: The resolver failed or returned a value outside
                the field's target shape. Other fieldql errors propagate as-is.
        """
        operation = Operation(operation)
        wiring = self.inputs.get(operation)
        if wiring is None:
            if value is UNSET:
                return UNSET
            raise ResolutionError(f"field does not accept {operation.value} input", path=self.path)
        if wiring.resolve is None:
            result = value
        else:
            try:
                result = await _call(wiring.resolve, value, context)
            except FieldQLError:
                raise
            except Exception as e:
                raise ResolutionError(f"{operation.value} resolver failed: {e}", path=self.path) from e
        target = self.shapes[operation]
        if not conforms(target, result):
            raise ResolutionError(
                f"{operation.value} resolver returned {result!r}, expected {target!r}", path=self.path,
            )
        return result

    async def resolve_output(self, value: Any, item: Any = None, context: Any = None, **args: Any) -> Any:
        """Convert a stored value into the GraphQL output value."""
        target = self.shapes[Operation.OUTPUT]
        if not conforms(target, value):
            raise ResolutionError(f"stored value {value!r} is not a valid {target!r}", path=self.path)
        if self.output is None or self.output.resolve is None:
            return value
        try:
            return await _call(self.output.resolve, value, item, context, **args)
        except FieldQLError:
            raise
        except Exception as e:
            raise ResolutionError(f"output resolver failed: {e}", path=self.path) from e

    async def resolve_extra_output(self, name: str, value: Any, item: Any = None, context: Any = None, **args: Any) -> Any:
        """Resolve the additional output field ``name`` (for example a related count)."""
        output = self.extra_outputs[name]
        if output.resolve is None:
            return value
        try:
            return await _call(output.resolve, value, item, context, **args)
        except FieldQLError:
            raise
        except Exception as e:
            raise ResolutionError(f"{name} resolver failed: {e}", path=self.path) from e


def assemble_field(spec: FieldSpec, data: FieldData) -> FieldDescriptor:
    """Build ``spec`` and check it into an immutable :class:`FieldDescriptor`.

    Raises:
        ConfigurationError: Listing every problem of this field.
    """
    where = f"{data.list_key}.{data.field_key}"
    built = spec.build(data)
    db_field = built.db_field
    problems: List[str] = [f"{where}: {p}" for p in db_field_problems(db_field)]
    if problems:
        # Shapes of a structurally illegal field are undefined.
        raise ConfigurationError(problems)
    problems.extend(f"{where}: {p}" for p in default_problems(db_field))

    shapes = MappingProxyType({op: derive_shape(db_field, op) for op in Operation})
    obligations: Dict[Operation, ObligationVerdict] = {}
    inputs: Dict[Operation, FieldInput] = {}
    for op, wiring in built.input.items():
        if op not in INPUT_OPERATIONS:
            problems.append(f"{where}: {op!r} is not an input operation")
            continue
        if wiring.arg is None and op is not Operation.CREATE:
            problems.append(f"{where}: {op.value} input needs an argument")
            continue
        try:
            verdict = resolver_obligation(db_field, op, wiring.arg)
        except UnsupportedArgumentType as e:
            problems.append(f"{where}: {op.value} argument: {e}")
            continue
        if verdict.mandatory and wiring.resolve is None:
            problems.append(f"{where}: {op.value} resolver is mandatory ({verdict.reason})")
        obligations[op] = verdict
        inputs[op] = wiring
    if problems:
        raise ConfigurationError(problems)

    return FieldDescriptor(
        list_key=data.list_key,
        key=data.field_key,
        db_field=db_field,
        inputs=MappingProxyType(inputs),
        output=built.output,
        extra_outputs=built.extra_outputs,
        shapes=shapes,
        obligations=MappingProxyType(obligations),
        label=built.label or spec.label or _humanize(data.field_key),
        views=built.views,
        admin_meta_supplier=built.admin_meta,
    )

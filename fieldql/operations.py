"""Request-time create/update/query pipeline over a storage driver.

Field resolvers of one record run concurrently and all finish before the
record reaches storage. Output resolution keeps sibling values when one
field fails.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from strawberry import UNSET

from .core.args import FindManyArgsValue, normalize_find_many_args
from .core.defaults import apply_create_defaults, stamp_updated_at
from .core.kinds import MultiDBField, NoDBField, RelationDBField, RelationMode
from .core.relations import (
    ManyRelationPlan,
    OneRelationAction,
    SetPolicy,
    plan_many_relation_input,
    validate_one_relation_input,
)
from .core.shapes import Operation
from .errors import FieldQLError, NotFoundError, QueryArgumentError, ResolutionError

if TYPE_CHECKING:  # pragma: no cover
    from .registry import CompiledList, CompiledSchema

_logger = logging.getLogger("fieldql")

Record = Dict[str, Any]
LOGICAL_KEYS = ('AND', 'OR', 'NOT')


class StorageDriver(Protocol):
    """What request-time operations need from storage.

    ``where`` arguments are already resolved: field keys map to filter
    mappings (or ``None``), relation keys to resolved target wheres (one) or
    ``{every|some|none: where}`` (many), and ``AND``/``OR``/``NOT`` to lists
    of wheres. Records are mappings keyed by field key and always carry
    ``id``.
    """

    async def find_many(self, list_key: str, args: FindManyArgsValue) -> List[Record]: ...

    async def count(self, list_key: str, where: Mapping[str, Any]) -> int: ...

    async def find_one(self, list_key: str, where: Mapping[str, Any]) -> Optional[Record]: ...

    async def create(self, list_key: str, data: Mapping[str, Any]) -> Record: ...

    async def update(self, list_key: str, item_id: Any, data: Mapping[str, Any]) -> Record: ...

    async def find_related(self, list_key: str, field_key: str, item_id: Any, args: FindManyArgsValue) -> List[Record]: ...

    async def count_related(self, list_key: str, field_key: str, item_id: Any, where: Mapping[str, Any]) -> int: ...

    async def connect(self, list_key: str, field_key: str, item_id: Any, target_ids: Sequence[Any]) -> None: ...

    async def disconnect(self, list_key: str, field_key: str, item_id: Any, target_ids: Optional[Sequence[Any]]) -> None: ...

    async def set_related(self, list_key: str, field_key: str, item_id: Any, target_ids: Sequence[Any]) -> None: ...


async def _gather_field_results(list_key: str, jobs: Dict[str, Any]) -> Dict[str, Any]:
    """Await per-field coroutines concurrently; raise after all have finished.

    Non-resolution fieldql errors win over resolution errors; several
    resolution errors are reported together.
    """
    if not jobs:
        return {}
    keys = list(jobs)
    results = await asyncio.gather(*jobs.values(), return_exceptions=True)
    values: Dict[str, Any] = {}
    failures: List[ResolutionError] = []
    for key, result in zip(keys, results):
        if isinstance(result, BaseException):
            if isinstance(result, ResolutionError):
                failures.append(result)
                continue
            raise result
        values[key] = result
    if len(failures) == 1:
        raise failures[0]
    if failures:
        raise ResolutionError(f"{len(failures)} fields failed to resolve", path=(list_key,), errors=failures)
    return values


class RelatedItems:
    """Output accessor of a many relation."""

    def __init__(self, ops: 'ListOperations', field_key: str, item_id: Any, context: Any = None):
        self._ops = ops
        self._field_key = field_key
        self._item_id = item_id
        self._context = context

    def _target(self) -> 'ListOperations':
        return self._ops.related_ops(self._field_key)

    async def find_many(self, args: Optional[FindManyArgsValue] = None) -> List[Record]:
        target = self._target()
        resolved = await target.resolve_args(args or FindManyArgsValue(), self._context)
        return await self._ops.driver.find_related(
            self._ops.key, self._field_key, self._item_id, resolved,
        )

    async def count(self, where: Optional[Mapping[str, Any]] = None) -> int:
        resolved = await self._target().resolve_where(where or {}, self._context)
        return await self._ops.driver.count_related(self._ops.key, self._field_key, self._item_id, resolved)


class ListOperations:
    """Create/update/query pipeline for one list."""

    def __init__(self, runtime: 'Operations', compiled: 'CompiledList'):
        self.runtime = runtime
        self.compiled = compiled
        self.key = compiled.key

    @property
    def driver(self) -> StorageDriver:
        return self.runtime.driver

    @property
    def fields(self):
        return self.compiled.fields

    def related_ops(self, field_key: str) -> 'ListOperations':
        return self.runtime.list(self.fields[field_key].db_field.list)

    # --- argument resolution -------------------------------------------

    async def resolve_where(self, where: Optional[Mapping[str, Any]], context: Any = None) -> Dict[str, Any]:
        """Run where resolvers, recursing into relation targets."""
        if not where:
            return {}
        jobs: Dict[str, Any] = {}
        for key, value in where.items():
            if value is UNSET:
                continue
            if key in LOGICAL_KEYS:
                jobs[key] = self._resolve_logical(key, value, context)
                continue
            desc = self.fields.get(key)
            if desc is None or not desc.accepts(Operation.WHERE):
                raise QueryArgumentError(f"{self.key}.{key} cannot be filtered")
            jobs[key] = self._resolve_field_where(desc, value, context)
        return await _gather_field_results(self.key, jobs)

    async def _resolve_logical(self, key: str, value: Any, context: Any) -> List[Dict[str, Any]]:
        items = value if isinstance(value, (list, tuple)) else [value]
        return [await self.resolve_where(item, context) for item in items if item is not None]

    async def _resolve_field_where(self, desc, value: Any, context: Any) -> Any:
        resolved = await desc.resolve_input(Operation.WHERE, value, context)
        db_field = desc.db_field
        if not isinstance(db_field, RelationDBField) or resolved is None:
            return resolved
        target = self.runtime.list(db_field.list)
        if db_field.mode is RelationMode.ONE:
            return await target.resolve_where(resolved, context)
        out = {}
        for quantifier, sub in resolved.items():
            if sub is not None:
                out[quantifier] = await target.resolve_where(sub, context)
        return out

    async def resolve_unique_where(self, where: Optional[Mapping[str, Any]], context: Any = None) -> Dict[str, Any]:
        """Resolve a unique-where naming exactly one field."""
        supplied = {k: v for k, v in (where or {}).items() if v is not None and v is not UNSET}
        if len(supplied) != 1:
            raise QueryArgumentError(
                f"{self.key} unique where must name exactly one field, got {sorted(supplied)}"
            )
        (key, value), = supplied.items()
        desc = self.fields.get(key)
        if desc is None or not desc.accepts(Operation.UNIQUE_WHERE):
            raise QueryArgumentError(f"{self.key}.{key} is not unique")
        return {key: await desc.resolve_input(Operation.UNIQUE_WHERE, value, context)}

    async def resolve_order_by(self, order_by: Sequence[Mapping[str, str]], context: Any = None) -> Tuple[Dict[str, Any], ...]:
        out = []
        for entry in order_by:
            (key, direction), = entry.items()
            desc = self.fields.get(key)
            if desc is None or not desc.accepts(Operation.ORDER_BY):
                raise QueryArgumentError(f"{self.key}.{key} cannot be ordered by")
            out.append({key: await desc.resolve_input(Operation.ORDER_BY, direction, context)})
        return tuple(out)

    async def resolve_args(self, args: FindManyArgsValue, context: Any = None) -> FindManyArgsValue:
        where = await self.resolve_where(args.where, context)
        order_by = await self.resolve_order_by(args.order_by, context)
        cursor = None
        if args.cursor is not None:
            cursor = await self.resolve_unique_where(args.cursor, context)
        return FindManyArgsValue(where=where, order_by=order_by, take=args.take, skip=args.skip, cursor=cursor)

    # --- queries -------------------------------------------------------

    async def find_many(self, args: Optional[FindManyArgsValue] = None, context: Any = None) -> List[Record]:
        resolved = await self.resolve_args(args or normalize_find_many_args(), context)
        return await self.driver.find_many(self.key, resolved)

    async def find_one(self, where: Mapping[str, Any], context: Any = None) -> Optional[Record]:
        unique = await self.resolve_unique_where(where, context)
        return await self.driver.find_one(self.key, unique)

    async def count(self, where: Optional[Mapping[str, Any]] = None, context: Any = None) -> int:
        return await self.driver.count(self.key, await self.resolve_where(where, context))

    async def _require(self, where: Mapping[str, Any], context: Any) -> Record:
        unique = await self.resolve_unique_where(where, context)
        record = await self.driver.find_one(self.key, unique)
        if record is None:
            raise NotFoundError(self.key, where)
        return record

    # --- mutations -----------------------------------------------------

    async def _resolve_data(self, operation: Operation, data: Mapping[str, Any], context: Any) -> Dict[str, Any]:
        unknown = [k for k in data if k not in self.fields or not self.fields[k].accepts(operation)]
        if unknown:
            raise QueryArgumentError(f"{self.key} does not accept {operation.value} input for {unknown}")
        jobs = {}
        for key, desc in self.fields.items():
            if not desc.accepts(operation):
                continue
            value = data.get(key, UNSET)
            # Create resolvers always run so that computed fields can fill in.
            if value is UNSET and operation is not Operation.CREATE:
                continue
            jobs[key] = desc.resolve_input(operation, value, context)
        resolved = await _gather_field_results(self.key, jobs)
        return {k: v for k, v in resolved.items() if v is not UNSET}

    def _split(self, operation: Operation, resolved: Mapping[str, Any]):
        values: Dict[str, Any] = {}
        relations: Dict[str, Any] = {}
        for key, value in resolved.items():
            db_field = self.fields[key].db_field
            if isinstance(db_field, RelationDBField):
                if db_field.mode is RelationMode.ONE:
                    action = validate_one_relation_input(value, operation)
                else:
                    action = plan_many_relation_input(value, operation, self.runtime.set_policy)
                relations[key] = action
            elif isinstance(db_field, MultiDBField):
                values[key] = {k: v for k, v in value.items() if v is not UNSET}
            elif not isinstance(db_field, NoDBField):
                values[key] = value
        return values, relations

    async def create_one(self, data: Mapping[str, Any], context: Any = None) -> Record:
        """Resolve inputs, apply defaults, store, then link relations."""
        resolved = await self._resolve_data(Operation.CREATE, data, context)
        values, relations = self._split(Operation.CREATE, resolved)
        apply_create_defaults(self.compiled.storage_fields, values)
        record = await self.driver.create(self.key, values)
        _logger.debug("fieldql: created %s id=%r", self.key, record.get('id'))
        await self._apply_relations(record['id'], relations, context)
        return await self.driver.find_one(self.key, {'id': record['id']}) or record

    async def update_one(self, where: Mapping[str, Any], data: Mapping[str, Any], context: Any = None) -> Record:
        existing = await self._require(where, context)
        resolved = await self._resolve_data(Operation.UPDATE, data, context)
        values, relations = self._split(Operation.UPDATE, resolved)
        stamp_updated_at(self.compiled.storage_fields, values)
        if values:
            await self.driver.update(self.key, existing['id'], values)
        await self._apply_relations(existing['id'], relations, context)
        return await self.driver.find_one(self.key, {'id': existing['id']}) or existing

    async def _target_ids(self, target: 'ListOperations', uniques: Sequence[Mapping[str, Any]], context: Any, *, missing_ok: bool = False) -> List[Any]:
        ids = []
        for where in uniques:
            unique = await target.resolve_unique_where(where, context)
            record = await self.driver.find_one(target.key, unique)
            if record is None:
                if missing_ok:
                    _logger.warning("fieldql: ignoring disconnect of missing %s %r", target.key, dict(where))
                    continue
                raise NotFoundError(target.key, where)
            ids.append(record['id'])
        return ids

    async def _apply_relations(self, item_id: Any, relations: Mapping[str, Any], context: Any) -> None:
        for key, action in relations.items():
            target = self.related_ops(key)
            if isinstance(action, ManyRelationPlan):
                await self._apply_many(item_id, key, target, action, context)
            elif isinstance(action, OneRelationAction):
                await self._apply_one(item_id, key, target, action, context)

    async def _apply_one(self, item_id, key, target: 'ListOperations', action: OneRelationAction, context) -> None:
        if action.verb == 'disconnect':
            await self.driver.disconnect(self.key, key, item_id, None)
            return
        if action.verb == 'connect':
            (target_id,) = await self._target_ids(target, [action.value], context)
        else:
            target_id = (await target.create_one(action.value, context))['id']
        await self.driver.connect(self.key, key, item_id, [target_id])

    async def _apply_many(self, item_id, key, target: 'ListOperations', plan: ManyRelationPlan, context) -> None:
        for verb, items in plan.steps():
            if verb == 'set':
                ids = await self._target_ids(target, items, context)
                await self.driver.set_related(self.key, key, item_id, ids)
            elif verb == 'disconnect':
                ids = await self._target_ids(target, items, context, missing_ok=True)
                if ids:
                    await self.driver.disconnect(self.key, key, item_id, ids)
            elif verb == 'connect':
                ids = await self._target_ids(target, items, context)
                await self.driver.connect(self.key, key, item_id, ids)
            else:
                ids = [(await target.create_one(item, context))['id'] for item in items]
                await self.driver.connect(self.key, key, item_id, ids)

    # --- output --------------------------------------------------------

    def field_value(self, record: Mapping[str, Any], key: str, context: Any = None) -> Any:
        """Stored value of ``key`` as the output shape expects it."""
        db_field = self.fields[key].db_field
        if isinstance(db_field, NoDBField):
            return UNSET
        if isinstance(db_field, RelationDBField):
            if db_field.mode is RelationMode.MANY:
                return RelatedItems(self, key, record['id'], context)
            return self._one_accessor(key, record['id'], context)
        return record.get(key)

    def _one_accessor(self, key: str, item_id: Any, context: Any):
        async def related():
            records = await self.driver.find_related(self.key, key, item_id, FindManyArgsValue(take=1))
            return records[0] if records else None
        return related

    async def resolve_output(self, record: Mapping[str, Any], context: Any = None) -> Tuple[Dict[str, Any], Dict[str, ResolutionError]]:
        """Resolve every output field of ``record``.

        Returns ``(values, errors)``: a failing field lands in ``errors`` and
        is ``None`` in ``values``; sibling fields still resolve.
        """
        keys = [k for k, d in self.fields.items() if d.output is not None]
        results = await asyncio.gather(
            *(self.fields[k].resolve_output(self.field_value(record, k, context), record, context) for k in keys),
            return_exceptions=True,
        )
        values: Dict[str, Any] = {}
        errors: Dict[str, ResolutionError] = {}
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                if not isinstance(result, FieldQLError):
                    raise result
                if not isinstance(result, ResolutionError):
                    result = ResolutionError(str(result), path=(self.key, key), errors=[result])
                errors[key] = result
                values[key] = None
            else:
                values[key] = result
        return values, errors


class Operations:
    """Request-time entry point binding a compiled schema to a storage driver."""

    def __init__(self, schema: 'CompiledSchema', driver: StorageDriver, *, set_policy: Optional[SetPolicy] = None):
        self.schema = schema
        self.driver = driver
        self.set_policy = SetPolicy(set_policy or schema.set_policy)
        self._lists: Dict[str, ListOperations] = {}

    def list(self, key: str) -> ListOperations:
        ops = self._lists.get(key)
        if ops is None:
            ops = self._lists[key] = ListOperations(self, self.schema.lists[key])
        return ops

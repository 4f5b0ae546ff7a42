"""Relation composition.

Three concerns live here:

- the nested input/filter shapes a relation exposes (``relate_to_shapes``)
- request-time interpretation of relation inputs (connect/create/disconnect/
  set and the every/some/none quantifiers)
- compile-time storage plans: which table holds the key of each relation
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from strawberry import UNSET

from ..errors import AmbiguousRelationInputError, QueryArgumentError
from .kinds import RelationDBField, RelationMode
from .shapes import UNDEFINED, ListOf, ListTypeRef, Operation, Record, ScalarShape, ScalarType, union


class SetPolicy(str, Enum):
    """How ``set`` combines with other verbs in a many-relation update.

    REJECT: ``set`` together with connect/disconnect/create is an error.
    SET_FIRST: apply ``set`` first, then disconnect, connect and create.
    """

    REJECT = 'reject'
    SET_FIRST = 'set_first'


class Quantifier(str, Enum):
    EVERY = 'every'
    SOME = 'some'
    NONE = 'none'


# --- Shapes --------------------------------------------------------------

def _optional(shape):
    return union(shape, UNDEFINED)


@dataclass(frozen=True)
class RelateToShapes:
    one_create: Record
    one_update: Record
    many_where: Record
    many_create: Record
    many_update: Record


def relate_to_shapes(target: str) -> RelateToShapes:
    """Nested relation input shapes pointing at list ``target``."""
    create = ListTypeRef(target, 'create')
    unique = ListTypeRef(target, 'uniqueWhere')
    where = ListTypeRef(target, 'where')
    one_create = Record((('create', _optional(create)), ('connect', _optional(unique))))
    return RelateToShapes(
        one_create=one_create,
        one_update=Record(one_create.fields + (('disconnect', _optional(ScalarShape(ScalarType.BOOLEAN))),)),
        many_where=Record(tuple((q.value, _optional(where)) for q in Quantifier)),
        many_create=Record((
            ('create', _optional(ListOf(create))),
            ('connect', _optional(ListOf(unique))),
        )),
        many_update=Record((
            ('connect', _optional(ListOf(unique))),
            ('create', _optional(ListOf(create))),
            ('disconnect', _optional(ListOf(unique))),
            ('set', _optional(ListOf(unique))),
        )),
    )


# --- Request-time inputs -------------------------------------------------

def _present(value: Mapping[str, Any], key: str) -> bool:
    v = value.get(key, UNSET)
    return v is not UNSET and v is not None


@dataclass(frozen=True)
class OneRelationAction:
    verb: str
    value: Any


def validate_one_relation_input(value: Optional[Mapping[str, Any]], operation: Operation) -> Optional[OneRelationAction]:
    """Interpret a one-relation input; ``None`` means leave the link untouched.

    Raises:
        AmbiguousRelationInputError: more than one of create/connect/disconnect.
    """
    if value is None or value is UNSET:
        return None
    operation = Operation(operation)
    allowed = ('create', 'connect') if operation is Operation.CREATE else ('create', 'connect', 'disconnect')
    unknown = [k for k in value if k not in allowed]
    if unknown:
        raise QueryArgumentError(f"Unsupported one-relation input keys for {operation.value}: {unknown}")
    verbs = [v for v in allowed if _present(value, v)]
    if 'disconnect' in verbs and value['disconnect'] is False:
        verbs.remove('disconnect')
    if len(verbs) > 1:
        raise AmbiguousRelationInputError(
            f"Only one of {', '.join(allowed)} may be provided for a one relation, got {', '.join(verbs)}",
            verbs=verbs,
        )
    if not verbs:
        return None
    return OneRelationAction(verbs[0], value[verbs[0]])


@dataclass(frozen=True)
class ManyRelationPlan:
    """Normalised many-relation mutation; apply in ``steps()`` order."""

    set: Optional[Tuple[Mapping[str, Any], ...]] = None
    disconnect: Tuple[Mapping[str, Any], ...] = ()
    connect: Tuple[Mapping[str, Any], ...] = ()
    create: Tuple[Mapping[str, Any], ...] = ()

    def steps(self) -> List[Tuple[str, Tuple[Mapping[str, Any], ...]]]:
        out: List[Tuple[str, Tuple[Mapping[str, Any], ...]]] = []
        if self.set is not None:
            out.append(('set', self.set))
        for verb in ('disconnect', 'connect', 'create'):
            items = getattr(self, verb)
            if items:
                out.append((verb, items))
        return out


def plan_many_relation_input(
    value: Optional[Mapping[str, Any]],
    operation: Operation,
    policy: SetPolicy = SetPolicy.REJECT,
) -> ManyRelationPlan:
    """Interpret a many-relation input under ``policy``.

    Raises:
        AmbiguousRelationInputError: ``set`` combined with other verbs when
            the policy forbids it.
    """
    if value is None or value is UNSET:
        return ManyRelationPlan()
    operation = Operation(operation)
    allowed = ('create', 'connect') if operation is Operation.CREATE else ('connect', 'create', 'disconnect', 'set')
    unknown = [k for k in value if k not in allowed]
    if unknown:
        raise QueryArgumentError(f"Unsupported many-relation input keys for {operation.value}: {unknown}")
    items = {verb: tuple(value[verb]) for verb in allowed if _present(value, verb)}
    if 'set' in items:
        others = [verb for verb in ('connect', 'disconnect', 'create') if items.get(verb)]
        if others and SetPolicy(policy) is SetPolicy.REJECT:
            raise AmbiguousRelationInputError(
                f"set cannot be combined with {', '.join(others)} in one relation update",
                verbs=['set'] + others,
            )
    return ManyRelationPlan(
        set=items.get('set'),
        disconnect=items.get('disconnect', ()),
        connect=items.get('connect', ()),
        create=items.get('create', ()),
    )


def evaluate_quantifier(quantifier: Quantifier, related: Iterable[Any], predicate: Callable[[Any], bool]) -> bool:
    """every: all match (true when empty); some: one matches; none: no match."""
    quantifier = Quantifier(quantifier)
    if quantifier is Quantifier.EVERY:
        return all(predicate(r) for r in related)
    if quantifier is Quantifier.SOME:
        return any(predicate(r) for r in related)
    return not any(predicate(r) for r in related)


# --- Storage plans -------------------------------------------------------

class RelationStorage(str, Enum):
    LOCAL_FK = 'local_fk'
    REMOTE_FK = 'remote_fk'
    JOIN = 'join'


@dataclass(frozen=True)
class RelationPlan:
    """Where the link of one relation field lives.

    LOCAL_FK: ``column`` on this list's table references the target.
    REMOTE_FK: ``column`` on the target's table references this list.
    JOIN: ``table`` rows pair ``self_column`` (this list) with
        ``other_column`` (the target).
    """

    list: str
    field: str
    target: str
    mode: RelationMode
    storage: RelationStorage
    column: Optional[str] = None
    table: Optional[str] = None
    self_column: Optional[str] = None
    other_column: Optional[str] = None
    unique: bool = False


def _fk_column(field_key: str, rel: RelationDBField) -> str:
    fk = rel.foreign_key
    return (fk.map if fk is not None and fk.map else None) or f"{field_key}_id"


def plan_relations(
    lists: Mapping[str, Mapping[str, Any]],
) -> Tuple[Dict[Tuple[str, str], RelationPlan], List[str]]:
    """Resolve every relation of the schema into a :class:`RelationPlan`.

    Args:
        lists: list key -> field key -> storage field kind.

    Returns:
        ``(plans, problems)``; plans are keyed by ``(list_key, field_key)``.
    """
    plans: Dict[Tuple[str, str], RelationPlan] = {}
    problems: List[str] = []
    for list_key, fields in lists.items():
        for field_key, rel in fields.items():
            if not isinstance(rel, RelationDBField):
                continue
            where = f"{list_key}.{field_key}"
            if rel.list not in lists:
                problems.append(f"{where}: relation target list {rel.list!r} does not exist")
                continue
            other: Optional[RelationDBField] = None
            if rel.field is not None:
                candidate = lists[rel.list].get(rel.field)
                if not isinstance(candidate, RelationDBField):
                    problems.append(f"{where}: {rel.list}.{rel.field} is not a relation field")
                    continue
                if candidate.list != list_key or candidate.field != field_key:
                    problems.append(
                        f"{where}: {rel.list}.{rel.field} must point back to {where}"
                    )
                    continue
                other = candidate
            plan = _plan_one(list_key, field_key, rel, other, where, problems)
            if plan is not None:
                plans[(list_key, field_key)] = plan
    return plans, problems


def _plan_one(list_key, field_key, rel, other, where, problems) -> Optional[RelationPlan]:
    base = dict(list=list_key, field=field_key, target=rel.list, mode=rel.mode)
    if rel.mode is RelationMode.ONE:
        if other is not None and other.mode is RelationMode.ONE:
            if rel.owns_foreign_key == other.owns_foreign_key:
                problems.append(
                    f"{where}: exactly one side of a one-to-one relation must set foreign_key"
                )
                return None
            if not rel.owns_foreign_key:
                return RelationPlan(
                    storage=RelationStorage.REMOTE_FK, column=_fk_column(rel.field, other), unique=True, **base
                )
            return RelationPlan(storage=RelationStorage.LOCAL_FK, column=_fk_column(field_key, rel), unique=True, **base)
        return RelationPlan(storage=RelationStorage.LOCAL_FK, column=_fk_column(field_key, rel), **base)
    if other is not None and other.mode is RelationMode.ONE:
        return RelationPlan(storage=RelationStorage.REMOTE_FK, column=_fk_column(rel.field, other), **base)
    if other is None:
        table = rel.relation_name or f"_{list_key}_{field_key}"
        return RelationPlan(storage=RelationStorage.JOIN, table=table, self_column='A', other_column='B', **base)
    if rel.relation_name and other.relation_name and rel.relation_name != other.relation_name:
        problems.append(f"{where}: relation_name {rel.relation_name!r} differs from the other side's {other.relation_name!r}")
        return None
    first, second = sorted([(list_key, field_key), (rel.list, rel.field)])
    table = rel.relation_name or other.relation_name or f"_{first[0]}_{first[1]}"
    is_first = (list_key, field_key) == first
    return RelationPlan(
        storage=RelationStorage.JOIN,
        table=table,
        self_column='A' if is_first else 'B',
        other_column='B' if is_first else 'A',
        **base,
    )

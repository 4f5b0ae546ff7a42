from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence

from sqlalchemy import and_, exists, false, not_, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from ..core.filters import FILTER_MODIFIERS, operator_for
from ..core.kinds import EnumDBField, RelationDBField, RelationMode, ScalarDBField, ScalarType
from ..core.relations import Quantifier, RelationStorage
from ..operations import LOGICAL_KEYS
from .tables import SchemaTables

if TYPE_CHECKING:  # pragma: no cover
    from ..registry import CompiledSchema

# Centralized SQL builders. Keep the driver thin and DRY.


class WhereBuilder:
    """Translate resolved where mappings into SQLAlchemy expressions.

    Relation filters become correlated subqueries against aliases of the
    target table, so self relations work without special casing.
    """

    def __init__(self, schema: 'CompiledSchema', tables: SchemaTables):
        self.schema = schema
        self.tables = tables

    # --- entry points ----------------------------------------------------

    def build(self, list_key: str, where: Optional[Mapping[str, Any]], table=None) -> ColumnElement:
        table = table if table is not None else self.tables.table(list_key)
        parts: List[ColumnElement] = []
        for key, value in (where or {}).items():
            if key in LOGICAL_KEYS:
                parts.append(self._logical(list_key, key, value, table))
                continue
            parts.append(self._field(list_key, key, value, table))
        if not parts:
            return true()
        return and_(*parts)

    def related(self, list_key: str, field_key: str, owner_id: Any, target_table) -> ColumnElement:
        """Condition on ``target_table`` selecting the records linked to ``owner_id``."""
        plan = self.schema.relations[(list_key, field_key)]
        if plan.storage is RelationStorage.LOCAL_FK:
            owner = self.tables.table(list_key).alias()
            return target_table.c.id == (
                select(owner.c[plan.column]).where(owner.c.id == owner_id).scalar_subquery()
            )
        if plan.storage is RelationStorage.REMOTE_FK:
            return target_table.c[plan.column] == owner_id
        join = self.tables.join_tables[plan.table]
        return target_table.c.id.in_(
            select(join.c[plan.other_column]).where(join.c[plan.self_column] == owner_id)
        )

    # --- pieces ----------------------------------------------------------

    def _logical(self, list_key: str, key: str, value: Sequence[Mapping[str, Any]], table) -> ColumnElement:
        subs = [self.build(list_key, w, table) for w in value]
        if key == 'AND':
            return and_(true(), *subs)
        if key == 'OR':
            return or_(false(), *subs)
        return not_(or_(false(), *subs))

    def _field(self, list_key: str, key: str, value: Any, table) -> ColumnElement:
        db_field = self.schema.lists[list_key].fields[key].db_field
        if isinstance(db_field, RelationDBField):
            return self._relation(list_key, key, db_field, value, table)
        column = table.c[self.tables.column_name(list_key, key)]
        string_like = isinstance(db_field, EnumDBField) or (
            isinstance(db_field, ScalarDBField) and db_field.scalar is ScalarType.STRING
        )
        return self._scalar_filter(column, value, string_like)

    def _scalar_filter(self, column, value: Optional[Mapping[str, Any]], string_like: bool) -> ColumnElement:
        if value is None:
            return column.is_(None)
        insensitive = string_like and value.get('mode') == 'insensitive'
        parts: List[ColumnElement] = []
        for op, arg in value.items():
            if op in FILTER_MODIFIERS:
                continue
            parts.append(operator_for(op, insensitive=insensitive)(column, arg))
        negated = value.get('not')
        if 'not' in value:
            if negated is None:
                parts.append(column.isnot(None))
            else:
                if insensitive and 'mode' not in negated:
                    negated = dict(negated, mode='insensitive')
                parts.append(not_(self._scalar_filter(column, negated, string_like)))
        return and_(true(), *parts)

    def _linked(self, list_key: str, key: str, table, target):
        """Condition tying rows of ``target`` (an alias) to the outer ``table``."""
        plan = self.schema.relations[(list_key, key)]
        if plan.storage is RelationStorage.LOCAL_FK:
            return target.c.id == table.c[plan.column]
        if plan.storage is RelationStorage.REMOTE_FK:
            return target.c[plan.column] == table.c.id
        join = self.tables.join_tables[plan.table].alias()
        return exists(
            select(join.c[plan.self_column]).where(
                join.c[plan.self_column] == table.c.id,
                join.c[plan.other_column] == target.c.id,
            )
        )

    def _relation(self, list_key: str, key: str, db_field: RelationDBField, value: Any, table) -> ColumnElement:
        target = self.tables.table(db_field.list).alias()
        linked = self._linked(list_key, key, table, target)
        if db_field.mode is RelationMode.ONE:
            related = exists(select(target.c.id).where(linked))
            if value is None:
                return not_(related)
            return exists(select(target.c.id).where(linked, self.build(db_field.list, value, target)))
        parts: List[ColumnElement] = []
        for quantifier, sub in (value or {}).items():
            cond = self.build(db_field.list, sub, target)
            quantifier = Quantifier(quantifier)
            if quantifier is Quantifier.SOME:
                parts.append(exists(select(target.c.id).where(linked, cond)))
            elif quantifier is Quantifier.NONE:
                parts.append(not_(exists(select(target.c.id).where(linked, cond))))
            else:
                # every: no related record fails the filter (true on an empty set)
                parts.append(not_(exists(select(target.c.id).where(linked, not_(cond)))))
        return and_(true(), *parts)

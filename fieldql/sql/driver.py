from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete, func, insert, select, update
from strawberry import UNSET

from ..core.args import FindManyArgsValue
from ..core.kinds import RelationMode
from ..core.relations import RelationStorage
from ..errors import NotFoundError
from .builders import WhereBuilder
from .tables import SchemaTables

if TYPE_CHECKING:  # pragma: no cover
    from sqlalchemy.ext.asyncio import AsyncSession

    from ..registry import CompiledSchema

_logger = logging.getLogger("fieldql")


class SQLAlchemyDriver:
    """Storage driver over one SQLAlchemy ``AsyncSession``.

    A session must not run concurrent operations, so every public method
    holds an ``asyncio.Lock``; field resolvers of one request may still be
    scheduled concurrently. Writes are flushed, never committed: the caller
    owns the transaction.
    """

    def __init__(self, session: 'AsyncSession', schema: 'CompiledSchema', tables: Optional[SchemaTables] = None):
        self.session = session
        self.schema = schema
        self.tables = tables or schema.sql_tables()
        self.where = WhereBuilder(schema, self.tables)
        self._lock = asyncio.Lock()

    # --- row mapping -----------------------------------------------------

    def _to_record(self, list_key: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        record: Dict[str, Any] = {}
        for field_key, column in self.tables.columns[list_key].items():
            if isinstance(column, dict):
                record[field_key] = {sub: row[name] for sub, name in column.items()}
            else:
                record[field_key] = row[column]
        return record

    def _to_row(self, list_key: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        columns = self.tables.columns[list_key]
        row: Dict[str, Any] = {}
        for field_key, value in data.items():
            if value is UNSET or field_key not in columns:
                continue
            column = columns[field_key]
            if isinstance(column, dict):
                for sub, sub_value in (value or {}).items():
                    if sub_value is not UNSET and sub in column:
                        row[column[sub]] = sub_value
            else:
                row[column] = value
        return row

    def _order(self, list_key: str, table, order_by) -> List[Any]:
        clauses = []
        for entry in order_by:
            (field_key, direction), = entry.items()
            column = table.c[self.tables.column_name(list_key, field_key)]
            clauses.append(column.desc() if direction == 'desc' else column.asc())
        # id breaks ties so that cursors and pages are stable
        clauses.append(table.c.id.asc())
        return clauses

    # --- reads (call with the lock held) ---------------------------------

    async def _select(self, list_key: str, args: FindManyArgsValue, extra=None) -> List[Dict[str, Any]]:
        table = self.tables.table(list_key)
        stmt = select(table).where(self.where.build(list_key, args.where, table))
        if extra is not None:
            stmt = stmt.where(extra)
        stmt = stmt.order_by(*self._order(list_key, table, args.order_by))
        if args.cursor is None:
            if args.skip:
                stmt = stmt.offset(args.skip)
            if args.take is not None:
                stmt = stmt.limit(args.take)
        _logger.debug("fieldql.sql: %s", stmt)
        rows = (await self.session.execute(stmt)).mappings().all()
        records = [self._to_record(list_key, r) for r in rows]
        if args.cursor is None:
            return records
        cursor = await self._find_one(list_key, args.cursor)
        if cursor is None:
            raise NotFoundError(list_key, args.cursor)
        # Resume right after the cursor record within the ordered result.
        ids = [r['id'] for r in records]
        start = ids.index(cursor['id']) + 1 if cursor['id'] in ids else len(records)
        page = records[start + args.skip:]
        return page if args.take is None else page[:args.take]

    async def _find_one(self, list_key: str, where: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        table = self.tables.table(list_key)
        conditions = [table.c[self.tables.column_name(list_key, k)] == v for k, v in where.items()]
        row = (await self.session.execute(select(table).where(*conditions).limit(1))).mappings().first()
        return self._to_record(list_key, row) if row is not None else None

    async def _next_in_sequence(self, column) -> int:
        # call with the lock held
        stmt = select(func.coalesce(func.max(column), 0) + 1)
        return int((await self.session.execute(stmt)).scalar_one())

    async def _count(self, list_key: str, where: Mapping[str, Any], extra=None) -> int:
        table = self.tables.table(list_key)
        stmt = select(func.count()).select_from(table).where(self.where.build(list_key, where, table))
        if extra is not None:
            stmt = stmt.where(extra)
        return int((await self.session.execute(stmt)).scalar_one())

    # --- StorageDriver ---------------------------------------------------

    async def find_many(self, list_key: str, args: FindManyArgsValue) -> List[Dict[str, Any]]:
        async with self._lock:
            return await self._select(list_key, args)

    async def count(self, list_key: str, where: Mapping[str, Any]) -> int:
        async with self._lock:
            return await self._count(list_key, where)

    async def find_one(self, list_key: str, where: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            return await self._find_one(list_key, where)

    async def create(self, list_key: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        table = self.tables.table(list_key)
        async with self._lock:
            stmt = insert(table)
            row = self._to_row(list_key, data)
            for name in self.tables.sequences.get(list_key, ()):
                if name not in row:
                    row[name] = await self._next_in_sequence(table.c[name])
            if row:
                stmt = stmt.values(**row)
            result = await self.session.execute(stmt)
            item_id = result.inserted_primary_key[0]
            await self.session.flush()
            return await self._find_one(list_key, {'id': item_id})

    async def update(self, list_key: str, item_id: Any, data: Mapping[str, Any]) -> Dict[str, Any]:
        table = self.tables.table(list_key)
        row = self._to_row(list_key, data)
        async with self._lock:
            if row:
                await self.session.execute(update(table).where(table.c.id == item_id).values(**row))
                await self.session.flush()
            record = await self._find_one(list_key, {'id': item_id})
        if record is None:
            raise NotFoundError(list_key, {'id': item_id})
        return record

    async def find_related(self, list_key: str, field_key: str, item_id: Any, args: FindManyArgsValue) -> List[Dict[str, Any]]:
        target = self.schema.relations[(list_key, field_key)].target
        table = self.tables.table(target)
        async with self._lock:
            return await self._select(target, args, self.where.related(list_key, field_key, item_id, table))

    async def count_related(self, list_key: str, field_key: str, item_id: Any, where: Mapping[str, Any]) -> int:
        target = self.schema.relations[(list_key, field_key)].target
        table = self.tables.table(target)
        async with self._lock:
            return await self._count(target, where, self.where.related(list_key, field_key, item_id, table))

    async def connect(self, list_key: str, field_key: str, item_id: Any, target_ids: Sequence[Any]) -> None:
        async with self._lock:
            await self._connect(list_key, field_key, item_id, list(target_ids))
            await self.session.flush()

    async def disconnect(self, list_key: str, field_key: str, item_id: Any, target_ids: Optional[Sequence[Any]]) -> None:
        async with self._lock:
            await self._disconnect(list_key, field_key, item_id, None if target_ids is None else list(target_ids))
            await self.session.flush()

    async def set_related(self, list_key: str, field_key: str, item_id: Any, target_ids: Sequence[Any]) -> None:
        """Replace every link of the relation with exactly ``target_ids``."""
        async with self._lock:
            await self._disconnect(list_key, field_key, item_id, None)
            await self._connect(list_key, field_key, item_id, list(target_ids))
            await self.session.flush()

    # --- link primitives (call with the lock held) -----------------------

    async def _connect(self, list_key: str, field_key: str, item_id: Any, target_ids: List[Any]) -> None:
        if not target_ids:
            return
        plan = self.schema.relations[(list_key, field_key)]
        own = self.tables.table(list_key)
        other = self.tables.table(plan.target)
        if plan.storage is RelationStorage.LOCAL_FK:
            (target_id,) = target_ids[-1:]
            column = own.c[plan.column]
            if plan.unique:
                await self.session.execute(update(own).where(column == target_id).values({plan.column: None}))
            await self.session.execute(update(own).where(own.c.id == item_id).values({plan.column: target_id}))
            return
        if plan.storage is RelationStorage.REMOTE_FK:
            column = other.c[plan.column]
            if plan.mode is RelationMode.ONE:
                # One-to-one from the side without the key: move the link.
                await self.session.execute(update(other).where(column == item_id).values({plan.column: None}))
                target_ids = target_ids[-1:]
            await self.session.execute(
                update(other).where(other.c.id.in_(target_ids)).values({plan.column: item_id})
            )
            return
        join = self.tables.join_tables[plan.table]
        existing = set((await self.session.execute(
            select(join.c[plan.other_column]).where(join.c[plan.self_column] == item_id)
        )).scalars().all())
        rows = [
            {plan.self_column: item_id, plan.other_column: t}
            for t in dict.fromkeys(target_ids) if t not in existing
        ]
        if rows:
            await self.session.execute(insert(join), rows)

    async def _disconnect(self, list_key: str, field_key: str, item_id: Any, target_ids: Optional[List[Any]]) -> None:
        plan = self.schema.relations[(list_key, field_key)]
        if plan.storage is RelationStorage.LOCAL_FK:
            own = self.tables.table(list_key)
            stmt = update(own).where(own.c.id == item_id)
            if target_ids is not None:
                stmt = stmt.where(own.c[plan.column].in_(target_ids))
            await self.session.execute(stmt.values({plan.column: None}))
            return
        if plan.storage is RelationStorage.REMOTE_FK:
            other = self.tables.table(plan.target)
            stmt = update(other).where(other.c[plan.column] == item_id)
            if target_ids is not None:
                stmt = stmt.where(other.c.id.in_(target_ids))
            await self.session.execute(stmt.values({plan.column: None}))
            return
        join = self.tables.join_tables[plan.table]
        stmt = delete(join).where(join.c[plan.self_column] == item_id)
        if target_ids is not None:
            stmt = stmt.where(join.c[plan.other_column].in_(target_ids))
        await self.session.execute(stmt)

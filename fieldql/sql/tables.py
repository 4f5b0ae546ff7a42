"""SQLAlchemy table layout derived from a compiled schema.

One table per list (named after the list key) with an integer ``id``
primary key, one column per scalar/enum field, ``<field>_<subfield>``
columns for composite fields, a ``<field>_id`` key column for relations
that own their key and one two-column join table per many-to-many
relation.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    text as sa_text,
)

from ..core.kinds import (
    Autoincrement,
    DbGenerated,
    EnumDBField,
    IndexKind,
    Mode,
    MultiDBField,
    ScalarDBField,
    ScalarType,
)
from ..core.relations import RelationStorage
from .enum_helpers import enum_column

if TYPE_CHECKING:  # pragma: no cover
    from ..registry import CompiledSchema

_logger = logging.getLogger("fieldql")

_DECIMAL_NATIVE = re.compile(r'^\s*Decimal\(\s*(\d+)\s*,\s*(\d+)\s*\)\s*$')


def _sa_scalar_type(db_field: ScalarDBField) -> Any:
    scalar = db_field.scalar
    if scalar is ScalarType.STRING:
        return Text() if db_field.native_type == 'Text' else String()
    if scalar is ScalarType.BOOLEAN:
        return Boolean()
    if scalar is ScalarType.INT:
        return Integer()
    if scalar is ScalarType.FLOAT:
        return Float()
    if scalar is ScalarType.DATETIME:
        return DateTime(timezone=True)
    if scalar is ScalarType.BIGINT:
        # SQLite only autoincrements INTEGER primary keys.
        return BigInteger().with_variant(Integer(), 'sqlite')
    if scalar is ScalarType.JSON:
        return JSON()
    match = _DECIMAL_NATIVE.match(db_field.native_type or '')
    if match:
        return Numeric(int(match.group(1)), int(match.group(2)), asdecimal=True)
    return Numeric(asdecimal=True)


def _column_kwargs(db_field: Any) -> Dict[str, Any]:
    kw: Dict[str, Any] = {'nullable': db_field.mode is not Mode.REQUIRED}
    if db_field.index is IndexKind.UNIQUE:
        kw['unique'] = True
    elif db_field.index is IndexKind.INDEX:
        kw['index'] = True
    if isinstance(db_field.default, DbGenerated):
        kw['server_default'] = sa_text(db_field.default.expression)
    return kw


def _scalarish_column(name: str, db_field: Any) -> Column:
    kw = _column_kwargs(db_field)
    if db_field.mode is Mode.MANY:
        # Scalar lists are stored as JSON arrays on every provider.
        return Column(name, JSON(), **kw)
    if isinstance(db_field, EnumDBField):
        return enum_column(name, db_field.name, db_field.values, **kw)
    return Column(name, _sa_scalar_type(db_field), **kw)


@dataclass
class SchemaTables:
    """Tables of a compiled schema plus field -> column name mappings.

    ``columns[list_key][field_key]`` is a column name for scalar/enum fields
    and a ``{subfield: column name}`` mapping for composite fields.
    ``sequences[list_key]`` names the non-key columns with an autoincrement
    default; the driver numbers them on insert.
    """

    metadata: MetaData
    tables: Dict[str, Table] = field(default_factory=dict)
    columns: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    join_tables: Dict[str, Table] = field(default_factory=dict)
    sequences: Dict[str, List[str]] = field(default_factory=dict)

    def table(self, list_key: str) -> Table:
        return self.tables[list_key]

    def column_name(self, list_key: str, field_key: str) -> str:
        name = self.columns[list_key][field_key]
        if not isinstance(name, str):
            raise KeyError(f"{list_key}.{field_key} is stored in several columns")
        return name

    async def create_all(self, conn) -> None:
        """Create every table; ``conn`` is an ``AsyncConnection``."""
        await conn.run_sync(self.metadata.create_all)


def build_tables(schema: 'CompiledSchema', metadata: Optional[MetaData] = None) -> SchemaTables:
    metadata = metadata if metadata is not None else MetaData()
    out = SchemaTables(metadata)
    # Key columns first: a list's table may need key columns for relations
    # declared on other lists.
    fk_columns: Dict[str, list] = {key: [] for key in schema.lists}
    for (list_key, field_key), plan in schema.relations.items():
        if plan.storage is RelationStorage.LOCAL_FK:
            fk_columns[list_key].append(Column(
                plan.column,
                Integer,
                ForeignKey(f"{plan.target}.id", ondelete='SET NULL'),
                nullable=True,
                unique=plan.unique or None,
                index=not plan.unique,
            ))
    for list_key, compiled in schema.lists.items():
        cols = [Column('id', Integer, primary_key=True, autoincrement=True)]
        mapping: Dict[str, Any] = {'id': 'id'}
        sequences: List[str] = []
        for field_key, desc in compiled.fields.items():
            db_field = desc.db_field
            if field_key == 'id':
                continue
            if isinstance(db_field, (ScalarDBField, EnumDBField)):
                name = db_field.map or field_key
                cols.append(_scalarish_column(name, db_field))
                mapping[field_key] = name
                if isinstance(db_field.default, Autoincrement):
                    sequences.append(name)
            elif isinstance(db_field, MultiDBField):
                sub_names = {}
                for sub_key, sub in db_field.fields.items():
                    name = sub.map or f"{field_key}_{sub_key}"
                    column = _scalarish_column(name, sub)
                    # Composite values may be partially filled.
                    column.nullable = True
                    cols.append(column)
                    sub_names[sub_key] = name
                    if isinstance(sub.default, Autoincrement):
                        sequences.append(name)
                mapping[field_key] = sub_names
        cols.extend(fk_columns[list_key])
        out.tables[list_key] = Table(list_key, metadata, *cols)
        out.columns[list_key] = mapping
        out.sequences[list_key] = sequences
    for plan in schema.relations.values():
        if plan.storage is not RelationStorage.JOIN or plan.table in out.join_tables:
            continue
        out.join_tables[plan.table] = Table(
            plan.table,
            metadata,
            Column(plan.self_column, Integer, ForeignKey(f"{plan.list}.id", ondelete='CASCADE'), primary_key=True),
            Column(plan.other_column, Integer, ForeignKey(f"{plan.target}.id", ondelete='CASCADE'), primary_key=True),
        )
    _logger.debug("fieldql.sql: built %d tables, %d join tables", len(out.tables), len(out.join_tables))
    return out


"""SQLAlchemy reference storage for fieldql schemas."""
from .builders import WhereBuilder
from .driver import SQLAlchemyDriver
from .enum_helpers import enum_column, sa_enum_type
from .tables import SchemaTables, build_tables

__all__ = [
    'SQLAlchemyDriver',
    'SchemaTables',
    'WhereBuilder',
    'build_tables',
    'enum_column',
    'sa_enum_type',
]

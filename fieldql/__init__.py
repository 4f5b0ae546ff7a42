"""fieldql public API and lightweight lazy exports.

This __init__ avoids importing the registry and the SQLAlchemy layer at
import time; storage code can import :mod:`fieldql.core` without pulling in
the GraphQL side.

Exposes:
- Lazy attributes: FieldQLSchema, CompiledSchema, Operations, SetPolicy, StrawberryConfig
- Lazy field factories: text, integer, big_int, float_field, decimal, checkbox,
  timestamp, json, select, relationship, virtual, composite, id_field
- Lazy helpers: field_type, SQLAlchemyDriver, enum_column
"""
from __future__ import annotations

_FIELD_FACTORIES = {
    'id_field', 'text', 'integer', 'big_int', 'float_field', 'decimal', 'checkbox',
    'timestamp', 'json', 'select', 'relationship', 'virtual', 'composite',
}


def __getattr__(name: str):  # PEP 562 lazy exports
    import importlib as _importlib
    if name in {'registry', 'operations', 'field_types', 'errors', 'sql'}:
        return _importlib.import_module(__name__ + '.' + name)
    if name in {'FieldQLSchema', 'CompiledSchema', 'CompiledList', 'StrawberryConfig'}:
        _registry = _importlib.import_module(__name__ + '.registry')
        return getattr(_registry, name)
    if name == 'Operations':
        from .operations import Operations as _Operations
        return _Operations
    if name == 'SetPolicy':
        from .core.relations import SetPolicy as _SetPolicy
        return _SetPolicy
    if name in _FIELD_FACTORIES:
        from . import field_types as _field_types
        return getattr(_field_types, name)
    if name in {'field_type', 'Arg', 'FieldInput', 'FieldOutput', 'FieldSpec'}:
        from .core import fields as _fields
        return getattr(_fields, name)
    if name == 'SQLAlchemyDriver':
        from .sql.driver import SQLAlchemyDriver as _SQLAlchemyDriver
        return _SQLAlchemyDriver
    if name == 'enum_column':
        from .sql.enum_helpers import enum_column as _enum_column
        return _enum_column
    raise AttributeError(name)


__all__ = [
    'FieldQLSchema', 'CompiledSchema', 'CompiledList', 'Operations', 'SetPolicy', 'StrawberryConfig',
    'id_field', 'text', 'integer', 'big_int', 'float_field', 'decimal', 'checkbox',
    'timestamp', 'json', 'select', 'relationship', 'virtual', 'composite',
    'field_type', 'Arg', 'FieldInput', 'FieldOutput', 'FieldSpec',
    'SQLAlchemyDriver', 'enum_column',
    'registry', 'operations', 'field_types', 'errors', 'sql',
]

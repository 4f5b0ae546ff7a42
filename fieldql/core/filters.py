from __future__ import annotations

from typing import Any, Callable, Dict

from sqlalchemy import func

# Filter input keys -> SQLAlchemy expression builders (extensible).
OPERATOR_REGISTRY: Dict[str, Callable[[Any, Any], Any]] = {
    'equals': lambda col, v: col.is_(None) if v is None else col == v,
    'lt': lambda col, v: col < v,
    'lte': lambda col, v: col <= v,
    'gt': lambda col, v: col > v,
    'gte': lambda col, v: col >= v,
    'in': lambda col, v: col.in_(list(v)),
    'notIn': lambda col, v: ~col.in_(list(v)),
    'contains': lambda col, v: col.contains(v, autoescape=True),
    'startsWith': lambda col, v: col.startswith(v, autoescape=True),
    'endsWith': lambda col, v: col.endswith(v, autoescape=True),
}

# Case-insensitive variants used when a StringFilter carries mode: insensitive.
INSENSITIVE_OPERATOR_REGISTRY: Dict[str, Callable[[Any, Any], Any]] = {
    'equals': lambda col, v: col.is_(None) if v is None else func.lower(col) == func.lower(v),
    'in': lambda col, v: func.lower(col).in_([str(x).lower() for x in v]),
    'notIn': lambda col, v: ~func.lower(col).in_([str(x).lower() for x in v]),
    'contains': lambda col, v: col.icontains(v, autoescape=True),
    'startsWith': lambda col, v: col.istartswith(v, autoescape=True),
    'endsWith': lambda col, v: col.iendswith(v, autoescape=True),
}

FILTER_MODIFIERS = ('mode', 'not')


def operator_for(name: str, *, insensitive: bool = False) -> Callable[[Any, Any], Any]:
    if insensitive and name in INSENSITIVE_OPERATOR_REGISTRY:
        return INSENSITIVE_OPERATOR_REGISTRY[name]
    try:
        return OPERATOR_REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown filter operator {name!r}") from None

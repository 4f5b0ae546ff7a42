"""Utilities to declare SQLAlchemy Enum columns for enum storage fields.

Enum fields store their plain string values (e.g. ``"draft"``); the Python
side never sees enum members, so the SQLAlchemy type is built from strings.

- sa_enum_type: build a configured SQLAlchemy Enum type with safe defaults.
- enum_column: a convenience factory returning a Column with SAEnum attached.
"""

from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy import Column
from sqlalchemy import Enum as SAEnum


def sa_enum_type(
    name: str,
    values: Sequence[str],
    *,
    native_enum: bool = False,
    validate_strings: bool = True,
    create_constraint: bool = True,
    constraint_name: Optional[str] = None,
) -> SAEnum:
    """Create a string-valued SQLAlchemy Enum type.

    Non-native by default so SQLite and PostgreSQL behave the same; the
    CHECK constraint keeps out values the GraphQL enum would reject.
    """
    return SAEnum(
        *values,
        name=constraint_name or f"ck_{name.lower()}",
        native_enum=native_enum,
        validate_strings=validate_strings,
        create_constraint=create_constraint,
        length=max((len(v) for v in values), default=1),
    )


def enum_column(
    column_name: str,
    enum_name: str,
    values: Sequence[str],
    *,
    nullable: bool = True,
    default: Optional[str] = None,
    constraint_name: Optional[str] = None,
    native_enum: bool = False,
    **column_kwargs,
) -> Column:
    """Convenience factory for a Column with a configured SAEnum.

    Example:

        status = enum_column('status', 'PostStatusType', ('draft', 'published'),
                             nullable=False, default='draft')
    """
    type_ = sa_enum_type(
        enum_name,
        values,
        native_enum=native_enum,
        constraint_name=constraint_name,
    )
    return Column(column_name, type_, nullable=nullable, default=default, **column_kwargs)

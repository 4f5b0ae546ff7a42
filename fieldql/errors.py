"""Error taxonomy for fieldql.

Compile-time problems are collected into a single :class:`ConfigurationError`
so that a schema author sees every mistake in one pass. Request-time errors
are scoped to one mutation or one field and never abort the process.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple


class FieldQLError(Exception):
    """Base class for every error raised by fieldql."""


class ConfigurationError(FieldQLError):
    """Compile-time schema error carrying every problem found.

    Attributes:
        problems: Human readable problem descriptions, each prefixed with the
            ``List.field`` path it belongs to when one is known.
    """

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = [str(p) for p in problems]
        if len(self.problems) == 1:
            message = self.problems[0]
        else:
            lines = '\n'.join(f"  - {p}" for p in self.problems)
            message = f"{len(self.problems)} schema configuration problems:\n{lines}"
        super().__init__(message)


class AmbiguousRelationInputError(FieldQLError):
    """Relation input supplies verbs whose combined intent is undefined."""

    def __init__(self, message: str, *, verbs: Sequence[str] = ()):
        self.verbs: Tuple[str, ...] = tuple(verbs)
        super().__init__(message)


class NotFoundError(FieldQLError):
    """A connect or unique-where reference did not match a record."""

    def __init__(self, list_key: str, where: Mapping[str, Any]):
        self.list_key = list_key
        self.where = dict(where)
        super().__init__(f"No {list_key} record matches {self.where!r}")


class ResolutionError(FieldQLError):
    """A field resolver failed or returned a value outside its shape.

    Attributes:
        path: ``(list_key, field_key)`` or a longer path into nested input.
        errors: Underlying errors when several sibling resolvers failed.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Sequence[str] = (),
        errors: Optional[Sequence[BaseException]] = None,
    ):
        self.path: Tuple[str, ...] = tuple(path)
        self.errors: List[BaseException] = list(errors or [])
        prefix = '.'.join(self.path)
        super().__init__(f"{prefix}: {message}" if prefix else message)


class QueryArgumentError(FieldQLError, ValueError):
    """Invalid list query arguments (take/skip/orderBy/cursor)."""


class NonDeterministicCursorError(QueryArgumentError):
    """A cursor was given without an orderBy to define "after"."""


__all__ = [
    'FieldQLError',
    'ConfigurationError',
    'AmbiguousRelationInputError',
    'NotFoundError',
    'ResolutionError',
    'QueryArgumentError',
    'NonDeterministicCursorError',
]

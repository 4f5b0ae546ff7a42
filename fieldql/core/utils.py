from __future__ import annotations

from typing import Any, Mapping

_SESSION_KEYS = ('db_session', 'db', 'session', 'async_session')


# --- Context helpers ---
def context_get(info_or_ctx: Any, key: str) -> Any:
    """Read ``key`` from a Strawberry ``Info`` context or a plain context.

    Mapping contexts are read by key, other objects by attribute.
    """
    if info_or_ctx is None:
        return None
    ctx = getattr(info_or_ctx, 'context', info_or_ctx)
    if ctx is None:
        return None
    if isinstance(ctx, Mapping):
        return ctx.get(key)
    return getattr(ctx, key, None)


def context_set(info_or_ctx: Any, key: str, value: Any) -> None:
    ctx = getattr(info_or_ctx, 'context', info_or_ctx)
    if isinstance(ctx, dict):
        ctx[key] = value
    elif ctx is not None:
        setattr(ctx, key, value)


def get_db_session(info_or_ctx: Any) -> Any | None:
    """Extraction of an AsyncSession-like object from context.

    Accepts either a Strawberry ``Info`` or a plain context object/dict. Tries
    common keys/attributes in order: ``db_session``, ``db``, ``session``,
    ``async_session``.

    Returns:
        The session object if found; otherwise ``None``.
    """
    for key in _SESSION_KEYS:
        value = context_get(info_or_ctx, key)
        if value is not None:
            return value
    return None

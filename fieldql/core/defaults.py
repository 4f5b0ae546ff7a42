"""Default-value policies for scalar and enum fields.

Legality table (anything not listed is a configuration error):

==========  ===================================================
String      literal, cuid, uuid, random(bytes, encoding), dbgenerated
Boolean     literal, dbgenerated
Int/BigInt  literal, autoincrement, dbgenerated
Float       literal, dbgenerated
DateTime    literal (ISO-8601 string), now, dbgenerated
Json        literal (JSON text), dbgenerated
Decimal     literal (decimal string), dbgenerated
enum        literal (one of the enum values)
==========  ===================================================

Fields in ``many`` mode never carry a default.
"""
from __future__ import annotations

import base64
import datetime
import decimal
import json
import os
import secrets
import string
import time
import uuid
from itertools import count
from typing import Any, Dict, List, Mapping, MutableMapping

from strawberry import UNSET

from .kinds import (
    Autoincrement,
    Cuid,
    DbGenerated,
    EnumDBField,
    Literal,
    Mode,
    MultiDBField,
    Now,
    Random,
    ScalarDBField,
    ScalarType,
    Uuid,
)

_LEGAL_POLICIES = {
    ScalarType.STRING: (Literal, Cuid, Uuid, Random, DbGenerated),
    ScalarType.BOOLEAN: (Literal, DbGenerated),
    ScalarType.INT: (Literal, Autoincrement, DbGenerated),
    ScalarType.BIGINT: (Literal, Autoincrement, DbGenerated),
    ScalarType.FLOAT: (Literal, DbGenerated),
    ScalarType.DATETIME: (Literal, Now, DbGenerated),
    ScalarType.JSON: (Literal, DbGenerated),
    ScalarType.DECIMAL: (Literal, DbGenerated),
}

RANDOM_ENCODINGS = ('hex', 'base64url')


def _coerce_literal(scalar: ScalarType, value: Any) -> Any:
    """Turn a literal default into the scalar's host value, or raise ValueError."""
    if scalar is ScalarType.STRING:
        if not isinstance(value, str):
            raise ValueError(f"expected a string, got {value!r}")
        return value
    if scalar is ScalarType.BOOLEAN:
        if not isinstance(value, bool):
            raise ValueError(f"expected a boolean, got {value!r}")
        return value
    if scalar in (ScalarType.INT, ScalarType.BIGINT):
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"expected an integer, got {value!r}")
        return value
    if scalar is ScalarType.FLOAT:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ValueError(f"expected a number, got {value!r}")
        return float(value)
    if scalar is ScalarType.DATETIME:
        if isinstance(value, datetime.datetime):
            return value
        if not isinstance(value, str):
            raise ValueError(f"expected an ISO-8601 string, got {value!r}")
        return datetime.datetime.fromisoformat(value.replace('Z', '+00:00'))
    if scalar is ScalarType.JSON:
        if not isinstance(value, str):
            raise ValueError(f"expected JSON text, got {value!r}")
        return json.loads(value)
    if scalar is ScalarType.DECIMAL:
        try:
            return decimal.Decimal(str(value))
        except decimal.InvalidOperation:
            raise ValueError(f"expected a decimal string, got {value!r}") from None
    raise ValueError(f"unknown scalar {scalar!r}")


def default_problems(db_field: Any) -> List[str]:
    """Report default-policy violations for one storage field."""
    if isinstance(db_field, MultiDBField):
        problems: List[str] = []
        for name, sub in db_field.fields.items():
            problems.extend(f"subfield {name!r}: {p}" for p in default_problems(sub))
        return problems
    if not isinstance(db_field, (ScalarDBField, EnumDBField)):
        return []
    policy = db_field.default
    if policy is None:
        return []
    if db_field.mode is Mode.MANY:
        return ["fields in many mode cannot have a default"]
    if isinstance(db_field, EnumDBField):
        if not isinstance(policy, Literal):
            kind = getattr(policy, 'kind', type(policy).__name__)
            return [f"enum {db_field.name!r} only supports literal defaults, got {kind}"]
        if policy.value not in db_field.values:
            return [f"default {policy.value!r} is not one of the values of enum {db_field.name!r}"]
        return []
    scalar = db_field.scalar
    if not isinstance(policy, _LEGAL_POLICIES[scalar]):
        return [f"{getattr(policy, 'kind', type(policy).__name__)} default is not allowed on {scalar.value} fields"]
    if isinstance(policy, Literal):
        try:
            _coerce_literal(scalar, policy.value)
        except ValueError as e:
            return [f"invalid literal default for {scalar.value}: {e}"]
    if isinstance(policy, Random):
        problems = []
        if not isinstance(policy.bytes, int) or isinstance(policy.bytes, bool) or policy.bytes <= 0:
            problems.append(f"random default needs a positive byte count, got {policy.bytes!r}")
        if policy.encoding not in RANDOM_ENCODINGS:
            problems.append(f"random default encoding must be one of {RANDOM_ENCODINGS}, got {policy.encoding!r}")
        return problems
    if isinstance(policy, DbGenerated) and not policy.expression:
        return ["dbgenerated default needs an expression"]
    return []


_BASE36 = string.digits + string.ascii_lowercase
_cuid_counter = count(secrets.randbelow(36 ** 4))
_cuid_fingerprint = f"{os.getpid() % 1296:02x}{secrets.randbelow(36 ** 2):02x}"


def _base36(n: int, width: int = 0) -> str:
    out = ''
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return (out or '0').rjust(width, '0')


def cuid() -> str:
    """Collision-resistant id: ``c`` + time + counter + fingerprint + random."""
    millis = int(time.time() * 1000)
    block = _base36(next(_cuid_counter) % 36 ** 4, 4)
    rand = _base36(secrets.randbelow(36 ** 8), 8)
    return f"c{_base36(millis, 8)}{block}{_cuid_fingerprint}{rand}"


def generate_default(policy: Any, scalar: Any = None) -> Any:
    """Produce the create-time value of ``policy``.

    Returns ``UNSET`` for policies the storage layer fills in itself
    (autoincrement, dbgenerated).
    """
    if isinstance(policy, Literal):
        if scalar is None:
            return policy.value
        return _coerce_literal(scalar, policy.value)
    if isinstance(policy, Cuid):
        return cuid()
    if isinstance(policy, Uuid):
        return str(uuid.uuid4())
    if isinstance(policy, Random):
        raw = secrets.token_bytes(policy.bytes)
        if policy.encoding == 'hex':
            return raw.hex()
        return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')
    if isinstance(policy, Now):
        return datetime.datetime.now(datetime.timezone.utc)
    if isinstance(policy, (Autoincrement, DbGenerated)):
        return UNSET
    raise TypeError(f"Unknown default policy: {policy!r}")


def field_default(db_field: Any) -> Any:
    """Create-time default for a scalar/enum/multi field, or ``UNSET``."""
    if isinstance(db_field, MultiDBField):
        return {name: field_default(sub) for name, sub in db_field.fields.items()}
    if not isinstance(db_field, (ScalarDBField, EnumDBField)):
        return UNSET
    if db_field.mode is Mode.MANY or db_field.default is None:
        return UNSET
    scalar = db_field.scalar if isinstance(db_field, ScalarDBField) else None
    return generate_default(db_field.default, scalar)


def apply_create_defaults(db_fields: Mapping[str, Any], data: MutableMapping[str, Any]) -> Dict[str, Any]:
    """Fill defaults into ``data`` for fields whose create value is absent.

    Multi fields are filled per subfield. ``updated_at`` fields are always
    stamped. Returns ``data`` for convenience.
    """
    for key, db_field in db_fields.items():
        if isinstance(db_field, MultiDBField):
            current = data.get(key, UNSET)
            merged = dict(current) if isinstance(current, Mapping) else {}
            for name, sub in db_field.fields.items():
                if merged.get(name, UNSET) is UNSET:
                    merged[name] = field_default(sub)
            data[key] = merged
            continue
        if isinstance(db_field, ScalarDBField) and db_field.updated_at:
            data[key] = datetime.datetime.now(datetime.timezone.utc)
            continue
        if data.get(key, UNSET) is UNSET:
            value = field_default(db_field)
            if value is not UNSET:
                data[key] = value
    return data


def stamp_updated_at(db_fields: Mapping[str, Any], data: MutableMapping[str, Any]) -> Dict[str, Any]:
    for key, db_field in db_fields.items():
        if isinstance(db_field, ScalarDBField) and db_field.updated_at:
            data[key] = datetime.datetime.now(datetime.timezone.utc)
    return data

import datetime
import re

import pytest
from strawberry import UNSET

from fieldql.core.defaults import (
    apply_create_defaults,
    cuid,
    default_problems,
    field_default,
    generate_default,
    stamp_updated_at,
)
from fieldql.core.kinds import (
    Autoincrement,
    Cuid,
    DbGenerated,
    EnumDBField,
    Literal,
    MultiDBField,
    Now,
    Random,
    ScalarDBField,
    ScalarType,
    Uuid,
)


@pytest.mark.parametrize('scalar,policy', [
    ('String', Cuid()),
    ('String', Uuid()),
    ('String', Random(16)),
    ('Int', Autoincrement()),
    ('BigInt', Autoincrement()),
    ('DateTime', Now()),
    ('Boolean', Literal(True)),
    ('Float', DbGenerated('random()')),
    ('Json', Literal('{"a": 1}')),
])
def test_legal_defaults(scalar, policy):
    assert default_problems(ScalarDBField(scalar, default=policy)) == []


@pytest.mark.parametrize('scalar,policy', [
    ('Int', Cuid()),
    ('String', Autoincrement()),
    ('String', Now()),
    ('Float', Autoincrement()),
    ('Boolean', Uuid()),
    ('DateTime', Random(8)),
])
def test_illegal_defaults(scalar, policy):
    assert default_problems(ScalarDBField(scalar, default=policy))


def test_many_mode_never_carries_a_default():
    assert default_problems(ScalarDBField('String', mode='many', default=Literal('x')))
    assert default_problems(EnumDBField('S', ['a'], mode='many', default=Literal('a')))


def test_literal_values_are_checked():
    assert default_problems(ScalarDBField('Int', default=Literal('seven')))
    assert default_problems(EnumDBField('Status', ['draft'], default=Literal('gone')))
    assert default_problems(EnumDBField('Status', ['draft'], default=Literal('draft'))) == []


def test_enum_rejects_non_literal_defaults():
    assert default_problems(EnumDBField('Status', ['draft'], default=Now())) == [
        "enum 'Status' only supports literal defaults, got now",
    ]
    problems = default_problems(EnumDBField('Status', ['draft'], default='draft'))
    assert problems == ["enum 'Status' only supports literal defaults, got str"]


def test_random_encoding_and_size():
    assert default_problems(ScalarDBField('String', default=Random(0)))
    assert default_problems(ScalarDBField('String', default=Random(8, 'base32')))
    assert re.fullmatch(r'[0-9a-f]{16}', generate_default(Random(8), ScalarType.STRING))
    assert '=' not in generate_default(Random(8, 'base64url'), ScalarType.STRING)


def test_generated_values():
    assert generate_default(Autoincrement(), ScalarType.INT) is UNSET
    assert generate_default(DbGenerated('now()'), ScalarType.DATETIME) is UNSET
    now = generate_default(Now(), ScalarType.DATETIME)
    assert isinstance(now, datetime.datetime) and now.tzinfo is not None
    assert len(generate_default(Uuid(), ScalarType.STRING)) == 36
    assert cuid() != cuid()
    assert cuid().startswith('c')


def test_apply_create_defaults_only_fills_absent_values():
    fields = {
        'status': EnumDBField('Status', ['draft', 'published'], mode='required', default=Literal('draft')),
        'views': ScalarDBField('Int', default=Literal(0)),
        'tags': ScalarDBField('String', mode='many'),
        'updated': ScalarDBField('DateTime', updated_at=True),
        'loc': MultiDBField({'lat': ScalarDBField('Float', default=Literal(0))}),
    }
    data = apply_create_defaults(fields, {'views': 7})
    assert data['status'] == 'draft'
    assert data['views'] == 7
    assert 'tags' not in data
    assert isinstance(data['updated'], datetime.datetime)
    assert data['loc'] == {'lat': 0.0}
    assert field_default(fields['tags']) is UNSET


def test_stamp_updated_at():
    fields = {'updated': ScalarDBField('DateTime', updated_at=True), 'name': ScalarDBField('String')}
    data = stamp_updated_at(fields, {'name': 'x'})
    assert set(data) == {'name', 'updated'}

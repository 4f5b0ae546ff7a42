import datetime
from decimal import Decimal
from typing import List, Optional

import pytest
import strawberry
from strawberry import UNSET

from fieldql.core.kinds import EnumDBField, Mode, MultiDBField, NoDBField, RelationDBField, ScalarDBField, ScalarType
from fieldql.core.shapes import (
    ANYTHING,
    DIRECTION,
    FILTER,
    NULL,
    UNDEFINED,
    EnumShape,
    InputObject,
    ListOf,
    Operation,
    RelatedItem,
    RelatedItems,
    RelationInput,
    ScalarShape,
    UnsupportedArgumentType,
    conforms,
    derive_shape,
    is_subtype,
    shape_from_annotation,
    union,
)
from fieldql.input_types import OrderDirection, StringFilter

STRING = ScalarShape(ScalarType.STRING)

ALL_KINDS = [
    NoDBField(),
    ScalarDBField('String'),
    ScalarDBField('Int', mode='required'),
    ScalarDBField('Float', mode='many'),
    EnumDBField('Status', ['draft', 'published'], mode='required'),
    RelationDBField('one', 'User'),
    RelationDBField('many', 'Tag'),
    MultiDBField({'lat': ScalarDBField('Float'), 'unit': EnumDBField('Unit', ['m', 'km'])}),
]


@pytest.mark.parametrize('db_field', ALL_KINDS, ids=lambda f: type(f).__name__)
def test_derivation_is_deterministic(db_field):
    for op in Operation:
        assert derive_shape(db_field, op) == derive_shape(db_field, op)


def test_scalar_modes():
    optional = ScalarDBField('String')
    required = ScalarDBField('String', mode='required')
    many = ScalarDBField('String', mode='many')
    assert derive_shape(optional, 'create') == union(STRING, NULL, UNDEFINED)
    assert derive_shape(required, 'update') == union(STRING, UNDEFINED)
    assert derive_shape(many, 'create') == union(ListOf(STRING), UNDEFINED)
    assert derive_shape(optional, 'output') == union(STRING, NULL)
    assert derive_shape(required, 'output') == STRING
    assert derive_shape(many, 'output') == ListOf(STRING)
    assert derive_shape(required, 'orderBy') == union(DIRECTION, UNDEFINED)
    assert derive_shape(required, 'uniqueWhere') == STRING
    assert derive_shape(many, 'uniqueWhere') == ANYTHING
    assert derive_shape(optional, 'where') == union(FILTER, NULL)


def test_relation_and_virtual_shapes():
    one = RelationDBField('one', 'User')
    many = RelationDBField('many', 'Tag')
    assert derive_shape(one, 'create') == union(RelationInput('User', one.mode), UNDEFINED)
    assert derive_shape(one, 'output') == RelatedItem('User')
    assert derive_shape(many, 'output') == RelatedItems('Tag')
    assert derive_shape(many, 'orderBy') == UNDEFINED
    assert derive_shape(many, 'uniqueWhere') == ANYTHING
    for op in Operation:
        assert derive_shape(NoDBField(), op) == UNDEFINED


def test_multi_is_a_record_of_subfield_shapes():
    multi = ALL_KINDS[-1]
    shape = derive_shape(multi, 'create')
    assert shape.keys() == ('lat', 'unit')
    assert shape.get('lat') == derive_shape(multi.fields['lat'], 'create')
    assert derive_shape(multi, 'where') == union(FILTER, NULL)


def test_subtyping():
    assert is_subtype(STRING, union(STRING, NULL))
    assert not is_subtype(union(STRING, NULL), STRING)
    assert is_subtype(ScalarShape(ScalarType.INT), ScalarShape(ScalarType.FLOAT))
    assert not is_subtype(ScalarShape(ScalarType.FLOAT), ScalarShape(ScalarType.INT))
    assert is_subtype(EnumShape('S', ('a',)), STRING)
    assert is_subtype(EnumShape('S', ('a',)), EnumShape('T', ('a', 'b')))
    assert is_subtype(ListOf(ScalarShape(ScalarType.INT)), ListOf(ScalarShape(ScalarType.FLOAT)))
    assert is_subtype(InputObject('StringFilter'), FILTER)
    assert is_subtype(NULL, ANYTHING)


def test_conforms():
    assert conforms(union(STRING, UNDEFINED), UNSET)
    assert not conforms(STRING, UNSET)
    assert not conforms(STRING, None)
    assert conforms(ScalarShape(ScalarType.INT), 3)
    assert not conforms(ScalarShape(ScalarType.INT), True)
    assert conforms(ScalarShape(ScalarType.DATETIME), datetime.datetime.now())
    assert conforms(ScalarShape(ScalarType.DECIMAL), Decimal('1.5'))
    assert conforms(ScalarShape(ScalarType.JSON), {'a': [1, 2, None]})
    assert conforms(EnumShape('S', ('a', 'b')), 'a')
    assert not conforms(EnumShape('S', ('a', 'b')), 'c')
    assert conforms(RelatedItem('User'), lambda: None)


def test_annotation_table():
    assert shape_from_annotation(str) == STRING
    assert shape_from_annotation(Optional[str]) == union(STRING, NULL, UNDEFINED)
    assert shape_from_annotation(Optional[str], has_default=True) == union(STRING, NULL)
    assert shape_from_annotation(List[int]) == ListOf(ScalarShape(ScalarType.INT))
    assert shape_from_annotation(OrderDirection) == EnumShape('OrderDirection', ('asc', 'desc'))
    assert shape_from_annotation(Optional[StringFilter]) == union(InputObject('StringFilter'), NULL, UNDEFINED)


def test_unsupported_annotations():
    @strawberry.type
    class NotAnInput:
        x: int

    with pytest.raises(UnsupportedArgumentType):
        shape_from_annotation(NotAnInput)
    with pytest.raises(UnsupportedArgumentType):
        shape_from_annotation(Optional[bytes])

import logging
from typing import Optional

import pytest

from fieldql import FieldQLSchema
from fieldql.core.fields import Arg, FieldInput, FieldOutput, FieldSpec, field_type
from fieldql.core.kinds import ScalarDBField
from fieldql.core.relations import RelationStorage
from fieldql.errors import ConfigurationError
from fieldql.field_types import integer, relationship, select, text
from tests.schema import Post, compiled, schema


def test_lists_and_implicit_id():
    assert list(compiled.lists) == ['User', 'Post', 'Tag']
    post = compiled.lists['Post']
    assert next(iter(post.fields)) == 'id'
    assert Post.__fieldql_list__ == 'Post'
    assert schema.compile() is compiled


def test_generated_names():
    assert compiled.lists['Post'].names.plural == 'posts'
    assert compiled.lists['Tag'].names.plural == 'tagList'
    types = compiled.lists['Post'].types
    assert types.create.__name__ == 'PostCreateInput'
    assert types.relate_to.many.update.__name__ == 'PostRelateToManyForUpdateInput'


def test_storage_fields_skip_relations_and_virtuals():
    keys = set(compiled.lists['Post'].storage_fields)
    assert {'id', 'title', 'status', 'location'} <= keys
    assert not keys & {'author', 'tags', 'headline'}


def test_relation_plans():
    assert compiled.relations[('Post', 'author')].storage is RelationStorage.LOCAL_FK
    assert compiled.relations[('User', 'posts')].storage is RelationStorage.REMOTE_FK
    assert compiled.relations[('Post', 'tags')].storage is RelationStorage.JOIN
    assert compiled.lists['Post'].relations['tags'].table == '_Post_tags'


def test_sql_tables():
    tables = compiled.sql_tables()
    assert tables is compiled.sql_tables()
    post = tables.table('Post')
    assert {'id', 'title', 'status', 'author_id', 'location_lat', 'location_precision'} <= set(post.c.keys())
    assert tables.columns['Post']['location'] == {
        'lat': 'location_lat', 'lng': 'location_lng', 'precision': 'location_precision',
    }
    assert set(tables.join_tables['_Post_tags'].c.keys()) == {'A', 'B'}


def test_admin_meta():
    meta = compiled.admin_meta()
    post = meta['Post']
    assert post['plural'] == 'posts'
    assert post['fields']['status'] == {
        'label': 'Status', 'views': 'fieldql/select', 'options': ['draft', 'published'],
    }
    assert post['fields']['author']['refListKey'] == 'User'
    assert meta['User']['description'] == 'A person who writes posts.'


def test_many_mode_default_fails_compilation():
    s = FieldQLSchema()

    @s.list()
    class Item:
        name = text(required=True)
        labels = text(many=True, default='x')

    with pytest.raises(ConfigurationError, match='many mode cannot have a default'):
        s.compile()


def test_all_problems_are_reported_together(caplog):
    s = FieldQLSchema()

    @s.list()
    class Item:
        name = text(required=True)
        count = integer(default='many')
        owner = relationship('Nobody')
        kind = select([])

    @s.list()
    class Other:
        name = text()
        item = relationship('Item.missing')

    with caplog.at_level(logging.ERROR, logger='fieldql'):
        with pytest.raises(ConfigurationError) as exc:
            s.compile()
    problems = exc.value.problems
    assert any(p.startswith('Item.count:') for p in problems)
    assert any(p.startswith('Item.kind:') for p in problems)
    assert any(p.startswith('Item.owner:') for p in problems)
    assert any(p.startswith('Other.item:') for p in problems)
    assert 'configuration problem' in caplog.text


def test_custom_field_missing_mandatory_resolver():
    s = FieldQLSchema()

    @s.list()
    class Item:
        name = FieldSpec(lambda data: field_type(ScalarDBField('String', mode='required'))(
            input={'create': FieldInput(Arg(Optional[str]))},
            output=FieldOutput(str),
        ))

    with pytest.raises(ConfigurationError, match='create resolver is mandatory'):
        s.compile()


def test_reserved_and_invalid_keys():
    s = FieldQLSchema()

    @s.list()
    class Item:
        name = text()
        AND = text()
    with pytest.raises(ConfigurationError, match='not a valid field key'):
        s.compile()


def test_list_without_settable_fields():
    s = FieldQLSchema()

    @s.list()
    class Empty:
        pass

    with pytest.raises(ConfigurationError, match='no field is settable on create'):
        s.compile()


def test_empty_schema():
    with pytest.raises(ConfigurationError, match='no lists'):
        FieldQLSchema().compile()


def test_cyclic_relations_compile():
    s = FieldQLSchema()

    @s.list()
    class Node:
        name = text()
        parent = relationship('Node.children')
        children = relationship('Node.parent', many=True)

    result = s.compile()
    assert result.relations[('Node', 'parent')].storage is RelationStorage.LOCAL_FK
    assert result.relations[('Node', 'children')].column == 'parent_id'

import pytest

from fieldql.core.kinds import RelationDBField, ScalarDBField
from fieldql.core.relations import (
    ManyRelationPlan,
    Quantifier,
    RelationStorage,
    SetPolicy,
    evaluate_quantifier,
    plan_many_relation_input,
    plan_relations,
    relate_to_shapes,
    validate_one_relation_input,
)
from fieldql.core.shapes import ListOf, ListTypeRef
from fieldql.errors import AmbiguousRelationInputError, QueryArgumentError


def test_relate_to_shapes():
    shapes = relate_to_shapes('Tag')
    assert shapes.one_create.keys() == ('create', 'connect')
    assert shapes.one_update.keys() == ('create', 'connect', 'disconnect')
    assert shapes.many_where.keys() == ('every', 'some', 'none')
    assert set(shapes.many_update.keys()) == {'connect', 'create', 'disconnect', 'set'}
    assert ListOf(ListTypeRef('Tag', 'uniqueWhere')) in shapes.many_update.get('set').options


def test_one_update_with_create_and_connect_is_ambiguous():
    with pytest.raises(AmbiguousRelationInputError) as exc:
        validate_one_relation_input({'create': {'name': 'x'}, 'connect': {'id': 1}}, 'update')
    assert set(exc.value.verbs) == {'create', 'connect'}


def test_one_update_with_connect_and_disconnect_is_ambiguous():
    with pytest.raises(AmbiguousRelationInputError):
        validate_one_relation_input({'connect': {'id': 1}, 'disconnect': True}, 'update')


def test_one_relation_single_verb():
    action = validate_one_relation_input({'connect': {'id': 1}, 'disconnect': False}, 'update')
    assert (action.verb, action.value) == ('connect', {'id': 1})
    assert validate_one_relation_input({'disconnect': True}, 'update').verb == 'disconnect'
    assert validate_one_relation_input(None, 'update') is None
    assert validate_one_relation_input({}, 'create') is None


def test_one_create_rejects_disconnect():
    with pytest.raises(QueryArgumentError):
        validate_one_relation_input({'disconnect': True}, 'create')


def test_set_combined_with_other_verbs_is_rejected_by_default():
    value = {'set': [{'id': 1}], 'connect': [{'id': 2}]}
    with pytest.raises(AmbiguousRelationInputError):
        plan_many_relation_input(value, 'update')


def test_set_first_policy_orders_steps():
    value = {'create': [{'name': 'n'}], 'set': [{'id': 1}], 'disconnect': [{'id': 3}], 'connect': [{'id': 2}]}
    plan = plan_many_relation_input(value, 'update', SetPolicy.SET_FIRST)
    assert [verb for verb, _ in plan.steps()] == ['set', 'disconnect', 'connect', 'create']


def test_empty_set_clears_relation():
    plan = plan_many_relation_input({'set': []}, 'update')
    assert plan.steps() == [('set', ())]
    assert plan_many_relation_input(None, 'update') == ManyRelationPlan()


def test_many_create_only_accepts_create_and_connect():
    with pytest.raises(QueryArgumentError):
        plan_many_relation_input({'set': [{'id': 1}]}, 'create')


def test_quantifiers_on_empty_set():
    never = lambda item: False
    assert evaluate_quantifier(Quantifier.EVERY, [], never) is True
    assert evaluate_quantifier(Quantifier.SOME, [], never) is False
    assert evaluate_quantifier(Quantifier.NONE, [], never) is True


def test_quantifiers_on_items():
    even = lambda n: n % 2 == 0
    assert evaluate_quantifier('every', [2, 4], even)
    assert not evaluate_quantifier('every', [2, 3], even)
    assert evaluate_quantifier('some', [1, 2], even)
    assert not evaluate_quantifier('none', [1, 2], even)


def test_plan_one_to_many():
    plans, problems = plan_relations({
        'Post': {'author': RelationDBField('one', 'User', field='posts')},
        'User': {'posts': RelationDBField('many', 'Post', field='author')},
    })
    assert problems == []
    author, posts = plans[('Post', 'author')], plans[('User', 'posts')]
    assert author.storage is RelationStorage.LOCAL_FK and author.column == 'author_id'
    assert posts.storage is RelationStorage.REMOTE_FK and posts.column == 'author_id'


def test_plan_one_to_one_needs_exactly_one_owner():
    plans, problems = plan_relations({
        'User': {'profile': RelationDBField('one', 'Profile', field='user')},
        'Profile': {'user': RelationDBField('one', 'User', field='profile', foreign_key='owner_id')},
    })
    assert problems == []
    assert plans[('Profile', 'user')].storage is RelationStorage.LOCAL_FK
    assert plans[('Profile', 'user')].column == 'owner_id'
    assert plans[('User', 'profile')].storage is RelationStorage.REMOTE_FK
    assert plans[('User', 'profile')].unique

    _, problems = plan_relations({
        'User': {'profile': RelationDBField('one', 'Profile', field='user')},
        'Profile': {'user': RelationDBField('one', 'User', field='profile')},
    })
    assert len(problems) == 2


def test_plan_many_to_many():
    plans, problems = plan_relations({
        'Post': {'tags': RelationDBField('many', 'Tag', field='posts')},
        'Tag': {'posts': RelationDBField('many', 'Post', field='tags')},
    })
    assert problems == []
    tags, posts = plans[('Post', 'tags')], plans[('Tag', 'posts')]
    assert tags.storage is posts.storage is RelationStorage.JOIN
    assert tags.table == posts.table == '_Post_tags'
    assert (tags.self_column, tags.other_column) == ('A', 'B')
    assert (posts.self_column, posts.other_column) == ('B', 'A')


def test_plan_one_sided_many_uses_own_join_table():
    plans, _ = plan_relations({'User': {'friends': RelationDBField('many', 'User')}})
    assert plans[('User', 'friends')].table == '_User_friends'


def test_plan_reports_broken_back_references():
    _, problems = plan_relations({
        'Post': {
            'author': RelationDBField('one', 'User', field='missing'),
            'editor': RelationDBField('one', 'Nobody'),
            'title': ScalarDBField('String'),
        },
        'User': {'name': ScalarDBField('String')},
    })
    assert any('User.missing is not a relation field' in p for p in problems)
    assert any("'Nobody' does not exist" in p for p in problems)

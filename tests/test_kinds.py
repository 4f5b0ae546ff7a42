import pytest

from fieldql.core.kinds import (
    EnumDBField,
    ForeignKey,
    IndexKind,
    Mode,
    MultiDBField,
    NoDBField,
    RelationDBField,
    RelationMode,
    ScalarDBField,
    ScalarType,
    db_field_problems,
)


def test_string_spellings_are_normalised():
    f = ScalarDBField('String', mode='required', index='unique')
    assert f.scalar is ScalarType.STRING
    assert f.mode is Mode.REQUIRED
    assert f.index is IndexKind.UNIQUE
    rel = RelationDBField('many', 'Post')
    assert rel.mode is RelationMode.MANY


def test_unknown_spelling_raises_value_error():
    with pytest.raises(ValueError, match="scalar type"):
        ScalarDBField('Text')
    with pytest.raises(ValueError, match="mode"):
        ScalarDBField('String', mode='sometimes')


def test_foreign_key_true_becomes_marker():
    rel = RelationDBField('one', 'User', foreign_key=True)
    assert rel.foreign_key == ForeignKey()
    assert rel.owns_foreign_key
    assert not RelationDBField('one', 'User', foreign_key=False).owns_foreign_key


def test_foreign_key_column_name_becomes_mapped_marker():
    rel = RelationDBField('one', 'User', foreign_key='owner_id')
    assert rel.foreign_key == ForeignKey(map='owner_id')
    assert rel.owns_foreign_key


def test_legal_fields_have_no_problems():
    assert db_field_problems(NoDBField()) == []
    assert db_field_problems(ScalarDBField('DateTime', updated_at=True)) == []
    assert db_field_problems(EnumDBField('Status', ['a', 'b'])) == []
    assert db_field_problems(RelationDBField('one', 'User', foreign_key=True)) == []
    assert db_field_problems(RelationDBField('many', 'Tag', relation_name='_PostTags')) == []


def test_relation_with_foreign_key_and_relation_name():
    problems = db_field_problems(RelationDBField('one', 'User', foreign_key=True, relation_name='x'))
    assert "relation sets both foreign_key and relation_name" in problems
    assert "relation_name is only allowed on many relations" in problems


def test_foreign_key_on_many_relation():
    assert db_field_problems(RelationDBField('many', 'Post', foreign_key=True)) == [
        "foreign_key is only allowed on one relations",
    ]


def test_multi_rejects_non_scalar_subfields():
    multi = MultiDBField({
        'lat': ScalarDBField('Float'),
        'owner': RelationDBField('one', 'User'),
        'nested': MultiDBField({'x': ScalarDBField('Int')}),
    })
    problems = db_field_problems(multi)
    assert len(problems) == 2
    assert any("'owner'" in p for p in problems)
    assert any("'nested'" in p for p in problems)


def test_enum_and_updated_at_problems():
    assert db_field_problems(EnumDBField('Empty', [])) == ["enum 'Empty' has no values"]
    assert db_field_problems(ScalarDBField('String', updated_at=True)) == [
        "updated_at is only allowed on DateTime fields",
    ]


def test_unsupported_kind():
    assert db_field_problems(object()) == ["unsupported storage field kind object"]

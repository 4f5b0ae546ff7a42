import pytest
from sqlalchemy import select as sa_select

from tests.schema import compiled, strawberry_schema


async def run(query, context, **variables):
    return await strawberry_schema.execute(query, variable_values=variables or None, context_value=context)


async def ok(query, context, **variables):
    res = await run(query, context, **variables)
    assert res.errors is None, res.errors
    return res.data


async def seed(context):
    """Ann writes two published posts, Bob one draft, Cid nothing."""
    await ok('mutation { createUser(data: {name: "Ann", email: "ann@example.com"}) { id } }', context)
    await ok('mutation { createUser(data: {name: "Bob"}) { id } }', context)
    await ok('mutation { createUser(data: {name: "Cid"}) { id } }', context)
    for title, status, author in (("Hello world", "published", 1), ("Second", "published", 1), ("Draft", "draft", 2)):
        await ok(
            'mutation($t: String!, $a: Int!) { createPost(data: {title: $t, status: %s, author: {connect: {id: $a}}}) { id } }'
            % status,
            context, t=title, a=author,
        )


@pytest.mark.asyncio
async def test_create_omitting_status_stores_draft(context, db_session):
    data = await ok('mutation { createPost(data: {title: "Hello"}) { id title status views headline } }', context)
    assert data['createPost'] == {'id': 1, 'title': 'Hello', 'status': 'draft', 'views': 0, 'headline': 'HELLO'}
    table = compiled.sql_tables().table('Post')
    assert (await db_session.execute(sa_select(table.c.status))).scalar_one() == 'draft'


@pytest.mark.asyncio
async def test_set_replaces_all_prior_links(context):
    for title in ('one', 'two', 'three'):
        await ok('mutation($t: String!) { createPost(data: {title: $t}) { id } }', context, t=title)
    data = await ok(
        'mutation { createUser(data: {name: "Ann", posts: {connect: [{id: 2}, {id: 3}]}}) { id posts { id } } }',
        context,
    )
    assert data['createUser']['posts'] == [{'id': 2}, {'id': 3}]
    await ok('mutation { updateUser(where: {id: 1}, data: {posts: {set: [{id: 1}, {id: 2}]}}) { id } }', context)
    data = await ok('query { user(where: {id: 1}) { posts { id } postsCount } }', context)
    assert data['user'] == {'posts': [{'id': 1}, {'id': 2}], 'postsCount': 2}
    data = await ok('query { post(where: {id: 3}) { author { id } } }', context)
    assert data['post'] == {'author': None}


@pytest.mark.asyncio
async def test_set_on_many_to_many(context):
    for name in ('a', 'b', 'c'):
        await ok('mutation($n: String!) { createTag(data: {name: $n}) { id } }', context, n=name)
    data = await ok(
        'mutation { createPost(data: {title: "t", tags: {connect: [{name: "a"}], create: [{name: "d"}]}}) '
        '{ tags { name } } }',
        context,
    )
    assert data['createPost']['tags'] == [{'name': 'a'}, {'name': 'd'}]
    data = await ok(
        'mutation { updatePost(where: {id: 1}, data: {tags: {set: [{id: 2}, {id: 3}]}}) { tags { name } tagsCount } }',
        context,
    )
    assert data['updatePost'] == {'tags': [{'name': 'b'}, {'name': 'c'}], 'tagsCount': 2}
    data = await ok('query { tag(where: {name: "b"}) { posts { title } } }', context)
    assert data['tag']['posts'] == [{'title': 't'}]


@pytest.mark.asyncio
async def test_set_with_connect_is_rejected(context):
    await seed(context)
    res = await run(
        'mutation { updateUser(where: {id: 1}, data: {posts: {set: [{id: 1}], connect: [{id: 3}]}}) { id } }',
        context,
    )
    assert res.errors and 'set cannot be combined with connect' in res.errors[0].message


@pytest.mark.asyncio
async def test_one_update_with_create_and_connect_is_ambiguous(context):
    await seed(context)
    res = await run(
        'mutation { updatePost(where: {id: 1}, data: {author: {create: {name: "X"}, connect: {id: 2}}}) { id } }',
        context,
    )
    assert res.errors and 'Only one of' in res.errors[0].message
    data = await ok('query { usersCount }', context)
    assert data['usersCount'] == 3


@pytest.mark.asyncio
async def test_one_relation_connect_create_disconnect(context):
    await seed(context)
    data = await ok('mutation { updatePost(where: {id: 3}, data: {author: {create: {name: "Dee"}}}) { author { name } } }', context)
    assert data['updatePost']['author'] == {'name': 'Dee'}
    data = await ok('mutation { updatePost(where: {id: 3}, data: {author: {disconnect: true}}) { author { id } } }', context)
    assert data['updatePost']['author'] is None
    data = await ok('query { user(where: {id: 2}) { postsCount } }', context)
    assert data['user']['postsCount'] == 0


@pytest.mark.asyncio
async def test_connect_to_missing_record_is_not_found(context):
    res = await run('mutation { createPost(data: {title: "x", author: {connect: {id: 99}}}) { id } }', context)
    assert res.errors and 'No User record matches' in res.errors[0].message


@pytest.mark.asyncio
async def test_disconnect_of_missing_record_is_ignored(context, caplog):
    await seed(context)
    data = await ok('mutation { updateUser(where: {id: 1}, data: {posts: {disconnect: [{id: 99}, {id: 1}]}}) { posts { id } } }', context)
    assert data['updateUser']['posts'] == [{'id': 2}]
    assert 'ignoring disconnect of missing Post' in caplog.text


@pytest.mark.asyncio
async def test_quantified_relation_filters(context):
    await seed(context)
    every = await ok('query { users(where: {posts: {every: {status: {equals: published}}}}) { name } }', context)
    assert every['users'] == [{'name': 'Ann'}, {'name': 'Cid'}]
    some = await ok('query { users(where: {posts: {some: {status: {equals: published}}}}) { name } }', context)
    assert some['users'] == [{'name': 'Ann'}]
    none = await ok('query { users(where: {posts: {none: {status: {equals: published}}}}) { name } }', context)
    assert none['users'] == [{'name': 'Bob'}, {'name': 'Cid'}]


@pytest.mark.asyncio
async def test_one_relation_filters(context):
    await seed(context)
    await ok('mutation { createPost(data: {title: "Orphan"}) { id } }', context)
    data = await ok('query { posts(where: {author: {name: {equals: "Ann"}}}) { id } }', context)
    assert data['posts'] == [{'id': 1}, {'id': 2}]
    data = await ok('query { posts(where: {author: null}) { title } }', context)
    assert data['posts'] == [{'title': 'Orphan'}]


@pytest.mark.asyncio
async def test_scalar_filters_and_logical_operators(context):
    await seed(context)
    data = await ok('query { posts(where: {title: {contains: "HELLO", mode: insensitive}}) { id } }', context)
    assert data['posts'] == [{'id': 1}]
    data = await ok('query { posts(where: {NOT: [{status: {equals: draft}}]}) { id } }', context)
    assert data['posts'] == [{'id': 1}, {'id': 2}]
    data = await ok(
        'query { posts(where: {OR: [{title: {startsWith: "Sec"}}, {id: {in: [3]}}]}) { id } }', context,
    )
    assert data['posts'] == [{'id': 2}, {'id': 3}]
    data = await ok('query { users(where: {email: null}) { name } }', context)
    assert data['users'] == [{'name': 'Bob'}, {'name': 'Cid'}]
    data = await ok('query { postsCount(where: {status: {equals: draft}}) }', context)
    assert data['postsCount'] == 1


@pytest.mark.asyncio
async def test_order_take_skip_and_cursor(context):
    await seed(context)
    data = await ok('query { posts(orderBy: [{title: desc}]) { title } }', context)
    assert [p['title'] for p in data['posts']] == ['Second', 'Hello world', 'Draft']
    data = await ok('query { posts(take: 1, skip: 1) { id } }', context)
    assert data['posts'] == [{'id': 2}]
    data = await ok('query { posts(orderBy: [{id: asc}], cursor: {id: 1}, take: 1) { id } }', context)
    assert data['posts'] == [{'id': 2}]
    data = await ok('query { posts(orderBy: [{title: asc}], cursor: {id: 3}) { title } }', context)
    assert data['posts'] == [{'title': 'Hello world'}, {'title': 'Second'}]


@pytest.mark.asyncio
async def test_cursor_without_order_by_is_rejected(context):
    await seed(context)
    res = await run('query { posts(cursor: {id: 1}) { id } }', context)
    assert res.errors and 'cursor requires a non-empty orderBy' in res.errors[0].message


@pytest.mark.asyncio
async def test_unique_where_names_exactly_one_field(context):
    await ok('mutation { createTag(data: {name: "a"}) { id } }', context)
    res = await run('query { tag(where: {id: 1, name: "a"}) { id } }', context)
    assert res.errors and 'exactly one field' in res.errors[0].message
    data = await ok('query { tag(where: {name: "zzz"}) { id } }', context)
    assert data['tag'] is None


@pytest.mark.asyncio
async def test_required_field_rejects_null(context):
    res = await run('mutation { createPost(data: {title: null}) { id } }', context)
    assert res.errors and 'cannot be null' in res.errors[0].message


@pytest.mark.asyncio
async def test_composite_field_round_trip(context):
    data = await ok(
        'mutation { createPost(data: {title: "geo", location: {lat: 1.5, lng: 2.5, precision: exact}}) '
        '{ location { lat lng precision } } }',
        context,
    )
    assert data['createPost']['location'] == {'lat': 1.5, 'lng': 2.5, 'precision': 'exact'}
    data = await ok(
        'mutation { updatePost(where: {id: 1}, data: {location: {lat: 3.0}}) { location { lat lng precision } } }',
        context,
    )
    assert data['updatePost']['location'] == {'lat': 3.0, 'lng': 2.5, 'precision': 'exact'}


@pytest.mark.asyncio
async def test_json_and_updated_at(context):
    data = await ok('mutation { createPost(data: {title: "j", extra: {a: [1, 2]}}) { extra updated_at } }', context)
    assert data['createPost']['extra'] == {'a': [1, 2]}
    assert data['createPost']['updated_at'] is not None


@pytest.mark.asyncio
async def test_driver_from_context(db_session):
    from fieldql.sql import SQLAlchemyDriver

    driver = SQLAlchemyDriver(db_session, compiled)
    context = {'fieldql_driver': driver}
    data = await ok('mutation { createTag(data: {name: "x"}) { id name } }', context)
    assert data['createTag'] == {'id': 1, 'name': 'x'}
    assert context['_fieldql_operations'].driver is driver

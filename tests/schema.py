"""Shared fieldql schema used across tests."""

from typing import Optional

from fieldql import FieldQLSchema
from fieldql.core.kinds import EnumDBField, ScalarDBField
from fieldql.field_types import (
    checkbox,
    composite,
    integer,
    json,
    relationship,
    select,
    text,
    timestamp,
    virtual,
)

schema = FieldQLSchema()


@schema.list()
class User:
    """A person who writes posts."""

    name = text(required=True)
    email = text(unique=True)
    is_admin = checkbox()
    posts = relationship('Post.author', many=True)


@schema.list()
class Post:
    title = text(required=True)
    status = select(['draft', 'published'], required=True, default='draft')
    views = integer(default=0)
    published_at = timestamp()
    updated_at = timestamp(updated_at=True)
    extra = json()
    author = relationship('User.posts')
    tags = relationship('Tag.posts', many=True)
    location = composite({
        'lat': ScalarDBField('Float'),
        'lng': ScalarDBField('Float'),
        'precision': EnumDBField('PostLocationPrecision', ('exact', 'approximate')),
    })
    headline = virtual(str, lambda item, context: item['title'].upper())


@schema.list(plural='tagList')
class Tag:
    name = text(required=True, unique=True)
    posts = relationship('Post.tags', many=True)


compiled = schema.compile()
strawberry_schema = schema.to_strawberry()

from __future__ import annotations

import keyword
import re

import inflection

__all__ = [
    'from_camel',
    'to_camel',
    'pascal',
    'lower_first',
    'pluralize',
    'ListNames',
    'list_names',
    'is_identifier',
]

_camel_to_snake_pattern = re.compile(r'(?<!^)(?=[A-Z])')
_identifier = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def from_camel(name: str) -> str:
    """Convert lower/upper camelCase to snake_case."""
    if not name:
        return name
    return _camel_to_snake_pattern.sub('_', str(name)).lower()


def to_camel(name: str) -> str:
    """Convert snake_case to lowerCamelCase."""
    if not name:
        return name
    parts = str(name).split('_')
    return parts[0] + ''.join(p.capitalize() for p in parts[1:])


def pascal(name: str) -> str:
    camel = to_camel(name)
    return camel[:1].upper() + camel[1:]


def lower_first(name: str) -> str:
    return name[:1].lower() + name[1:]


def pluralize(word: str) -> str:
    """Plural query name; uncountable words come back unchanged."""
    if not word:
        return word
    return inflection.pluralize(word)


def is_identifier(name: str) -> bool:
    return bool(_identifier.match(name or '')) and not keyword.iskeyword(name)


class ListNames:
    """GraphQL names generated for one list key (``Post`` -> ``posts`` ...)."""

    def __init__(self, list_key: str, plural: str | None = None):
        self.key = list_key
        self.singular = lower_first(list_key)
        self.plural = lower_first(plural) if plural else pluralize(self.singular)
        if self.plural == self.singular:
            self.plural = f"all{list_key}"
        self.count = f"{self.plural}Count"
        self.create = f"create{list_key}"
        self.update = f"update{list_key}"
        self.output = list_key
        self.create_input = f"{list_key}CreateInput"
        self.update_input = f"{list_key}UpdateInput"
        self.where_input = f"{list_key}WhereInput"
        self.unique_where_input = f"{list_key}WhereUniqueInput"
        self.order_by_input = f"{list_key}OrderByInput"
        self.one_create_input = f"{list_key}RelateToOneForCreateInput"
        self.one_update_input = f"{list_key}RelateToOneForUpdateInput"
        self.many_where_input = f"{list_key}ManyRelationFilter"
        self.many_create_input = f"{list_key}RelateToManyForCreateInput"
        self.many_update_input = f"{list_key}RelateToManyForUpdateInput"


def list_names(list_key: str, plural: str | None = None) -> ListNames:
    return ListNames(list_key, plural)

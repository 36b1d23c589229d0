"""
Dialect-aware column types.

RoleTags stores a set of role tags as a JSON array: JSONB on PostgreSQL,
generic JSON elsewhere. Values are normalized to a sorted, de-duplicated
list of strings so equal role sets compare equal in the store.
"""
import enum

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator
from sqlalchemy.engine import Dialect


class RoleTags(TypeDecorator):
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return []
        tags = set()
        for tag in value:
            tags.add(tag.value if isinstance(tag, enum.Enum) else str(tag))
        return sorted(tags)

    def process_result_value(self, value, dialect):
        return list(value or [])

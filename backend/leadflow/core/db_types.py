"""Custom column types that work across PostgreSQL and SQLite."""

import uuid

from sqlalchemy import JSON, String, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB, UUID as PostgreSQL_UUID


class UUID(TypeDecorator):
    """
    Platform-independent UUID type.

    Uses PostgreSQL's native UUID type when available, otherwise stores the
    canonical string form in a String(36) column (SQLite test database).
    """

    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgreSQL_UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class JSONList(TypeDecorator):
    """
    List of JSON scalars (role names, user ids, backup code hashes).

    JSONB on PostgreSQL, plain JSON elsewhere. Values are always read back as
    a ``list`` and ``None`` is preserved, so callers can tell "never set" from
    "empty".
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return [str(item) if isinstance(item, uuid.UUID) else item for item in value]

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return list(value)

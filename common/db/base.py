from sqlalchemy import BigInteger, Column, DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator, Integer

from common.core.clock import utc_now

Base = declarative_base()


class BigIntegerType(TypeDecorator):
    """A type that maps to BigInteger on PostgreSQL/MySQL and Integer on SQLite."""

    impl = Integer
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name in ("postgresql", "mysql"):
            return dialect.type_descriptor(BigInteger())
        else:
            return dialect.type_descriptor(Integer())


class TimestampMixin:
    """created_at / updated_at filled on the Python side.

    Python-side defaults keep the attributes loaded after a flush, so async
    sessions never need a lazy refresh to read them.
    """

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

"""
Base class for all SQLAlchemy ORM models.
All table models should inherit from Base.
"""
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import BigInteger, Column, DateTime, Integer
from sqlalchemy.sql import func


# BIGINT on PostgreSQL; SQLite only autoincrements an INTEGER primary key
BigIntegerPK = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    """Timezone-aware 'now' used for Python-side column defaults."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """
    Base class for all ORM models.
    This is used by Alembic to detect schema changes.
    """
    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at columns to any model.
    Usage: class MyModel(Base, TimestampMixin):

    Values are set Python-side (microsecond precision) because created_at
    breaks ordering ties and updated_at drives status polling.
    """
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )

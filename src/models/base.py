"""SQLAlchemy declarative base with common mixins."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from uuid6 import uuid7


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class UUIDv7Mixin:
    """
    Mixin that adds a UUIDv7 primary key.

    UUIDv7 values are time-ordered, so inserts stay append-friendly on the
    primary key index and ids sort in creation order.
    """

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid7)


class CreatedAtMixin:
    """
    Mixin that adds an immutable created_at column.

    Timezone-aware (TIMESTAMP WITH TIME ZONE on PostgreSQL).
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

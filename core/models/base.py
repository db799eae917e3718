"""Base model and mixins for all SQLAlchemy models.

Provides:
- Base: Declarative base class for all models
- RecordMixin: Adds a string UUID primary key and audit timestamps

Models that are keyed by something other than ``id`` (team users are keyed
by the auth ``user_id``) use AuditMixin alone.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all tracker models."""
    pass


class AuditMixin:
    """Mixin providing standard audit columns.

    Adds:
    - created_at: Timestamp set on insert
    - updated_at: Timestamp updated on every change
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class RecordMixin(AuditMixin):
    """AuditMixin plus an auto-generated UUID primary key stored as text."""

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )


def iso(value) -> str | None:
    """Serialise a date/datetime column for to_dict()."""
    return value.isoformat() if value is not None else None

"""Column mixins shared by relay models."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime

from app.utils.time import utcnow


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class SoftDeleteMixin:
    """Rows are never removed; ``is_active`` false hides them from normal reads."""

    is_active = Column(Boolean, default=True, nullable=False)

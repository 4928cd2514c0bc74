"""Reusable column mixins for models."""

from __future__ import annotations

from sqlalchemy import Column, DateTime

from app.utils.time import utcnow


class TimestampMixin:
    """created_at / updated_at maintained by the ORM."""

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

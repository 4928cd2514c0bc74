"""User model: public identity plus presence fields written by presence pings."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, String, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    """Platform member. Read-only from the messaging core except for presence."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(320), unique=True, nullable=False, index=True)
    name = Column(String(256), nullable=True)
    image = Column(String(1024), nullable=True)
    is_online = Column(Boolean, nullable=False, default=False)
    last_seen = Column(DateTime(timezone=True), nullable=True)

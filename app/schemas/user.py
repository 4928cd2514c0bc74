"""Pydantic schemas for users and presence."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.utils.time import ensure_utc


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: Optional[str] = Field(None, max_length=256)
    image: Optional[str] = None


class UserRead(BaseModel):
    """Public identity of a user."""

    id: UUID
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    is_online: bool
    last_seen: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("last_seen")
    @classmethod
    def last_seen_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class PresenceRead(BaseModel):
    """Presence of a user after applying the last-seen freshness heuristic."""

    user_id: UUID
    is_online: bool
    last_seen: Optional[datetime] = None

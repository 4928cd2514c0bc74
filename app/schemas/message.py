"""Pydantic schemas for messages."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.utils.time import ensure_utc


class MessageCreate(BaseModel):
    """Request body for sending a message. Content is validated by the service."""

    content: str
    client_token: Optional[str] = Field(
        None,
        max_length=64,
        description="Sender-generated idempotency token; resends return the stored message.",
    )


class MessageRead(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str
    created_at: datetime
    is_seen: bool
    client_token: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("created_at")
    @classmethod
    def created_at_as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class SeenResult(BaseModel):
    """Number of partner messages flipped to seen by a markAsSeen call."""

    updated: int

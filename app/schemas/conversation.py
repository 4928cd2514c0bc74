"""Pydantic schemas for conversations and their list view model."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ConversationStart(BaseModel):
    """Request body for getOrCreateConversation; the caller is the other participant."""

    partner_id: UUID


class ConversationRef(BaseModel):
    conversation_id: UUID


class LastMessagePreview(BaseModel):
    content: str
    created_at: datetime
    sender_id: UUID
    is_seen: bool

    model_config = {"from_attributes": True}


class ConversationSummary(BaseModel):
    """
    Conversation list entry, derived on every read and never stored.

    unread_count counts messages from the partner not yet seen by the viewer.
    """

    id: UUID
    partner_id: UUID
    partner_name: str
    partner_image: Optional[str] = None
    is_partner_online: bool = False
    partner_last_seen: Optional[datetime] = None
    partner_last_typed_at: Optional[datetime] = None
    is_partner_typing: bool = False
    created_at: datetime
    updated_at: datetime
    last_message: Optional[LastMessagePreview] = None
    unread_count: int = 0

    @property
    def sort_key(self) -> datetime:
        if self.last_message is not None:
            return self.last_message.created_at
        return self.created_at


class TypingUpdate(BaseModel):
    is_typing: bool


class TypingRead(BaseModel):
    conversation_id: UUID
    user_id: UUID
    is_typing: bool
    last_typed_at: Optional[datetime] = None


class UnreadCountRead(BaseModel):
    unread_count: int

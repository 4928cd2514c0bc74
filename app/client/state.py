"""Session-scoped client state for one signed-in user."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from app.constants.messaging import DeliveryStatus
from app.exceptions import MessagingError
from app.schemas.conversation import ConversationSummary
from app.schemas.message import MessageRead


@dataclass
class ChatMessage:
    """A transcript line: either a stored message or a local optimistic one."""

    conversation_id: UUID
    sender_id: UUID
    content: str
    created_at: datetime
    is_seen: bool = False
    id: Optional[UUID] = None
    client_token: Optional[str] = None
    status: DeliveryStatus = DeliveryStatus.SENT

    @classmethod
    def from_read(cls, message: MessageRead) -> "ChatMessage":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            content=message.content,
            created_at=message.created_at,
            is_seen=message.is_seen,
            client_token=message.client_token,
        )

    @property
    def is_optimistic(self) -> bool:
        return self.id is None


@dataclass
class MessagingSessionState:
    """
    Everything the messaging core knows about the current session.

    Created when a user session starts and discarded on logout. ``pending``
    holds optimistic messages, keyed by client token, that no server response
    has confirmed yet (including failed sends awaiting a retry).
    """

    user_id: UUID
    conversations: List[ConversationSummary] = field(default_factory=list)
    active_conversation_id: Optional[UUID] = None
    active_messages: List[ChatMessage] = field(default_factory=list)
    pending: Dict[str, ChatMessage] = field(default_factory=dict)
    partner_typing: bool = False
    last_error: Optional[MessagingError] = None

    def find_conversation(self, conversation_id: UUID) -> Optional[ConversationSummary]:
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def activate(self, conversation_id: Optional[UUID]) -> None:
        self.active_conversation_id = conversation_id
        self.active_messages = []
        self.partner_typing = False

    def pending_for(self, conversation_id: UUID) -> List[ChatMessage]:
        messages = [
            m for m in self.pending.values() if m.conversation_id == conversation_id
        ]
        return sorted(messages, key=lambda m: m.created_at)

    @property
    def total_unread(self) -> int:
        return sum(c.unread_count for c in self.conversations)

"""Transport-agnostic operation surface consumed by the messaging core."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from app.schemas.conversation import ConversationSummary, TypingRead
from app.schemas.message import MessageRead


class MessagingBackend(ABC):
    """
    Store operations as seen by one signed-in user.

    Every method is bound to ``user_id``; implementations raise the errors from
    ``app.exceptions`` (TransientFailure for network or server unavailability).
    """

    user_id: UUID

    @abstractmethod
    async def get_or_create_conversation(self, partner_id: UUID) -> UUID: ...

    @abstractmethod
    async def get_conversations(self) -> List[ConversationSummary]: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: UUID) -> ConversationSummary: ...

    @abstractmethod
    async def get_conversation_messages(
        self, conversation_id: UUID, since: Optional[datetime] = None
    ) -> List[MessageRead]: ...

    @abstractmethod
    async def send_message(
        self,
        conversation_id: UUID,
        content: str,
        client_token: Optional[str] = None,
    ) -> MessageRead: ...

    @abstractmethod
    async def mark_as_seen(self, conversation_id: UUID) -> int: ...

    @abstractmethod
    async def set_typing_status(self, conversation_id: UUID, is_typing: bool) -> None: ...

    @abstractmethod
    async def get_partner_typing(self, conversation_id: UUID) -> TypingRead: ...

    @abstractmethod
    async def ping_presence(self) -> None: ...

    @abstractmethod
    async def set_offline(self) -> None: ...

    async def aclose(self) -> None:
        """Release transport resources. No-op by default."""
        return None

"""Fixtures for the client-side messaging core."""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

import pytest
import pytest_asyncio

from app.client.backend import MessagingBackend
from app.client.messaging_core import MessagingCore
from app.exceptions import MessagingError
from app.schemas.conversation import ConversationSummary, TypingRead
from app.schemas.message import MessageRead
from app.services.access import require_participant
from app.services.conversation_service import ConversationService
from app.services.message_service import MessageService
from app.services.typing_service import TypingService
from app.services.user_service import UserService


class ServiceBackend(MessagingBackend):
    """
    In-process backend calling the services against the test session.

    ``gates`` holds back message responses per conversation, already read,
    until the event is set; ``send_failures`` are raised by the next send
    calls, in order.
    """

    def __init__(self, db, user_id: UUID) -> None:
        self.db = db
        self.user_id = user_id
        self.calls: List[tuple] = []
        self.gates: Dict[UUID, asyncio.Event] = {}
        self.send_failures: List[MessagingError] = []

    def calls_named(self, name: str) -> List[tuple]:
        return [c[1:] for c in self.calls if c[0] == name]

    async def get_or_create_conversation(self, partner_id: UUID) -> UUID:
        return ConversationService(self.db).get_or_create(self.user_id, partner_id).id

    async def get_conversations(self) -> List[ConversationSummary]:
        return ConversationService(self.db).list_for_user(self.user_id)

    async def get_conversation(self, conversation_id: UUID) -> ConversationSummary:
        conversation = require_participant(self.db, conversation_id, self.user_id)
        return ConversationService(self.db).build_summary(conversation, self.user_id)

    async def get_conversation_messages(
        self, conversation_id: UUID, since: Optional[datetime] = None
    ) -> List[MessageRead]:
        messages = [
            MessageRead.model_validate(m)
            for m in MessageService(self.db).list_for_viewer(
                conversation_id, self.user_id, since=since
            )
        ]
        gate = self.gates.get(conversation_id)
        if gate is not None:
            await gate.wait()
        return messages

    async def send_message(
        self,
        conversation_id: UUID,
        content: str,
        client_token: Optional[str] = None,
    ) -> MessageRead:
        self.calls.append(("send_message", conversation_id, content, client_token))
        if self.send_failures:
            raise self.send_failures.pop(0)
        message = MessageService(self.db).append(
            conversation_id, self.user_id, content, client_token=client_token
        )
        return MessageRead.model_validate(message)

    async def mark_as_seen(self, conversation_id: UUID) -> int:
        self.calls.append(("mark_as_seen", conversation_id))
        return MessageService(self.db).mark_seen(conversation_id, self.user_id)

    async def set_typing_status(self, conversation_id: UUID, is_typing: bool) -> None:
        self.calls.append(("set_typing_status", conversation_id, is_typing))
        TypingService(self.db).set_typing(conversation_id, self.user_id, is_typing)

    async def get_partner_typing(self, conversation_id: UUID) -> TypingRead:
        conversation = require_participant(self.db, conversation_id, self.user_id)
        partner_id = conversation.partner_id(self.user_id)
        svc = TypingService(self.db)
        last_typed_at = svc.last_typed_at(conversation_id, partner_id)
        return TypingRead(
            conversation_id=conversation_id,
            user_id=partner_id,
            is_typing=svc.is_fresh(last_typed_at),
            last_typed_at=last_typed_at,
        )

    async def ping_presence(self) -> None:
        self.calls.append(("ping_presence",))
        UserService(self.db).ping_presence(self.user_id)

    async def set_offline(self) -> None:
        self.calls.append(("set_offline",))
        UserService(self.db).set_offline(self.user_id)


@pytest.fixture(scope="function")
def backend(db, setup_user):
    return ServiceBackend(db, setup_user.id)


@pytest_asyncio.fixture(scope="function")
async def core(backend):
    """Messaging core with fast loops so polling is observable within a test."""
    messaging_core = MessagingCore(
        backend,
        conversation_poll_interval=0.05,
        message_poll_interval=0.05,
        presence_ping_interval=60,
        typing_debounce_ms=50,
    )
    yield messaging_core
    await messaging_core.stop()

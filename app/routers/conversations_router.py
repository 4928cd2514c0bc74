"""Conversations API: the messaging operation surface."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.commands.messages.send_message_command import SendMessageCommand
from app.db import get_db
from app.models.conversation import Conversation
from app.models.user import User
from app.routers.utils.dependencies import (
    get_current_user,
    get_participant_conversation,
)
from app.schemas.conversation import (
    ConversationRef,
    ConversationStart,
    ConversationSummary,
    TypingRead,
    TypingUpdate,
    UnreadCountRead,
)
from app.schemas.message import MessageCreate, MessageRead, SeenResult
from app.services.conversation_service import ConversationService
from app.services.message_service import MessageService
from app.services.typing_service import TypingService

conversations_router = APIRouter(prefix="/conversations", tags=["conversations"])


@conversations_router.post("", response_model=ConversationRef)
def get_or_create_conversation(
    data: ConversationStart,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationRef:
    """Return the conversation with partner_id, creating it on first contact."""
    conversation = ConversationService(db).get_or_create(
        current_user.id, data.partner_id
    )
    return ConversationRef(conversation_id=conversation.id)


@conversations_router.get("", response_model=List[ConversationSummary])
def list_conversations(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[ConversationSummary]:
    """List the caller's conversations with partner, last message and unread count."""
    return ConversationService(db).list_for_user(current_user.id)


@conversations_router.get("/unread-count", response_model=UnreadCountRead)
def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCountRead:
    """Unread partner messages across all of the caller's conversations."""
    count = MessageService(db).total_unread_for_user(current_user.id)
    return UnreadCountRead(unread_count=count)


@conversations_router.get("/{conversation_id}", response_model=ConversationSummary)
def get_conversation(
    conversation: Conversation = Depends(get_participant_conversation),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationSummary:
    """Single list entry; used to validate deep links."""
    return ConversationService(db).build_summary(conversation, current_user.id)


@conversations_router.get(
    "/{conversation_id}/messages", response_model=List[MessageRead]
)
def list_conversation_messages(
    conversation: Conversation = Depends(get_participant_conversation),
    since: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
) -> List[MessageRead]:
    """Messages oldest first; since= returns only strictly newer messages."""
    messages = MessageService(db).list_for(conversation.id, since=since)
    return [MessageRead.model_validate(m) for m in messages]


@conversations_router.post(
    "/{conversation_id}/messages", response_model=MessageRead, status_code=201
)
def send_message(
    conversation_id: UUID,
    data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageRead:
    """Append a message from the caller and notify the partner."""
    message = SendMessageCommand(db).execute(
        conversation_id,
        current_user.id,
        data.content,
        client_token=data.client_token,
    )
    return MessageRead.model_validate(message)


@conversations_router.post("/{conversation_id}/seen", response_model=SeenResult)
def mark_as_seen(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SeenResult:
    """Mark every partner message in the conversation as seen."""
    updated = MessageService(db).mark_seen(conversation_id, current_user.id)
    return SeenResult(updated=updated)


@conversations_router.put("/{conversation_id}/typing", status_code=204)
def set_typing_status(
    conversation_id: UUID,
    data: TypingUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    """Record (or clear) the caller's typing signal."""
    TypingService(db).set_typing(conversation_id, current_user.id, data.is_typing)
    return Response(status_code=204)


@conversations_router.get("/{conversation_id}/typing", response_model=TypingRead)
def get_partner_typing(
    conversation: Conversation = Depends(get_participant_conversation),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TypingRead:
    """Whether the caller's partner is currently typing."""
    partner_id = conversation.partner_id(current_user.id)
    svc = TypingService(db)
    last_typed_at = svc.last_typed_at(conversation.id, partner_id)
    return TypingRead(
        conversation_id=conversation.id,
        user_id=partner_id,
        is_typing=svc.is_fresh(last_typed_at),
        last_typed_at=last_typed_at,
    )

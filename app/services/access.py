"""Conversation lookup and participant checks shared by the messaging services."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from app.exceptions import NotFoundError, UnauthorizedError
from app.models.conversation import Conversation


def require_conversation(db: Session, conversation_id: UUID) -> Conversation:
    conversation = (
        db.query(Conversation).filter(Conversation.id == conversation_id).first()
    )
    if conversation is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return conversation


def require_participant(
    db: Session, conversation_id: UUID, user_id: UUID
) -> Conversation:
    """Return the conversation if user_id is one of its two participants."""
    conversation = require_conversation(db, conversation_id)
    if not conversation.has_participant(user_id):
        raise UnauthorizedError(
            f"User {user_id} is not a participant of conversation {conversation_id}"
        )
    return conversation

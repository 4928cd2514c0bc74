"""Message model: append-only log entry with a one-way seen flag."""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db import Base
from app.utils.time import utcnow


class Message(Base):
    """
    One message in a conversation.

    Immutable after insert except is_seen, which only ever goes False -> True.
    client_token is the sender's idempotency key; resends with the same token
    resolve to the stored row.
    """

    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index(
            "ix_messages_conversation_sender_seen",
            "conversation_id",
            "sender_id",
            "is_seen",
        ),
        UniqueConstraint(
            "conversation_id",
            "sender_id",
            "client_token",
            name="uq_messages_conversation_sender_token",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_seen = Column(Boolean, nullable=False, default=False)
    client_token = Column(String(64), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User")

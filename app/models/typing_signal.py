"""Typing signal: last keystroke time per (conversation, user)."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Uuid

from app.db import Base


class TypingSignal(Base):
    """Overwritten on every debounce tick, never deleted; only its freshness matters."""

    __tablename__ = "typing_signals"

    conversation_id = Column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    last_typed_at = Column(DateTime(timezone=True), nullable=True)

"""
Conversation model: one row per unordered pair of users.

The pair is stored canonically (user_low_id < user_high_id) and guarded by a
unique constraint, so concurrent creation for the same pair converges on a
single row.
"""

from __future__ import annotations

import uuid
from uuid import UUID

from sqlalchemy import CheckConstraint, Column, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import TimestampMixin


class Conversation(Base, TimestampMixin):
    """Join point for messages and typing signals between exactly two users."""

    __tablename__ = "conversations"

    __table_args__ = (
        UniqueConstraint(
            "user_low_id", "user_high_id", name="uq_conversations_participant_pair"
        ),
        CheckConstraint(
            "user_low_id <> user_high_id", name="ck_conversations_distinct_participants"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_low_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_high_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    user_low = relationship("User", foreign_keys=[user_low_id])
    user_high = relationship("User", foreign_keys=[user_high_id])
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    @staticmethod
    def canonical_pair(user_a: UUID, user_b: UUID) -> tuple[UUID, UUID]:
        return (user_a, user_b) if str(user_a) < str(user_b) else (user_b, user_a)

    @property
    def participant_ids(self) -> tuple[UUID, UUID]:
        return self.user_low_id, self.user_high_id

    def has_participant(self, user_id: UUID) -> bool:
        return user_id in self.participant_ids

    def partner_id(self, user_id: UUID) -> UUID:
        """The other participant. Caller must ensure user_id participates."""
        return self.user_high_id if user_id == self.user_low_id else self.user_low_id

"""Conversation store: idempotent pair creation and the per-user list view."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.constants.messaging import FALLBACK_DISPLAY_NAME
from app.exceptions import InvalidOperation
from app.infra.logging_config import get_logger
from app.models.conversation import Conversation
from app.schemas.conversation import ConversationSummary, LastMessagePreview
from app.services.access import require_conversation, require_participant
from app.services.message_service import MessageService
from app.services.typing_service import TypingService
from app.services.user_service import UserService
from app.utils.time import Clock, ensure_utc, utcnow

logger = get_logger("conversations")


class ConversationService:
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        message_service: Optional[MessageService] = None,
        typing_service: Optional[TypingService] = None,
        user_service: Optional[UserService] = None,
    ) -> None:
        self.db = db
        self._clock = clock or utcnow
        self._message_svc = message_service or MessageService(db, clock=self._clock)
        self._typing_svc = typing_service or TypingService(db, clock=self._clock)
        self._user_svc = user_service or UserService(db, clock=self._clock)

    def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .first()
        )

    def require_conversation(self, conversation_id: UUID) -> Conversation:
        return require_conversation(self.db, conversation_id)

    def require_participant(self, conversation_id: UUID, user_id: UUID) -> Conversation:
        return require_participant(self.db, conversation_id, user_id)

    def find_by_pair(self, user_a: UUID, user_b: UUID) -> Optional[Conversation]:
        low, high = Conversation.canonical_pair(user_a, user_b)
        return (
            self.db.query(Conversation)
            .filter(
                Conversation.user_low_id == low,
                Conversation.user_high_id == high,
            )
            .first()
        )

    def get_or_create(self, user_a: UUID, user_b: UUID) -> Conversation:
        """
        Return the single conversation for the unordered pair {user_a, user_b}.

        Creation is an insert guarded by the unique pair constraint; when two
        callers race, the loser's insert fails and it re-reads the winner's row.

        Raises:
            InvalidOperation: user_a == user_b.
            NotFoundError: either user does not exist.
        """
        if user_a == user_b:
            raise InvalidOperation("A user cannot start a conversation with themself")
        existing = self.find_by_pair(user_a, user_b)
        if existing is not None:
            return existing

        self._user_svc.require_user(user_a)
        self._user_svc.require_user(user_b)
        low, high = Conversation.canonical_pair(user_a, user_b)
        now = self._clock()
        conversation = Conversation(
            user_low_id=low,
            user_high_id=high,
            created_at=now,
            updated_at=now,
        )
        self.db.add(conversation)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            winner = self.find_by_pair(user_a, user_b)
            if winner is None:
                raise
            logger.info(
                "Conversation create race for %s/%s resolved to %s",
                low,
                high,
                winner.id,
            )
            return winner
        self.db.refresh(conversation)
        logger.info("Created conversation %s for %s/%s", conversation.id, low, high)
        return conversation

    def get_conversations_for_user(self, user_id: UUID) -> List[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(
                or_(
                    Conversation.user_low_id == user_id,
                    Conversation.user_high_id == user_id,
                )
            )
            .all()
        )

    def build_summary(
        self,
        conversation: Conversation,
        viewer_id: UUID,
        now: Optional[datetime] = None,
    ) -> ConversationSummary:
        now = now or self._clock()
        partner_id = conversation.partner_id(viewer_id)
        partner = self._user_svc.get_user(partner_id)
        latest = self._message_svc.latest(conversation.id)
        last_typed_at = self._typing_svc.last_typed_at(conversation.id, partner_id)
        return ConversationSummary(
            id=conversation.id,
            partner_id=partner_id,
            partner_name=(partner.name if partner and partner.name else FALLBACK_DISPLAY_NAME),
            partner_image=partner.image if partner else None,
            is_partner_online=(
                self._user_svc.is_really_online(partner, now=now) if partner else False
            ),
            partner_last_seen=ensure_utc(partner.last_seen) if partner else None,
            partner_last_typed_at=last_typed_at,
            is_partner_typing=self._typing_svc.is_fresh(last_typed_at, now=now),
            created_at=ensure_utc(conversation.created_at),
            updated_at=ensure_utc(conversation.updated_at),
            last_message=(
                LastMessagePreview(
                    content=latest.content,
                    created_at=ensure_utc(latest.created_at),
                    sender_id=latest.sender_id,
                    is_seen=latest.is_seen,
                )
                if latest is not None
                else None
            ),
            unread_count=self._message_svc.unread_count(conversation.id, viewer_id),
        )

    def list_for_user(self, user_id: UUID) -> List[ConversationSummary]:
        """
        Every conversation of user_id as a list entry, most recent activity first.

        Conversations without messages sort by their own timestamp.
        """
        now = self._clock()
        summaries = [
            self.build_summary(conversation, user_id, now=now)
            for conversation in self.get_conversations_for_user(user_id)
        ]
        summaries.sort(key=lambda s: s.sort_key, reverse=True)
        return summaries

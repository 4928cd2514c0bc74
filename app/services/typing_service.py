"""Typing signals: a decaying liveness flag per (conversation, user)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.typing_signal import TypingSignal
from app.services.access import require_participant
from app.utils.time import Clock, elapsed_ms, ensure_utc, utcnow


class TypingService:
    """
    Records the last keystroke time and answers "is typing" by freshness.

    Clearing on is_typing=False is eager; a client that never sends the
    false call still drops out once the window elapses.
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        window_ms: Optional[int] = None,
    ) -> None:
        self.db = db
        self._clock = clock or utcnow
        self.window_ms = (
            window_ms if window_ms is not None else get_settings().typing_window_ms
        )

    def _get_signal(self, conversation_id: UUID, user_id: UUID) -> Optional[TypingSignal]:
        return (
            self.db.query(TypingSignal)
            .filter(
                TypingSignal.conversation_id == conversation_id,
                TypingSignal.user_id == user_id,
            )
            .first()
        )

    def set_typing(
        self, conversation_id: UUID, user_id: UUID, is_typing: bool
    ) -> TypingSignal:
        require_participant(self.db, conversation_id, user_id)
        value = self._clock() if is_typing else None
        signal = self._get_signal(conversation_id, user_id)
        if signal is None:
            signal = TypingSignal(
                conversation_id=conversation_id,
                user_id=user_id,
                last_typed_at=value,
            )
            self.db.add(signal)
            try:
                self.db.commit()
            except IntegrityError:
                # Concurrent first keystroke from another request; overwrite its row
                self.db.rollback()
                signal = self._get_signal(conversation_id, user_id)
                signal.last_typed_at = value
                self.db.commit()
        else:
            signal.last_typed_at = value
            self.db.commit()
        self.db.refresh(signal)
        return signal

    def last_typed_at(self, conversation_id: UUID, user_id: UUID) -> Optional[datetime]:
        signal = self._get_signal(conversation_id, user_id)
        if signal is None:
            return None
        return ensure_utc(signal.last_typed_at)

    def is_fresh(
        self, last_typed_at: Optional[datetime], now: Optional[datetime] = None
    ) -> bool:
        if last_typed_at is None:
            return False
        now = now or self._clock()
        return elapsed_ms(last_typed_at, now) < self.window_ms

    def is_typing(
        self,
        conversation_id: UUID,
        user_id: UUID,
        now: Optional[datetime] = None,
    ) -> bool:
        return self.is_fresh(self.last_typed_at(conversation_id, user_id), now)

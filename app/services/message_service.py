"""Message log: append, ordered reads and bulk seen transitions."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.exceptions import ValidationError
from app.models.conversation import Conversation
from app.models.message import Message
from app.services.access import require_conversation, require_participant
from app.utils.time import Clock, ensure_utc, utcnow

_MIN_TICK = timedelta(microseconds=1)


class MessageService:
    def __init__(self, db: Session, clock: Optional[Clock] = None) -> None:
        self.db = db
        self._clock = clock or utcnow

    def _validate_content(self, content: Optional[str]) -> str:
        if content is None or not content.strip():
            raise ValidationError("Message content must not be empty")
        max_length = get_settings().message_max_length
        if len(content) > max_length:
            raise ValidationError(
                f"Message content exceeds {max_length} characters"
            )
        return content

    def find_by_token(
        self, conversation_id: UUID, sender_id: UUID, client_token: str
    ) -> Optional[Message]:
        return (
            self.db.query(Message)
            .filter(
                Message.conversation_id == conversation_id,
                Message.sender_id == sender_id,
                Message.client_token == client_token,
            )
            .first()
        )

    def _next_created_at(self, conversation_id: UUID) -> datetime:
        """now(), bumped past the previous message so order never ties or regresses."""
        now = ensure_utc(self._clock())
        previous = self.latest(conversation_id)
        if previous is not None:
            floor = ensure_utc(previous.created_at) + _MIN_TICK
            if now < floor:
                return floor
        return now

    def append(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        content: str,
        client_token: Optional[str] = None,
    ) -> Message:
        """
        Append a message from sender_id. The message starts unseen.

        Raises:
            NotFoundError: conversation does not exist.
            ValidationError: empty/oversized content or sender is not a participant.
        """
        message, _ = self.append_or_get(
            conversation_id, sender_id, content, client_token=client_token
        )
        return message

    def append_or_get(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        content: str,
        client_token: Optional[str] = None,
    ) -> Tuple[Message, bool]:
        """Like append, also reporting whether a new row was stored (False for a repeated token)."""
        content = self._validate_content(content)
        conversation = require_conversation(self.db, conversation_id)
        if not conversation.has_participant(sender_id):
            raise ValidationError(
                f"Sender {sender_id} is not a participant of conversation {conversation_id}"
            )
        if client_token:
            existing = self.find_by_token(conversation_id, sender_id, client_token)
            if existing is not None:
                return existing, False

        created_at = self._next_created_at(conversation_id)
        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            created_at=created_at,
            is_seen=False,
            client_token=client_token,
        )
        self.db.add(message)
        conversation.updated_at = created_at
        try:
            self.db.commit()
        except IntegrityError:
            # Same token raced in from a retry; the stored row wins
            self.db.rollback()
            if client_token:
                existing = self.find_by_token(conversation_id, sender_id, client_token)
                if existing is not None:
                    return existing, False
            raise
        self.db.refresh(message)
        return message, True

    def list_for(
        self, conversation_id: UUID, since: Optional[datetime] = None
    ) -> List[Message]:
        """All messages oldest first; with since, only those strictly newer."""
        query = self.db.query(Message).filter(
            Message.conversation_id == conversation_id
        )
        if since is not None:
            query = query.filter(Message.created_at > ensure_utc(since))
        return query.order_by(Message.created_at.asc(), Message.id.asc()).all()

    def list_for_viewer(
        self,
        conversation_id: UUID,
        viewer_id: UUID,
        since: Optional[datetime] = None,
    ) -> List[Message]:
        require_participant(self.db, conversation_id, viewer_id)
        return self.list_for(conversation_id, since=since)

    def latest(self, conversation_id: UUID) -> Optional[Message]:
        return (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .first()
        )

    def mark_seen(self, conversation_id: UUID, viewer_id: UUID) -> int:
        """
        Flip every partner message in the conversation to seen, in one UPDATE.

        Idempotent: an already-seen conversation updates zero rows. The viewer's
        own messages are never touched.
        """
        require_participant(self.db, conversation_id, viewer_id)
        updated = (
            self.db.query(Message)
            .filter(
                Message.conversation_id == conversation_id,
                Message.sender_id != viewer_id,
                Message.is_seen.is_(False),
            )
            .update({Message.is_seen: True}, synchronize_session=False)
        )
        self.db.commit()
        return updated or 0

    def unread_count(self, conversation_id: UUID, viewer_id: UUID) -> int:
        return (
            self.db.query(Message)
            .filter(
                Message.conversation_id == conversation_id,
                Message.sender_id != viewer_id,
                Message.is_seen.is_(False),
            )
            .count()
        )

    def total_unread_for_user(self, user_id: UUID) -> int:
        """Unread partner messages across every conversation of the user."""
        return (
            self.db.query(Message)
            .join(Conversation, Conversation.id == Message.conversation_id)
            .filter(
                or_(
                    Conversation.user_low_id == user_id,
                    Conversation.user_high_id == user_id,
                ),
                Message.sender_id != user_id,
                Message.is_seen.is_(False),
            )
            .count()
        )

    def delete_all(self) -> int:
        """Maintenance: wipe the message log."""
        deleted = self.db.query(Message).delete()
        self.db.commit()
        return deleted

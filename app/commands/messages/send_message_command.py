"""
Command to send a message in a conversation.

Checks the sender's rate limit, appends to the message log, then hands the
recipient notification to the fan-out task. Fan-out is one-way: failing to
enqueue it never fails the send. A resend with an already stored client token
returns the stored message without counting against the rate limit or
notifying again.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import get_settings
from app.exceptions import RateLimitedError
from app.models.message import Message
from app.services.message_service import MessageService
from app.tasks.notification_task import notify_new_message_task
from app.utils.rate_limit import check_message_rate_limit, get_redis_client


class SendMessageCommand:
    def __init__(
        self,
        db: Session,
        message_service: Optional[MessageService] = None,
        redis_client: Optional[object] = None,
    ) -> None:
        self.db = db
        self.settings = get_settings()
        self.message_service = message_service or MessageService(db)
        self._redis_client = redis_client
        self.logger = logging.getLogger(__name__)

    def _rate_limit_client(self) -> Optional[object]:
        if self._redis_client is not None:
            return self._redis_client
        if self.settings.message_rate_limit_per_minute is None:
            return None
        return get_redis_client()

    def execute(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        content: str,
        client_token: Optional[str] = None,
    ) -> Message:
        """
        Append the message and schedule the recipient notification.

        Args:
            conversation_id: Target conversation.
            sender_id: Must be a participant of the conversation.
            content: Non-empty text.
            client_token: Optional idempotency token generated by the sender.

        Returns:
            Message: The stored message (the existing one for a repeated token).

        Raises:
            RateLimitedError: sender exceeded the per-minute limit.
            ValidationError / NotFoundError: from the message log.
        """
        if client_token:
            existing = self.message_service.find_by_token(
                conversation_id, sender_id, client_token
            )
            if existing is not None:
                self.logger.info(
                    "Message %s already stored for token %s, not resending",
                    existing.id,
                    client_token,
                )
                return existing

        if not check_message_rate_limit(
            str(sender_id),
            self._rate_limit_client(),
            self.settings.message_rate_limit_per_minute,
        ):
            raise RateLimitedError("Too many messages, slow down")

        message, created = self.message_service.append_or_get(
            conversation_id, sender_id, content, client_token=client_token
        )
        if not created:
            return message
        self.logger.info(
            "Message %s appended to conversation %s by %s",
            message.id,
            conversation_id,
            sender_id,
        )
        self._fan_out(message)
        return message

    def _fan_out(self, message: Message) -> None:
        conversation = message.conversation
        recipient_id = conversation.partner_id(message.sender_id)
        try:
            notify_new_message_task.delay(
                str(recipient_id),
                str(message.sender_id),
                str(message.conversation_id),
                message.content,
            )
        except Exception as e:
            self.logger.warning(
                "Failed to enqueue message notification for conversation %s: %s",
                message.conversation_id,
                e,
            )

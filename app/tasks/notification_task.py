"""Celery task fanning out a 'new message' notification to the recipient."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from app.constants.messaging import (
    FALLBACK_DISPLAY_NAME,
    MESSAGE_NOTIFICATION_PREVIEW_CHARS,
    NotificationType,
)
from app.infra.celery_app import celery_app
from app.infra.logging_config import get_logger
from app.schemas.notification import NotificationCreate
from app.services.notification_service import NotificationService
from app.services.user_service import UserService
from app.utils.db.db_session_helper import db_session

logger = get_logger("notification_task")


def conversation_link(conversation_id: str) -> str:
    return f"/messages?conversation={conversation_id}"


def build_message_notification(
    sender_name: Optional[str],
    sender_image: Optional[str],
    conversation_id: str,
    content: str,
) -> NotificationCreate:
    preview = content.strip()
    if len(preview) > MESSAGE_NOTIFICATION_PREVIEW_CHARS:
        preview = preview[: MESSAGE_NOTIFICATION_PREVIEW_CHARS - 1].rstrip() + "…"
    return NotificationCreate(
        type=NotificationType.MESSAGE.value,
        title=f"Nouveau message de {sender_name or FALLBACK_DISPLAY_NAME}",
        message=preview,
        link=conversation_link(conversation_id),
        image=sender_image,
    )


@celery_app.task(name="app.tasks.notification_task.notify_new_message_task")
def notify_new_message_task(
    recipient_id_str: str,
    sender_id_str: str,
    conversation_id_str: str,
    content: str,
) -> Optional[str]:
    """
    Notify the recipient of a new message, unless an unread message
    notification for the same conversation is still fresh.
    """
    try:
        recipient_id = UUID(recipient_id_str)
        sender_id = UUID(sender_id_str)
    except ValueError:
        logger.warning(
            "Invalid ids for message notification: recipient=%s sender=%s",
            recipient_id_str,
            sender_id_str,
        )
        return None

    with db_session() as db:
        sender = UserService(db).get_user(sender_id)
        data = build_message_notification(
            sender.name if sender else None,
            sender.image if sender else None,
            conversation_id_str,
            content,
        )
        notification = NotificationService(db).notify_once(recipient_id, data)
        if notification is None:
            logger.debug(
                "Suppressed duplicate message notification for user=%s conversation=%s",
                recipient_id,
                conversation_id_str,
            )
            return None
        return str(notification.id)

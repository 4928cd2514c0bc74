"""Notification inbox and the de-duplicating fan-out policy."""

from __future__ import annotations

from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Query, Session

from app.config import get_settings
from app.constants.messaging import DEFAULT_NOTIFICATION_LIMIT
from app.exceptions import NotFoundError
from app.models.notification import Notification
from app.schemas.notification import NotificationCreate
from app.utils.time import Clock, utcnow


class NotificationService:
    def __init__(self, db: Session, clock: Optional[Clock] = None) -> None:
        self.db = db
        self._clock = clock or utcnow

    def get_notification(self, notification_id: UUID) -> Optional[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.id == notification_id)
            .first()
        )

    def get_notifications_query(self, user_id: UUID) -> Query:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id)
        )

    def get_notifications(
        self, user_id: UUID, limit: int = DEFAULT_NOTIFICATION_LIMIT
    ) -> List[Notification]:
        """Latest notifications for a user, newest first."""
        return self.get_notifications_query(user_id).limit(limit).all()

    def unread_count(self, user_id: UUID) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read.is_(False))
            .count()
        )

    def create_notification(self, user_id: UUID, data: NotificationCreate) -> Notification:
        notification = Notification(
            user_id=user_id,
            created_at=self._clock(),
            read=False,
            **data.model_dump(),
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def find_recent_duplicate(
        self, user_id: UUID, type_: str, link: Optional[str]
    ) -> Optional[Notification]:
        """Unread notification of the same type and link within the dedup window."""
        window = timedelta(seconds=get_settings().notification_dedup_window_seconds)
        cutoff = self._clock() - window
        return (
            self.db.query(Notification)
            .filter(
                Notification.user_id == user_id,
                Notification.type == type_,
                Notification.link == link,
                Notification.read.is_(False),
                Notification.created_at >= cutoff,
            )
            .order_by(Notification.created_at.desc())
            .first()
        )

    def notify_once(self, user_id: UUID, data: NotificationCreate) -> Optional[Notification]:
        """
        Create a notification unless a recent unread one with the same type and
        link already exists. Returns None when suppressed.
        """
        if self.find_recent_duplicate(user_id, data.type, data.link) is not None:
            return None
        return self.create_notification(user_id, data)

    def _require_owned(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = self.get_notification(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def mark_as_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = self._require_owned(notification_id, user_id)
        notification.read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_as_read(self, user_id: UUID) -> int:
        updated = (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read.is_(False))
            .update({Notification.read: True}, synchronize_session=False)
        )
        self.db.commit()
        return updated or 0

    def delete_notification(self, notification_id: UUID, user_id: UUID) -> bool:
        notification = self._require_owned(notification_id, user_id)
        self.db.delete(notification)
        self.db.commit()
        return True

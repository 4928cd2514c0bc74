"""User lookups and presence updates."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import get_settings
from app.exceptions import NotFoundError
from app.models.user import User
from app.schemas.user import PresenceRead, UserCreate
from app.utils.time import Clock, ensure_utc, utcnow


class UserService:
    def __init__(self, db: Session, clock: Optional[Clock] = None) -> None:
        self.db = db
        self._clock = clock or utcnow

    def get_user(self, user_id: UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def require_user(self, user_id: UUID) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_users(self, skip: int = 0, limit: int = 100) -> List[User]:
        return (
            self.db.query(User)
            .order_by(User.created_at)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, data: UserCreate) -> User:
        user = User(**data.model_dump())
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def ping_presence(self, user_id: UUID) -> User:
        """Mark the user online and refresh last_seen."""
        return self._set_presence(user_id, online=True)

    def set_offline(self, user_id: UUID) -> User:
        return self._set_presence(user_id, online=False)

    def _set_presence(self, user_id: UUID, online: bool) -> User:
        user = self.require_user(user_id)
        user.is_online = online
        user.last_seen = self._clock()
        self.db.commit()
        self.db.refresh(user)
        return user

    def is_really_online(self, user: User, now: Optional[datetime] = None) -> bool:
        """
        Online flag alone is not trusted: a client that vanished without calling
        set_offline keeps is_online=True, so last_seen must also be recent.
        """
        if not user.is_online or user.last_seen is None:
            return False
        now = now or self._clock()
        window = timedelta(seconds=get_settings().presence_online_window_seconds)
        return ensure_utc(now) - ensure_utc(user.last_seen) < window

    def get_presence(self, user_id: UUID) -> PresenceRead:
        user = self.require_user(user_id)
        return PresenceRead(
            user_id=user.id,
            is_online=self.is_really_online(user),
            last_seen=ensure_utc(user.last_seen),
        )

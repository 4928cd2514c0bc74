"""Presence API: heartbeat pings and online lookups."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.user import User
from app.routers.utils.dependencies import get_current_user
from app.schemas.user import PresenceRead
from app.services.user_service import UserService

presence_router = APIRouter(prefix="/presence", tags=["presence"])


@presence_router.post("/ping", response_model=PresenceRead)
def ping_presence(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PresenceRead:
    """Heartbeat: mark the caller online and refresh last_seen."""
    svc = UserService(db)
    svc.ping_presence(current_user.id)
    return svc.get_presence(current_user.id)


@presence_router.post("/offline", response_model=PresenceRead)
def set_offline(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PresenceRead:
    """Mark the caller offline (logout, tab close)."""
    svc = UserService(db)
    svc.set_offline(current_user.id)
    return svc.get_presence(current_user.id)


@presence_router.get("/{user_id}", response_model=PresenceRead)
def get_presence(
    user_id: UUID,
    _current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PresenceRead:
    """Online status of any user, after the last-seen freshness check."""
    return UserService(db).get_presence(user_id)

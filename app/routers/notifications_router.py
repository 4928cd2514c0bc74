"""Notifications API: the caller's inbox."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from app.constants.messaging import DEFAULT_NOTIFICATION_LIMIT
from app.db import get_db
from app.models.user import User
from app.routers.utils.dependencies import get_current_user
from app.schemas.conversation import UnreadCountRead
from app.schemas.notification import NotificationRead, NotificationResult
from app.services.notification_service import NotificationService

notifications_router = APIRouter(prefix="/notifications", tags=["notifications"])


@notifications_router.get("", response_model=List[NotificationRead])
def list_notifications(
    limit: int = Query(DEFAULT_NOTIFICATION_LIMIT, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[NotificationRead]:
    """Latest notifications for the caller, newest first."""
    notifications = NotificationService(db).get_notifications(
        current_user.id, limit=limit
    )
    return [NotificationRead.model_validate(n) for n in notifications]


@notifications_router.get("/history", response_model=Page[NotificationRead])
def list_notification_history(
    params: Params = Depends(),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Page[NotificationRead]:
    """Full notification history for the caller, paginated."""
    query = NotificationService(db).get_notifications_query(current_user.id)
    return paginate(query, params=params)


@notifications_router.get("/unread-count", response_model=UnreadCountRead)
def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCountRead:
    return UnreadCountRead(unread_count=NotificationService(db).unread_count(current_user.id))


@notifications_router.post("/read-all", response_model=NotificationResult)
def mark_all_as_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationResult:
    NotificationService(db).mark_all_as_read(current_user.id)
    return NotificationResult(success=True)


@notifications_router.post(
    "/{notification_id}/read", response_model=NotificationRead
)
def mark_as_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationRead:
    notification = NotificationService(db).mark_as_read(
        notification_id, current_user.id
    )
    return NotificationRead.model_validate(notification)


@notifications_router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    NotificationService(db).delete_notification(notification_id, current_user.id)

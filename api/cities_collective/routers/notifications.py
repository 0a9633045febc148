"""Notification endpoints for the signed-in user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import get_db
from ..services.notifications import NotificationService

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=schemas.NotificationList)
def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = Query(False, alias="unreadOnly"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.NotificationList:
    notifications = NotificationService.get_user_notifications(
        db, current_user.id, limit=limit, offset=offset, unread_only=unread_only
    )
    return schemas.NotificationList(
        notifications=[schemas.NotificationOut.model_validate(n) for n in notifications],
        unread_count=NotificationService.get_unread_notification_count(db, current_user.id),
    )


@router.patch("", response_model=schemas.SuccessResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    updated = NotificationService.mark_all_notifications_as_read(db, current_user.id)
    return schemas.SuccessResponse(message=f"{updated} notifications marked as read")


@router.patch("/{notification_id}", response_model=schemas.NotificationOut)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.NotificationOut:
    notification = NotificationService.mark_notification_as_read(db, notification_id, current_user.id)
    return schemas.NotificationOut.model_validate(notification)


@router.delete("/{notification_id}", response_model=schemas.SuccessResponse)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    NotificationService.delete_notification(db, notification_id, current_user.id)
    return schemas.SuccessResponse(message="Notification deleted")

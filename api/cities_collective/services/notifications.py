"""Service for managing notifications."""

from __future__ import annotations

import logging
import re

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError

logger = logging.getLogger(__name__)

TYPE_NEW_CITY = "new_city"
TYPE_COMMENT = "comment"
TYPE_COMMENT_TAG = "comment_tag"
TYPE_IMAGE_COMMENT_TAG = "image_comment_tag"
TYPE_NEW_FOLLOWER = "new_follower"

MENTION_RE = re.compile(r"(?<![\w@])@([A-Za-z0-9_.-]{3,32})")

COMMENT_PREVIEW_LENGTH = 100


def _display_name(user: models.User | None) -> str:
    if user is None:
        return "Unknown User"
    return user.username or user.name or "Unknown User"


def extract_mentions(content: str) -> list[str]:
    """Usernames tagged with ``@name`` in a comment, without duplicates."""
    seen: dict[str, None] = {}
    for match in MENTION_RE.finditer(content):
        seen.setdefault(match.group(1).rstrip("."), None)
    return list(seen)


class NotificationService:
    """Service for creating and managing notifications."""

    @staticmethod
    def create_notification(
        db: Session,
        user_id: int,
        notification_type: str,
        title: str,
        message: str,
        related_user_id: int | None = None,
        related_city_id: int | None = None,
        related_comment_id: int | None = None,
        commit: bool = True,
    ) -> models.Notification | None:
        """Create a notification. Actors are never notified about their own actions."""
        if related_user_id is not None and related_user_id == user_id:
            return None

        notification = models.Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            related_user_id=related_user_id,
            related_city_id=related_city_id,
            related_comment_id=related_comment_id,
        )
        db.add(notification)
        if commit:
            db.commit()
            db.refresh(notification)
        return notification

    @staticmethod
    def get_user_notifications(
        db: Session, user_id: int, limit: int = 20, offset: int = 0, unread_only: bool = False
    ) -> list[models.Notification]:
        q = db.query(models.Notification).filter(models.Notification.user_id == user_id)
        if unread_only:
            q = q.filter(models.Notification.is_read.is_(False))
        return (
            q.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )

    @staticmethod
    def get_unread_notification_count(db: Session, user_id: int) -> int:
        return (
            db.query(func.count(models.Notification.id))
            .filter(models.Notification.user_id == user_id, models.Notification.is_read.is_(False))
            .scalar()
            or 0
        )

    @staticmethod
    def _get_owned(db: Session, notification_id: int, user_id: int) -> models.Notification:
        notification = (
            db.query(models.Notification)
            .filter(models.Notification.id == notification_id, models.Notification.user_id == user_id)
            .first()
        )
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    @staticmethod
    def mark_notification_as_read(db: Session, notification_id: int, user_id: int) -> models.Notification:
        notification = NotificationService._get_owned(db, notification_id, user_id)
        notification.is_read = True
        db.commit()
        return notification

    @staticmethod
    def mark_all_notifications_as_read(db: Session, user_id: int) -> int:
        updated = (
            db.query(models.Notification)
            .filter(models.Notification.user_id == user_id, models.Notification.is_read.is_(False))
            .update({models.Notification.is_read: True}, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def delete_notification(db: Session, notification_id: int, user_id: int) -> None:
        notification = NotificationService._get_owned(db, notification_id, user_id)
        db.delete(notification)
        db.commit()

    # ------------------------------------------------------------------
    # Side-effect notifications
    # ------------------------------------------------------------------

    @staticmethod
    def notify_followers_of_new_city(db: Session, user_id: int, city: models.City) -> int:
        follower_ids = [
            follower_id
            for (follower_id,) in db.query(models.Follow.follower_id)
            .filter(models.Follow.following_id == user_id)
            .all()
        ]
        if not follower_ids:
            return 0

        display_name = _display_name(db.get(models.User, user_id))
        for follower_id in follower_ids:
            NotificationService.create_notification(
                db,
                user_id=follower_id,
                notification_type=TYPE_NEW_CITY,
                title="New City Uploaded",
                message=f"{display_name} uploaded a new city: {city.city_name or 'Untitled City'}",
                related_user_id=user_id,
                related_city_id=city.id,
                commit=False,
            )
        db.commit()
        logger.info(f"Notified {len(follower_ids)} followers of user {user_id} about city {city.id}")
        return len(follower_ids)

    @staticmethod
    def notify_new_comment(db: Session, commenter_id: int, city: models.City, comment: models.Comment) -> models.Notification | None:
        if city.user_id is None:
            return None
        preview = comment.content
        if len(preview) > COMMENT_PREVIEW_LENGTH:
            preview = preview[:COMMENT_PREVIEW_LENGTH] + "..."
        display_name = _display_name(db.get(models.User, commenter_id))
        return NotificationService.create_notification(
            db,
            user_id=city.user_id,
            notification_type=TYPE_COMMENT,
            title="New Comment",
            message=f'{display_name} commented on {city.city_name or "your city"}: "{preview}"',
            related_user_id=commenter_id,
            related_city_id=city.id,
            related_comment_id=comment.id,
        )

    @staticmethod
    def notify_new_follower(db: Session, follower_id: int, following_id: int) -> models.Notification | None:
        display_name = _display_name(db.get(models.User, follower_id))
        return NotificationService.create_notification(
            db,
            user_id=following_id,
            notification_type=TYPE_NEW_FOLLOWER,
            title="New Follower",
            message=f"{display_name} started following you",
            related_user_id=follower_id,
        )

    @staticmethod
    def notify_tagged_users(
        db: Session,
        author_id: int,
        city_id: int | None,
        comment_id: int,
        usernames: list[str],
        on_image: bool = False,
    ) -> int:
        """Notify each tagged user once; unknown names and the author are skipped."""
        from .users import get_user_by_username_or_email

        author_name = _display_name(db.get(models.User, author_id))
        notified: set[int] = set()
        for username in usernames:
            tagged = get_user_by_username_or_email(db, username)
            if tagged is None or tagged.id == author_id or tagged.id in notified:
                continue
            NotificationService.create_notification(
                db,
                user_id=tagged.id,
                notification_type=TYPE_IMAGE_COMMENT_TAG if on_image else TYPE_COMMENT_TAG,
                title="You were tagged in an image comment" if on_image else "You were tagged in a comment",
                message=f"@{author_name} tagged you in a comment on {'an image' if on_image else 'a city'}",
                related_user_id=author_id,
                related_city_id=city_id,
                related_comment_id=comment_id,
                commit=False,
            )
            notified.add(tagged.id)
        db.commit()
        return len(notified)


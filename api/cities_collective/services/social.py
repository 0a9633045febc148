"""Likes, favorites, comments and follows."""

from __future__ import annotations

import logging
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..cache import invalidate_city_cache, invalidate_community_cache, invalidate_user_cache
from ..errors import NotFoundError, UnauthorizedError, ValidationError
from ..utils.audit import log_admin_action
from .cities import build_city_summaries, city_summary_query, require_city
from .moderation import ModerationResult, get_moderation_message, moderate_comment, should_reject_comment
from .notifications import NotificationService, extract_mentions

logger = logging.getLogger(__name__)


def _toggle_row(db: Session, model, values: dict | None = None, **key) -> bool:
    """
    Delete the row matching ``key`` if present, otherwise insert it along
    with any extra column ``values``.

    Returns True when the row exists afterwards. A concurrent insert of the
    same row is treated as already present, and a concurrent delete as
    already removed.
    """
    existing = db.query(model).filter_by(**key).first()
    if existing is not None:
        deleted = db.query(model).filter(model.id == existing.id).delete(synchronize_session=False)
        db.commit()
        if not deleted:
            logger.debug(f"Concurrent delete on {model.__tablename__} for {key}")
        return False

    db.add(model(**key, **(values or {})))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.debug(f"Concurrent insert on {model.__tablename__} for {key}")
    return True


# ============================================================================
# LIKES
# ============================================================================


def get_city_likes(db: Session, city_id: int) -> int:
    return db.query(func.count(models.Like.id)).filter(models.Like.city_id == city_id).scalar() or 0


def is_liked_by_user(db: Session, user_id: int, city_id: int) -> bool:
    return (
        db.query(models.Like.id)
        .filter(models.Like.user_id == user_id, models.Like.city_id == city_id)
        .first()
        is not None
    )


def toggle_like(db: Session, user_id: int, city_id: int) -> schemas.LikeStatus:
    require_city(db, city_id)
    liked = _toggle_row(db, models.Like, user_id=user_id, city_id=city_id)
    invalidate_city_cache(city_id)
    return schemas.LikeStatus(liked=liked, like_count=get_city_likes(db, city_id))


# ============================================================================
# FAVORITES
# ============================================================================


def is_favorited_by_user(db: Session, user_id: int, city_id: int) -> bool:
    return (
        db.query(models.Favorite.id)
        .filter(models.Favorite.user_id == user_id, models.Favorite.city_id == city_id)
        .first()
        is not None
    )


def toggle_favorite(db: Session, user_id: int, city_id: int) -> schemas.FavoriteStatus:
    require_city(db, city_id)
    favorited = _toggle_row(db, models.Favorite, user_id=user_id, city_id=city_id)
    return schemas.FavoriteStatus(favorited=favorited)


def get_user_favorites(db: Session, user_id: int) -> list[schemas.CitySummary]:
    rows = (
        city_summary_query(db)
        .join(models.Favorite, models.Favorite.city_id == models.City.id)
        .filter(models.Favorite.user_id == user_id)
        .order_by(models.Favorite.created_at.desc(), models.Favorite.id.desc())
        .all()
    )
    return build_city_summaries(db, rows)


# ============================================================================
# COMMENTS
# ============================================================================


def _comment_like_count():
    return (
        select(func.count(models.CommentLike.id))
        .where(models.CommentLike.comment_id == models.Comment.id)
        .correlate(models.Comment)
        .scalar_subquery()
    )


def add_comment(
    db: Session,
    user_id: int,
    city_id: int,
    content: str,
    tagged_usernames: list[str] | None = None,
) -> tuple[models.Comment, ModerationResult]:
    """
    Moderate and store a comment, then notify the city owner and tagged users.

    Comments that break a rejection rule raise ValidationError; others are
    stored in their cleaned-up form.
    """
    city = require_city(db, city_id)
    content = content.strip()
    if not content:
        raise ValidationError("Comment content is required")

    result = moderate_comment(db, content)
    if should_reject_comment(result.reasons):
        raise ValidationError(get_moderation_message(result.reasons))

    comment = models.Comment(user_id=user_id, city_id=city_id, content=result.filtered_content)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    invalidate_city_cache(city_id)

    NotificationService.notify_new_comment(db, user_id, city, comment)
    usernames = list(dict.fromkeys((tagged_usernames or []) + extract_mentions(comment.content)))
    if usernames:
        NotificationService.notify_tagged_users(db, user_id, city_id, comment.id, usernames)

    return comment, result


def get_city_comments(
    db: Session,
    city_id: int,
    viewer_id: int | None = None,
    sort_by: Literal["recent", "likes"] = "recent",
) -> list[schemas.CommentOut]:
    like_count = _comment_like_count()
    q = (
        db.query(
            models.Comment,
            models.User.username,
            models.User.name,
            models.User.avatar,
            like_count.label("like_count"),
        )
        .outerjoin(models.User, models.Comment.user_id == models.User.id)
        .filter(models.Comment.city_id == city_id)
    )
    if sort_by == "likes":
        q = q.order_by(like_count.desc(), models.Comment.created_at.desc(), models.Comment.id.desc())
    else:
        q = q.order_by(models.Comment.created_at.desc(), models.Comment.id.desc())
    rows = q.all()

    liked_ids: set[int] = set()
    if viewer_id is not None and rows:
        liked_ids = {
            comment_id
            for (comment_id,) in db.query(models.CommentLike.comment_id)
            .filter(
                models.CommentLike.user_id == viewer_id,
                models.CommentLike.comment_id.in_([row[0].id for row in rows]),
            )
            .all()
        }

    return [
        schemas.CommentOut(
            id=comment.id,
            city_id=comment.city_id,
            user_id=comment.user_id,
            content=comment.content,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
            username=username,
            user_name=name,
            avatar=avatar,
            like_count=likes or 0,
            is_liked_by_user=comment.id in liked_ids,
        )
        for comment, username, name, avatar, likes in rows
    ]


def get_all_comments(db: Session, limit: int = 50, offset: int = 0) -> tuple[list[schemas.AdminCommentOut], int]:
    """Newest comments across all cities, for the moderation panel."""
    rows = (
        db.query(
            models.Comment,
            models.User.username,
            models.User.name,
            models.User.avatar,
            models.User.email,
            models.City.city_name,
            _comment_like_count().label("like_count"),
        )
        .outerjoin(models.User, models.Comment.user_id == models.User.id)
        .outerjoin(models.City, models.Comment.city_id == models.City.id)
        .order_by(models.Comment.created_at.desc(), models.Comment.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    total = db.query(func.count(models.Comment.id)).scalar() or 0
    comments = [
        schemas.AdminCommentOut(
            id=comment.id,
            city_id=comment.city_id,
            user_id=comment.user_id,
            content=comment.content,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
            username=username,
            user_name=name,
            avatar=avatar,
            email=email,
            city_name=city_name,
            like_count=likes or 0,
        )
        for comment, username, name, avatar, email, city_name, likes in rows
    ]
    return comments, total


def _delete_comment_rows(db: Session, comment: models.Comment) -> None:
    db.query(models.CommentLike).filter(models.CommentLike.comment_id == comment.id).delete(
        synchronize_session=False
    )
    db.delete(comment)


def delete_comment(db: Session, comment_id: int, user_id: int) -> None:
    comment = db.get(models.Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    if comment.user_id != user_id:
        raise UnauthorizedError("You can only delete your own comments")

    city_id = comment.city_id
    _delete_comment_rows(db, comment)
    db.commit()
    invalidate_city_cache(city_id)


def delete_comment_as_admin(db: Session, comment_id: int, admin: models.User) -> None:
    comment = db.get(models.Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")

    city_id = comment.city_id
    _delete_comment_rows(db, comment)
    db.commit()
    invalidate_city_cache(city_id)
    log_admin_action(db, admin.id, "delete_comment", "comment", comment_id, note=f"city {city_id}")


def get_comment_likes(db: Session, comment_id: int) -> int:
    return (
        db.query(func.count(models.CommentLike.id))
        .filter(models.CommentLike.comment_id == comment_id)
        .scalar()
        or 0
    )


def toggle_comment_like(db: Session, user_id: int, comment_id: int) -> schemas.CommentLikeStatus:
    if db.get(models.Comment, comment_id) is None:
        raise NotFoundError("Comment not found")
    liked = _toggle_row(db, models.CommentLike, user_id=user_id, comment_id=comment_id)
    return schemas.CommentLikeStatus(liked=liked, like_count=get_comment_likes(db, comment_id))


def get_city_comment_count(db: Session, city_id: int) -> int:
    return db.query(func.count(models.Comment.id)).filter(models.Comment.city_id == city_id).scalar() or 0


# ============================================================================
# IMAGE ENGAGEMENT
# ============================================================================


def _require_image(db: Session, image_id: int, image_type: str):
    """Return the screenshot or Hall of Fame row behind ``(image_type, image_id)``."""
    if image_type == models.IMAGE_TYPE_SCREENSHOT:
        image = db.get(models.CityImage, image_id)
    elif image_type == models.IMAGE_TYPE_HALL_OF_FAME:
        image = db.get(models.HallOfFameCache, image_id)
    else:
        raise ValidationError("Invalid image type")
    if image is None:
        raise NotFoundError("Image not found")
    return image


def _image_filter(model, image_id: int, image_type: str):
    return (model.image_id == image_id, model.image_type == image_type)


def get_image_likes(db: Session, image_id: int, image_type: str) -> int:
    return (
        db.query(func.count(models.ImageLike.id))
        .filter(*_image_filter(models.ImageLike, image_id, image_type))
        .scalar()
        or 0
    )


def is_image_liked_by_user(db: Session, user_id: int, image_id: int, image_type: str) -> bool:
    return (
        db.query(models.ImageLike.id)
        .filter(models.ImageLike.user_id == user_id, *_image_filter(models.ImageLike, image_id, image_type))
        .first()
        is not None
    )


def get_image_like_info(
    db: Session, image_id: int, image_type: str, viewer_id: int | None = None
) -> schemas.ImageLikeInfo:
    _require_image(db, image_id, image_type)
    return schemas.ImageLikeInfo(
        like_count=get_image_likes(db, image_id, image_type),
        is_liked=viewer_id is not None and is_image_liked_by_user(db, viewer_id, image_id, image_type),
    )


def toggle_image_like(db: Session, user_id: int, image_id: int, image_type: str) -> schemas.LikeStatus:
    image = _require_image(db, image_id, image_type)
    liked = _toggle_row(
        db,
        models.ImageLike,
        values={"city_id": image.city_id},
        user_id=user_id,
        image_id=image_id,
        image_type=image_type,
    )
    return schemas.LikeStatus(liked=liked, like_count=get_image_likes(db, image_id, image_type))


def _image_comment_like_count():
    return (
        select(func.count(models.ImageCommentLike.id))
        .where(models.ImageCommentLike.comment_id == models.ImageComment.id)
        .correlate(models.ImageComment)
        .scalar_subquery()
    )


def get_image_comments(
    db: Session,
    image_id: int,
    image_type: str,
    viewer_id: int | None = None,
    sort_by: Literal["recent", "likes"] = "recent",
    comment_id: int | None = None,
) -> list[schemas.ImageCommentOut]:
    _require_image(db, image_id, image_type)
    like_count = _image_comment_like_count()
    q = (
        db.query(
            models.ImageComment,
            models.User.username,
            models.User.name,
            models.User.avatar,
            like_count.label("like_count"),
        )
        .outerjoin(models.User, models.ImageComment.user_id == models.User.id)
        .filter(*_image_filter(models.ImageComment, image_id, image_type))
    )
    if comment_id is not None:
        q = q.filter(models.ImageComment.id == comment_id)
    if sort_by == "likes":
        q = q.order_by(like_count.desc(), models.ImageComment.created_at.desc(), models.ImageComment.id.desc())
    else:
        q = q.order_by(models.ImageComment.created_at.desc(), models.ImageComment.id.desc())
    rows = q.all()

    liked_ids: set[int] = set()
    if viewer_id is not None and rows:
        liked_ids = {
            liked_id
            for (liked_id,) in db.query(models.ImageCommentLike.comment_id)
            .filter(
                models.ImageCommentLike.user_id == viewer_id,
                models.ImageCommentLike.comment_id.in_([row[0].id for row in rows]),
            )
            .all()
        }

    return [
        schemas.ImageCommentOut(
            id=comment.id,
            image_id=comment.image_id,
            image_type=comment.image_type,
            city_id=comment.city_id,
            user_id=comment.user_id,
            content=comment.content,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
            username=username,
            user_name=name,
            avatar=avatar,
            like_count=likes or 0,
            is_liked_by_user=comment.id in liked_ids,
        )
        for comment, username, name, avatar, likes in rows
    ]


def add_image_comment(
    db: Session,
    user_id: int,
    image_id: int,
    image_type: str,
    content: str,
    tagged_usernames: list[str] | None = None,
) -> tuple[schemas.ImageCommentOut, ModerationResult]:
    """Moderate and store a comment on one image, then notify tagged users."""
    image = _require_image(db, image_id, image_type)
    content = content.strip()
    if not content:
        raise ValidationError("Comment content is required")

    result = moderate_comment(db, content)
    if should_reject_comment(result.reasons):
        raise ValidationError(get_moderation_message(result.reasons))

    comment = models.ImageComment(
        user_id=user_id,
        image_id=image_id,
        image_type=image_type,
        city_id=image.city_id,
        content=result.filtered_content,
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    logger.info(f"User {user_id} commented on {image_type} image {image_id}")

    usernames = list(dict.fromkeys((tagged_usernames or []) + extract_mentions(comment.content)))
    if usernames:
        NotificationService.notify_tagged_users(
            db, user_id, comment.city_id, comment.id, usernames, on_image=True
        )

    (created,) = get_image_comments(db, image_id, image_type, viewer_id=user_id, comment_id=comment.id)
    return created, result


def _require_image_comment(db: Session, comment_id: int) -> models.ImageComment:
    comment = db.get(models.ImageComment, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    return comment


def delete_image_comment(db: Session, comment_id: int, user: models.User) -> None:
    """Authors delete their own image comments; admins may delete any and are audited."""
    comment = _require_image_comment(db, comment_id)
    as_admin = comment.user_id != user.id
    if as_admin and not user.is_admin:
        raise UnauthorizedError("You can only delete your own comments")

    image_note = f"{comment.image_type} image {comment.image_id}"
    db.query(models.ImageCommentLike).filter(models.ImageCommentLike.comment_id == comment.id).delete(
        synchronize_session=False
    )
    db.delete(comment)
    db.commit()
    if as_admin:
        log_admin_action(db, user.id, "delete_image_comment", "image_comment", comment_id, note=image_note)


def get_image_comment_likes(db: Session, comment_id: int) -> int:
    return (
        db.query(func.count(models.ImageCommentLike.id))
        .filter(models.ImageCommentLike.comment_id == comment_id)
        .scalar()
        or 0
    )


def toggle_image_comment_like(db: Session, user_id: int, comment_id: int) -> schemas.CommentLikeStatus:
    _require_image_comment(db, comment_id)
    liked = _toggle_row(db, models.ImageCommentLike, user_id=user_id, comment_id=comment_id)
    return schemas.CommentLikeStatus(liked=liked, like_count=get_image_comment_likes(db, comment_id))


def get_image_view_count(db: Session, image_id: int, image_type: str) -> int:
    return (
        db.query(func.count(models.ImageView.id))
        .filter(*_image_filter(models.ImageView, image_id, image_type))
        .scalar()
        or 0
    )


def get_image_views(
    db: Session, image_id: int, image_type: str, viewer_id: int | None = None
) -> schemas.ImageViewStatus:
    _require_image(db, image_id, image_type)
    viewed = viewer_id is not None and (
        db.query(models.ImageView.id)
        .filter(models.ImageView.user_id == viewer_id, *_image_filter(models.ImageView, image_id, image_type))
        .first()
        is not None
    )
    return schemas.ImageViewStatus(viewed=viewed, view_count=get_image_view_count(db, image_id, image_type))


def record_image_view(db: Session, user_id: int, image_id: int, image_type: str) -> schemas.ImageViewStatus:
    """Count a signed-in user's first view of an image; repeat views are ignored."""
    image = _require_image(db, image_id, image_type)
    already = (
        db.query(models.ImageView.id)
        .filter(models.ImageView.user_id == user_id, *_image_filter(models.ImageView, image_id, image_type))
        .first()
    )
    if already is None:
        db.add(
            models.ImageView(user_id=user_id, image_id=image_id, image_type=image_type, city_id=image.city_id)
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.debug(f"Concurrent view of {image_type} image {image_id} by user {user_id}")
    return schemas.ImageViewStatus(viewed=True, view_count=get_image_view_count(db, image_id, image_type))


# ============================================================================
# FOLLOWS
# ============================================================================


def is_following(db: Session, follower_id: int, following_id: int) -> bool:
    return (
        db.query(models.Follow.id)
        .filter(models.Follow.follower_id == follower_id, models.Follow.following_id == following_id)
        .first()
        is not None
    )


def get_follower_count(db: Session, user_id: int) -> int:
    return db.query(func.count(models.Follow.id)).filter(models.Follow.following_id == user_id).scalar() or 0


def get_following_count(db: Session, user_id: int) -> int:
    return db.query(func.count(models.Follow.id)).filter(models.Follow.follower_id == user_id).scalar() or 0


def toggle_follow(db: Session, follower_id: int, following_id: int) -> schemas.FollowStatus:
    if follower_id == following_id:
        raise ValidationError("You cannot follow yourself")
    if db.get(models.User, following_id) is None:
        raise NotFoundError("User not found")

    following = _toggle_row(db, models.Follow, follower_id=follower_id, following_id=following_id)
    if following:
        NotificationService.notify_new_follower(db, follower_id, following_id)

    invalidate_user_cache(following_id)
    invalidate_community_cache()
    return schemas.FollowStatus(
        following=following,
        follower_count=get_follower_count(db, following_id),
        following_count=get_following_count(db, following_id),
    )


def get_followers(db: Session, user_id: int) -> list[models.User]:
    return (
        db.query(models.User)
        .join(models.Follow, models.Follow.follower_id == models.User.id)
        .filter(models.Follow.following_id == user_id)
        .order_by(models.Follow.created_at.desc(), models.Follow.id.desc())
        .all()
    )


def get_following(db: Session, user_id: int) -> list[models.User]:
    return (
        db.query(models.User)
        .join(models.Follow, models.Follow.following_id == models.User.id)
        .filter(models.Follow.follower_id == user_id)
        .order_by(models.Follow.created_at.desc(), models.Follow.id.desc())
        .all()
    )

"""Image endpoints: primary selection, deletion, and per-image likes, comments and views."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user, get_current_user_optional
from ..deps import get_db
from ..services import images, social
from ..services.moderation import get_moderation_message

router = APIRouter(prefix="/api", tags=["Images"])

# Missing or unknown types are rejected by the service layer with a 400
ImageTypeParam = Query(None, alias="type")


@router.post("/images/{image_id}/primary", response_model=schemas.SuccessResponse)
def set_primary_image(
    image_id: int,
    payload: schemas.SetPrimaryRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    images.set_primary_image(db, image_id, payload.city_id, current_user.id)
    return schemas.SuccessResponse(message="Primary image updated")


@router.delete("/images/{image_id}", response_model=schemas.SuccessResponse)
def delete_image(
    image_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    images.delete_city_image(db, image_id, current_user.id)
    return schemas.SuccessResponse(message="Image deleted")


@router.post("/hall-of-fame/{hof_image_id}/primary", response_model=schemas.SuccessResponse)
def set_primary_hall_of_fame_image(
    hof_image_id: str,
    payload: schemas.SetPrimaryRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    images.set_primary_hall_of_fame_image(db, hof_image_id, payload.city_id, current_user.id)
    return schemas.SuccessResponse(message="Primary image updated")


# ============================================================================
# LIKES
# ============================================================================


@router.get("/images/{image_id}/like", response_model=schemas.ImageLikeInfo)
def get_image_likes(
    image_id: int,
    image_type: str | None = ImageTypeParam,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.ImageLikeInfo:
    viewer_id = current_user.id if current_user else None
    return social.get_image_like_info(db, image_id, image_type, viewer_id=viewer_id)


@router.post("/images/{image_id}/like", response_model=schemas.LikeStatus)
def toggle_image_like(
    image_id: int,
    image_type: str | None = ImageTypeParam,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.LikeStatus:
    return social.toggle_image_like(db, current_user.id, image_id, image_type)


# ============================================================================
# COMMENTS
# ============================================================================


@router.get("/images/{image_id}/comments", response_model=list[schemas.ImageCommentOut])
def list_image_comments(
    image_id: int,
    image_type: str | None = ImageTypeParam,
    sort_by: Literal["recent", "likes"] = Query("recent", alias="sortBy"),
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> list[schemas.ImageCommentOut]:
    viewer_id = current_user.id if current_user else None
    return social.get_image_comments(db, image_id, image_type, viewer_id=viewer_id, sort_by=sort_by)


@router.post(
    "/images/{image_id}/comments",
    response_model=schemas.ImageCommentCreated,
    status_code=status.HTTP_201_CREATED,
)
def add_image_comment(
    image_id: int,
    payload: schemas.ImageCommentCreate,
    image_type: str | None = ImageTypeParam,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ImageCommentCreated:
    comment, result = social.add_image_comment(
        db, current_user.id, image_id, image_type, payload.content, tagged_usernames=payload.tagged_usernames
    )
    return schemas.ImageCommentCreated(
        comment=comment,
        moderated=not result.is_clean,
        moderation_message=get_moderation_message(result.reasons) or None,
    )


@router.delete("/image-comments/{comment_id}", response_model=schemas.SuccessResponse)
def delete_image_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    """Delete one of your own image comments, or any of them as an admin."""
    social.delete_image_comment(db, comment_id, current_user)
    return schemas.SuccessResponse(message="Comment deleted")


@router.post("/image-comments/{comment_id}/like", response_model=schemas.CommentLikeStatus)
def toggle_image_comment_like(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.CommentLikeStatus:
    return social.toggle_image_comment_like(db, current_user.id, comment_id)


# ============================================================================
# VIEWS
# ============================================================================


@router.get("/images/{image_id}/view", response_model=schemas.ImageViewStatus)
def get_image_views(
    image_id: int,
    image_type: str | None = ImageTypeParam,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.ImageViewStatus:
    viewer_id = current_user.id if current_user else None
    return social.get_image_views(db, image_id, image_type, viewer_id=viewer_id)


@router.post("/images/{image_id}/view", response_model=schemas.ImageViewStatus)
def record_image_view(
    image_id: int,
    image_type: str | None = ImageTypeParam,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ImageViewStatus:
    return social.record_image_view(db, current_user.id, image_id, image_type)

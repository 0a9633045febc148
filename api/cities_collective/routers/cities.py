"""City endpoints: listings, detail, owner edits, counters, likes, favorites, comments and images."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user, get_current_user_optional
from ..deps import get_db
from ..services import cities as city_service
from ..services import hall_of_fame, images, social

router = APIRouter(prefix="/api/cities", tags=["Cities"])
logger = logging.getLogger(__name__)


# ============================================================================
# LISTINGS
# ============================================================================


@router.get("/recent", response_model=list[schemas.CitySummary])
def list_recent_cities(
    limit: int = Query(12, ge=1, le=50),
    db: Session = Depends(get_db),
) -> list[schemas.CitySummary]:
    return city_service.get_recent_cities(db, limit)


@router.get("/top", response_model=list[schemas.CitySummary])
def list_top_cities(
    by: Literal["money", "likes"] = "money",
    limit: int = Query(3, ge=1, le=20),
    db: Session = Depends(get_db),
) -> list[schemas.CitySummary]:
    if by == "likes":
        return city_service.get_top_cities_by_likes(db, limit)
    return city_service.get_top_cities_by_money(db, limit)


@router.get("/featured", response_model=list[schemas.CitySummary])
def list_featured_cities(
    limit: int = Query(6, ge=1, le=24),
    db: Session = Depends(get_db),
) -> list[schemas.CitySummary]:
    """Newest uploads by content creators."""
    return city_service.get_featured_creator_cities(db, limit)


@router.get("/stats", response_model=schemas.CommunityStats)
def get_community_stats(db: Session = Depends(get_db)) -> schemas.CommunityStats:
    return city_service.get_community_stats(db)


@router.post("", response_model=schemas.CityDetail, status_code=status.HTTP_201_CREATED)
def create_city(
    payload: schemas.CityCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.CityDetail:
    """Register a processed save-game upload for the signed-in user."""
    city = city_service.create_city(db, current_user.id, payload)
    return city_service.get_city_detail(db, city.id)


# ============================================================================
# DETAIL & OWNER EDITS
# ============================================================================


@router.get("/{city_id}", response_model=schemas.CityDetail)
def get_city(city_id: int, db: Session = Depends(get_db)) -> schemas.CityDetail:
    return city_service.get_city_detail(db, city_id)


@router.delete("/{city_id}", response_model=schemas.SuccessResponse)
def delete_city(
    city_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    city_service.delete_city(db, city_id, current_user.id)
    return schemas.SuccessResponse(message="City deleted")


@router.put("/{city_id}/description", response_model=schemas.SuccessResponse)
def update_description(
    city_id: int,
    payload: schemas.DescriptionUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    city_service.update_city_description(db, city_id, current_user.id, payload.description)
    return schemas.SuccessResponse(message="Description updated")


@router.put("/{city_id}/downloadable", response_model=schemas.SuccessResponse)
def update_downloadable(
    city_id: int,
    payload: schemas.DownloadableUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    city_service.update_city_downloadable(db, city_id, current_user.id, payload.downloadable)
    return schemas.SuccessResponse(message="Download setting updated")


@router.put("/{city_id}/name", response_model=schemas.SuccessResponse)
def update_name(
    city_id: int,
    payload: schemas.CityNameUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    city_service.update_city_name(db, city_id, current_user.id, payload.city_name)
    return schemas.SuccessResponse(message="City name updated")


@router.post("/{city_id}/view", response_model=schemas.CityCounter)
def track_view(city_id: int, db: Session = Depends(get_db)) -> schemas.CityCounter:
    return schemas.CityCounter(count=city_service.record_city_view(db, city_id))


@router.post("/{city_id}/download-track", response_model=schemas.CityCounter)
def track_download(city_id: int, db: Session = Depends(get_db)) -> schemas.CityCounter:
    return schemas.CityCounter(count=city_service.record_city_download(db, city_id))


# ============================================================================
# LIKES & FAVORITES
# ============================================================================


@router.get("/{city_id}/like", response_model=schemas.LikeStatus)
def get_like_status(
    city_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.LikeStatus:
    city_service.require_city(db, city_id)
    liked = current_user is not None and social.is_liked_by_user(db, current_user.id, city_id)
    return schemas.LikeStatus(liked=liked, like_count=social.get_city_likes(db, city_id))


@router.post("/{city_id}/like", response_model=schemas.LikeStatus)
def toggle_like(
    city_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.LikeStatus:
    return social.toggle_like(db, current_user.id, city_id)


@router.get("/{city_id}/favorite", response_model=schemas.FavoriteStatus)
def get_favorite_status(
    city_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.FavoriteStatus:
    city_service.require_city(db, city_id)
    favorited = current_user is not None and social.is_favorited_by_user(db, current_user.id, city_id)
    return schemas.FavoriteStatus(favorited=favorited)


@router.post("/{city_id}/favorite", response_model=schemas.FavoriteStatus)
def toggle_favorite(
    city_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.FavoriteStatus:
    return social.toggle_favorite(db, current_user.id, city_id)


# ============================================================================
# COMMENTS
# ============================================================================


@router.get("/{city_id}/comments", response_model=list[schemas.CommentOut])
def list_comments(
    city_id: int,
    sort_by: Literal["recent", "likes"] = Query("recent", alias="sortBy"),
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> list[schemas.CommentOut]:
    viewer_id = current_user.id if current_user else None
    return social.get_city_comments(db, city_id, viewer_id=viewer_id, sort_by=sort_by)


@router.post("/{city_id}/comments", response_model=schemas.CommentCreated, status_code=status.HTTP_201_CREATED)
def add_comment(
    city_id: int,
    payload: schemas.CommentCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.CommentCreated:
    """
    Post a comment.

    Comments that break a hard rule are rejected with 400. Softer issues are
    cleaned up and reported back in ``moderationMessage``.
    """
    from ..services.moderation import get_moderation_message

    comment, result = social.add_comment(
        db, current_user.id, city_id, payload.content, tagged_usernames=payload.tagged_usernames
    )
    return schemas.CommentCreated(
        comment=schemas.CommentOut(
            id=comment.id,
            city_id=comment.city_id,
            user_id=comment.user_id,
            content=comment.content,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
            username=current_user.username,
            user_name=current_user.name,
            avatar=current_user.avatar,
        ),
        moderated=not result.is_clean,
        moderation_message=get_moderation_message(result.reasons) or None,
    )


@router.get("/{city_id}/comment-count", response_model=schemas.CommentCount)
def get_comment_count(city_id: int, db: Session = Depends(get_db)) -> schemas.CommentCount:
    return schemas.CommentCount(count=social.get_city_comment_count(db, city_id))


# ============================================================================
# IMAGES
# ============================================================================


@router.get("/{city_id}/images", response_model=list[schemas.CityImageOut])
def list_images(city_id: int, db: Session = Depends(get_db)) -> list[schemas.CityImageOut]:
    city_service.require_city(db, city_id)
    return [schemas.CityImageOut.model_validate(image) for image in images.get_city_images(db, city_id)]


@router.post("/{city_id}/images", response_model=schemas.CityImageOut, status_code=status.HTTP_201_CREATED)
def add_image(
    city_id: int,
    payload: schemas.CityImageCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.CityImageOut:
    """Attach a screenshot whose variants are already in object storage."""
    image = images.create_city_image(db, city_id, payload, user_id=current_user.id)
    return schemas.CityImageOut.model_validate(image)


@router.put("/{city_id}/images/reorder", response_model=list[schemas.CityImageOut])
def reorder_images(
    city_id: int,
    payload: schemas.ImageReorderRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> list[schemas.CityImageOut]:
    reordered = images.reorder_city_images(db, city_id, current_user.id, payload.image_ids)
    return [schemas.CityImageOut.model_validate(image) for image in reordered]


@router.get("/{city_id}/hall-of-fame-images", response_model=list[schemas.HallOfFameImageOut])
def list_hall_of_fame_images(city_id: int, db: Session = Depends(get_db)) -> list[schemas.HallOfFameImageOut]:
    city_service.require_city(db, city_id)
    return [
        schemas.HallOfFameImageOut.model_validate(image)
        for image in hall_of_fame.get_city_hall_of_fame_images(db, city_id)
    ]

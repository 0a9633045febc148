"""Follow endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user, get_current_user_optional
from ..deps import get_db
from ..errors import NotFoundError
from ..services import social

router = APIRouter(prefix="/api/follow", tags=["Follows"])


@router.get("/{user_id}", response_model=schemas.FollowStatus)
def get_follow_status(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.FollowStatus:
    if db.get(models.User, user_id) is None:
        raise NotFoundError("User not found")
    following = current_user is not None and social.is_following(db, current_user.id, user_id)
    return schemas.FollowStatus(
        following=following,
        follower_count=social.get_follower_count(db, user_id),
        following_count=social.get_following_count(db, user_id),
    )


@router.post("/{user_id}", response_model=schemas.FollowStatus)
def toggle_follow(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.FollowStatus:
    return social.toggle_follow(db, current_user.id, user_id)


@router.get("/{user_id}/followers", response_model=list[schemas.UserPublic])
def list_followers(user_id: int, db: Session = Depends(get_db)) -> list[schemas.UserPublic]:
    return [schemas.UserPublic.model_validate(user) for user in social.get_followers(db, user_id)]


@router.get("/{user_id}/following", response_model=list[schemas.UserPublic])
def list_following(user_id: int, db: Session = Depends(get_db)) -> list[schemas.UserPublic]:
    return [schemas.UserPublic.model_validate(user) for user in social.get_following(db, user_id)]

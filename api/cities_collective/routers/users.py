"""User profile and account settings endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user, get_current_user_optional
from ..deps import get_db
from ..errors import NotFoundError
from ..services import hall_of_fame, social
from ..services import users as user_service
from ..services.cities import get_cities_by_user

router = APIRouter(prefix="/api/user", tags=["Users"])


@router.get("/favorites", response_model=list[schemas.CitySummary])
def list_favorites(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> list[schemas.CitySummary]:
    return social.get_user_favorites(db, current_user.id)


@router.put("/profile", response_model=schemas.UserFull)
def update_profile(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UserFull:
    user = user_service.update_profile(db, current_user.id, **payload.model_dump(exclude_unset=True))
    return schemas.UserFull.model_validate(user)


@router.put("/social-links", response_model=schemas.UserFull)
def update_social_links(
    payload: schemas.SocialLinksUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UserFull:
    user = user_service.update_social_links(db, current_user.id, payload.social_links)
    return schemas.UserFull.model_validate(user)


@router.put("/cookie-consent", response_model=schemas.UserFull)
def update_cookie_consent(
    payload: schemas.CookieConsentUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UserFull:
    user = user_service.set_cookie_consent(db, current_user.id, payload.consent)
    return schemas.UserFull.model_validate(user)


@router.put("/hof-creator-id", response_model=schemas.UserFull)
def update_hof_creator_id(
    payload: schemas.HofCreatorIdUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UserFull:
    """Link the account to a Hall of Fame Creator ID so screenshots get mirrored."""
    user = user_service.set_hof_creator_id(db, current_user.id, payload.hof_creator_id)
    return schemas.UserFull.model_validate(user)


@router.get("/hall-of-fame-images", response_model=list[schemas.HallOfFameImageOut])
def list_my_hall_of_fame_images(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> list[schemas.HallOfFameImageOut]:
    return [
        schemas.HallOfFameImageOut.model_validate(image)
        for image in hall_of_fame.get_user_hall_of_fame_images(db, current_user.id)
    ]


@router.post("/hall-of-fame-images/{image_id}/assign-city", response_model=schemas.HallOfFameImageOut)
def assign_my_hall_of_fame_image(
    image_id: int,
    payload: schemas.AssignCityRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.HallOfFameImageOut:
    """Attach one of your Hall of Fame images to one of your cities, or detach it with ``cityId: null``."""
    if payload.city_id is None:
        image = hall_of_fame.unassign_hall_of_fame_image(db, image_id, user_id=current_user.id)
    else:
        image = hall_of_fame.assign_hall_of_fame_image_to_city(
            db, image_id, payload.city_id, user_id=current_user.id
        )
    return schemas.HallOfFameImageOut.model_validate(image)


@router.get("/{user_id}", response_model=schemas.UserProfile)
def get_user_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.UserProfile:
    user = user_service.get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User not found")

    return schemas.UserProfile(
        user=schemas.UserPublic.model_validate(user),
        cities=get_cities_by_user(db, user_id),
        follower_count=social.get_follower_count(db, user_id),
        following_count=social.get_following_count(db, user_id),
        is_following=current_user is not None and social.is_following(db, current_user.id, user_id),
    )

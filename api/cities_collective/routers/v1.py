"""Versioned API for external tools (HoF Creator integration).

Every route except ``/hof-creator/me`` authenticates with a per-user API key
sent as ``X-API-Key`` or ``Authorization: Bearer``. CORS for this prefix is
handled by ``V1CorsMiddleware``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..auth import ApiKeyPrincipal, get_api_key_user
from ..deps import get_db
from ..errors import NotFoundError, UnauthorizedError, ValidationError
from ..services import images, social
from ..services.cities import get_cities_by_user, get_primary_images, require_city, require_owned_city
from ..services.users import get_user_by_hof_creator_id, get_user_by_id, get_user_by_username_or_email

router = APIRouter(prefix="/api/v1", tags=["API v1"])
logger = logging.getLogger(__name__)

CREATOR_ID_SCHEME = "CreatorID "


def _download_url(city_id: int, downloadable: bool) -> str | None:
    if not downloadable:
        return None
    return f"{settings.PUBLIC_BASE_URL}/api/cities/{city_id}/download"


def _user_ref(user: models.User) -> schemas.V1UserRef:
    return schemas.V1UserRef(id=user.id, username=user.username, name=user.name)


@router.get("/cities", response_model=schemas.V1Envelope[schemas.V1CitiesData])
def list_user_cities(
    username: str | None = Query(None),
    db: Session = Depends(get_db),
    _principal: ApiKeyPrincipal = Depends(get_api_key_user),
) -> schemas.V1Envelope[schemas.V1CitiesData]:
    """All cities of a user, looked up by username or email."""
    if not username:
        raise ValidationError("Username parameter is required")

    user = get_user_by_username_or_email(db, username)
    if user is None:
        raise NotFoundError("User not found")

    owner = _user_ref(user)
    cities = [
        schemas.V1City(
            id=summary.id,
            city_name=summary.city_name,
            map_name=summary.map_name,
            population=summary.population,
            money=summary.money,
            xp=summary.xp,
            theme=summary.theme,
            game_mode=summary.game_mode,
            downloadable=summary.downloadable,
            download_url=_download_url(summary.id, summary.downloadable),
            uploaded_at=summary.uploaded_at,
            primary_image=summary.primary_image,
            stats=schemas.V1CityStats(likes=summary.like_count, comments=summary.comment_count),
            user=owner,
        )
        for summary in get_cities_by_user(db, user.id)
    ]
    return schemas.V1Envelope[schemas.V1CitiesData](
        data=schemas.V1CitiesData(user=owner, cities=cities, total=len(cities))
    )


@router.get("/cities/{city_id}", response_model=schemas.V1Envelope[schemas.V1CityDetail])
def get_city(
    city_id: int,
    db: Session = Depends(get_db),
    _principal: ApiKeyPrincipal = Depends(get_api_key_user),
) -> schemas.V1Envelope[schemas.V1CityDetail]:
    city = require_city(db, city_id)
    owner = get_user_by_id(db, city.user_id) if city.user_id is not None else None
    if owner is None:
        raise NotFoundError("City owner not found")

    city_images = images.get_city_images(db, city_id)
    detail = schemas.V1CityDetail(
        id=city.id,
        city_name=city.city_name,
        map_name=city.map_name,
        population=city.population,
        money=city.money,
        xp=city.xp,
        theme=city.theme,
        game_mode=city.game_mode,
        downloadable=city.downloadable,
        download_url=_download_url(city.id, city.downloadable),
        uploaded_at=city.uploaded_at,
        primary_image=get_primary_images(db, [city.id]).get(city.id),
        stats=schemas.V1CityStats(
            likes=social.get_city_likes(db, city_id),
            comments=social.get_city_comment_count(db, city_id),
            total_images=len(city_images),
        ),
        user=_user_ref(owner),
        auto_save=city.auto_save,
        left_hand_traffic=city.left_hand_traffic,
        natural_disasters=city.natural_disasters,
        unlock_all=city.unlock_all,
        unlimited_money=city.unlimited_money,
        unlock_map_tiles=city.unlock_map_tiles,
        simulation_date=city.simulation_date,
        content_prerequisites=city.content_prerequisites or [],
        mods_enabled=city.mods_enabled or [],
        file_name=city.file_name,
        description=city.description,
        updated_at=city.updated_at,
        images=[schemas.CityImageOut.model_validate(image) for image in city_images],
    )
    return schemas.V1Envelope[schemas.V1CityDetail](data=detail)


# ============================================================================
# HOF CREATOR
# ============================================================================


@router.get("/hof-creator", response_model=schemas.V1HofCreatorInfo)
def get_hof_creator(principal: ApiKeyPrincipal = Depends(get_api_key_user)) -> schemas.V1HofCreatorInfo:
    """Identify the API key's owner; falls back to the user id when no Creator ID is set."""
    user = principal.user
    return schemas.V1HofCreatorInfo(
        hof_creator_id=user.hof_creator_id or str(user.id),
        username=user.username or user.email,
        api_key_name=principal.api_key_name,
    )


@router.get("/hof-creator/me", response_model=schemas.V1CreatorLookup)
def get_creator_by_id(request: Request, db: Session = Depends(get_db)) -> schemas.V1CreatorLookup:
    """
    Look up an account by its Hall of Fame Creator ID.

    The ID is sent as ``Authorization: CreatorID <id>`` instead of an API key.
    """
    authorization = request.headers.get("authorization", "")
    if not authorization.startswith(CREATOR_ID_SCHEME):
        raise UnauthorizedError(
            "Missing or invalid Authorization header. Use format: Authorization: CreatorID <your-creator-id>"
        )
    creator_id = authorization[len(CREATOR_ID_SCHEME):].strip()
    if not creator_id:
        raise UnauthorizedError("Creator ID is required")

    user = get_user_by_hof_creator_id(db, creator_id)
    if user is None:
        raise NotFoundError("Invalid Creator ID or user not found")

    return schemas.V1CreatorLookup(
        user=schemas.V1CreatorUser(
            id=user.id,
            username=user.username,
            hof_creator_id=user.hof_creator_id,
            cities=[
                schemas.V1CityRef(id=summary.id, name=summary.city_name)
                for summary in get_cities_by_user(db, user.id)
            ],
        )
    )


@router.get("/hof-creator/city/{city_id}", response_model=schemas.V1CreatorCityResponse)
def get_creator_city(
    city_id: int,
    db: Session = Depends(get_db),
    _principal: ApiKeyPrincipal = Depends(get_api_key_user),
) -> schemas.V1CreatorCityResponse:
    city = require_city(db, city_id)
    city_images = [schemas.CityImageOut.model_validate(image) for image in images.get_city_images(db, city_id)]
    return schemas.V1CreatorCityResponse(
        city=schemas.V1CreatorCity(
            id=city.id,
            city_name=city.city_name,
            map_name=city.map_name,
            population=city.population,
            money=city.money,
            xp=city.xp,
            theme=city.theme,
            game_mode=city.game_mode,
            simulation_date=city.simulation_date,
            description=city.description,
            downloadable=city.downloadable,
            uploaded_at=city.uploaded_at,
            image_count=len(city_images),
            images=city_images,
        )
    )


@router.get("/hof-creator/city/{city_id}/images", response_model=list[schemas.CityImageOut])
def list_creator_city_images(
    city_id: int,
    db: Session = Depends(get_db),
    _principal: ApiKeyPrincipal = Depends(get_api_key_user),
) -> list[schemas.CityImageOut]:
    require_city(db, city_id)
    return [schemas.CityImageOut.model_validate(image) for image in images.get_city_images(db, city_id)]


@router.post(
    "/hof-creator/city/{city_id}/images",
    response_model=schemas.V1ImagesAdded,
    status_code=status.HTTP_201_CREATED,
)
def add_creator_city_images(
    city_id: int,
    payload: schemas.V1ImagesCreate,
    db: Session = Depends(get_db),
    principal: ApiKeyPrincipal = Depends(get_api_key_user),
) -> schemas.V1ImagesAdded:
    """Attach already-stored screenshots to one of the key owner's cities."""
    require_owned_city(db, city_id, principal.user_id)

    existing = len(images.get_city_images(db, city_id))
    if existing + len(payload.images) > images.MAX_IMAGES_PER_CITY:
        raise ValidationError(
            f"Cannot add {len(payload.images)} images. This city already has {existing} images. "
            f"Maximum {images.MAX_IMAGES_PER_CITY} images allowed per city."
        )

    added = [
        schemas.CityImageOut.model_validate(
            images.create_city_image(db, city_id, image, user_id=principal.user_id)
        )
        for image in payload.images
    ]
    logger.info(f"API key {principal.api_key.id} added {len(added)} images to city {city_id}")
    return schemas.V1ImagesAdded(images=added)

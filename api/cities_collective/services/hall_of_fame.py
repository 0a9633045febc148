"""Hall of Fame screenshots mirrored from the external Hall of Fame service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..cache import invalidate_city_cache
from ..errors import NotFoundError, UnauthorizedError

logger = logging.getLogger(__name__)


class HallOfFameClient:
    """Thin HTTP client for the Hall of Fame API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url or settings.HOF_API_BASE_URL,
            timeout=settings.HOF_API_TIMEOUT_S if timeout is None else timeout,
            transport=transport,
        )

    def __enter__(self) -> "HallOfFameClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def get_creator(self, creator_id: str) -> dict[str, Any]:
        """Resolve a user's Creator ID to the Hall of Fame creator record."""
        response = self._client.get("/creators/me", headers={"Authorization": f"CreatorID {creator_id}"})
        response.raise_for_status()
        return response.json()

    def get_screenshots(self, hof_creator_pk: str) -> list[dict[str, Any]]:
        response = self._client.get("/screenshots", params={"creatorId": hof_creator_pk})
        response.raise_for_status()
        return response.json()


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


# ============================================================================
# QUERIES
# ============================================================================


def get_city_hall_of_fame_images(db: Session, city_id: int) -> list[models.HallOfFameCache]:
    return (
        db.query(models.HallOfFameCache)
        .filter(models.HallOfFameCache.city_id == city_id)
        .order_by(
            models.HallOfFameCache.is_primary.desc(),
            models.HallOfFameCache.created_at.desc(),
            models.HallOfFameCache.id.desc(),
        )
        .all()
    )


def get_user_hall_of_fame_images(db: Session, user_id: int) -> list[models.HallOfFameCache]:
    return (
        db.query(models.HallOfFameCache)
        .filter(models.HallOfFameCache.user_id == user_id)
        .order_by(models.HallOfFameCache.created_at.desc(), models.HallOfFameCache.id.desc())
        .all()
    )


def get_all_hall_of_fame_images(db: Session, limit: int = 100, offset: int = 0) -> list[models.HallOfFameCache]:
    return (
        db.query(models.HallOfFameCache)
        .order_by(models.HallOfFameCache.created_at.desc(), models.HallOfFameCache.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


# ============================================================================
# ASSIGNMENT
# ============================================================================


def _match_city_by_name(db: Session, user_id: int, city_name: str) -> int | None:
    row = (
        db.query(models.City.id)
        .filter(
            models.City.user_id == user_id,
            func.lower(models.City.city_name) == city_name.strip().lower(),
        )
        .order_by(models.City.uploaded_at.desc(), models.City.id.desc())
        .first()
    )
    return row[0] if row else None


def assign_hall_of_fame_image_to_city(
    db: Session,
    image_id: int,
    city_id: int | None,
    user_id: int | None = None,
) -> models.HallOfFameCache:
    """
    Point a Hall of Fame image at a city, or detach it with ``city_id=None``.

    With ``user_id`` both the image and the target city must belong to that
    user. An image that moves keeps no primary flag.
    """
    image = db.get(models.HallOfFameCache, image_id)
    if image is None:
        raise NotFoundError("Hall of Fame image not found")
    if user_id is not None and image.user_id != user_id:
        raise UnauthorizedError("You do not own this image")

    if city_id is not None:
        city = db.get(models.City, city_id)
        if city is None:
            raise NotFoundError("City not found")
        if user_id is not None and city.user_id != user_id:
            raise UnauthorizedError("You do not own this city")

    previous_city_id = image.city_id
    if previous_city_id != city_id:
        image.is_primary = False
    image.city_id = city_id
    db.commit()

    for cid in {previous_city_id, city_id} - {None}:
        invalidate_city_cache(cid)
    return image


def unassign_hall_of_fame_image(db: Session, image_id: int, user_id: int | None = None) -> models.HallOfFameCache:
    return assign_hall_of_fame_image_to_city(db, image_id, None, user_id=user_id)


def refresh_assignments(db: Session, user_id: int | None = None) -> int:
    """
    Attach unassigned images to the owner's city with the same name.

    Matching is case-insensitive; the newest city wins when names collide.
    Returns the number of images assigned.
    """
    q = db.query(models.HallOfFameCache).filter(
        models.HallOfFameCache.city_id.is_(None), models.HallOfFameCache.user_id.isnot(None)
    )
    if user_id is not None:
        q = q.filter(models.HallOfFameCache.user_id == user_id)

    assigned = 0
    touched: set[int] = set()
    for image in q.all():
        city_id = _match_city_by_name(db, image.user_id, image.city_name)
        if city_id is not None:
            image.city_id = city_id
            touched.add(city_id)
            assigned += 1
    db.commit()

    for city_id in touched:
        invalidate_city_cache(city_id)
    if assigned:
        logger.info(f"Assigned {assigned} Hall of Fame images by city name")
    return assigned


# ============================================================================
# SYNC
# ============================================================================


def upsert_hall_of_fame_images(db: Session, user_id: int, screenshots: list[dict[str, Any]]) -> tuple[int, int]:
    """
    Insert or refresh screenshots for one user. Returns ``(inserted, updated)``.

    Existing rows keep their city assignment and primary flag.
    """
    inserted = 0
    updated = 0
    for shot in screenshots:
        hof_image_id = str(shot["id"])
        values = {
            "city_name": shot.get("cityName") or "",
            "city_population": shot.get("cityPopulation"),
            "city_milestone": shot.get("cityMilestone"),
            "image_url_thumbnail": shot.get("imageUrlThumbnail") or "",
            "image_url_fhd": shot.get("imageUrlFHD") or "",
            "image_url_4k": shot.get("imageUrl4K") or "",
            "last_updated": datetime.now(timezone.utc),
        }
        created_at = _parse_timestamp(shot.get("createdAt"))
        if created_at is not None:
            values["created_at"] = created_at

        existing = (
            db.query(models.HallOfFameCache)
            .filter(models.HallOfFameCache.hof_image_id == hof_image_id)
            .first()
        )
        if existing:
            for key, value in values.items():
                setattr(existing, key, value)
            updated += 1
        else:
            db.add(models.HallOfFameCache(user_id=user_id, hof_image_id=hof_image_id, **values))
            inserted += 1

    db.commit()
    refresh_assignments(db, user_id=user_id)
    return inserted, updated


def refresh_hall_of_fame_cache(db: Session, client: HallOfFameClient | None = None) -> schemas.HallOfFameRefreshResult:
    """Fetch screenshots for every user with a Creator ID and upsert them."""
    from .users import get_users_with_hof_creator_id

    users = get_users_with_hof_creator_id(db)
    logger.info(f"Refreshing Hall of Fame cache for {len(users)} users")

    own_client = client is None
    client = client or HallOfFameClient()
    upserted = 0
    errors = 0
    try:
        for user in users:
            try:
                creator = client.get_creator(user.hof_creator_id)
                screenshots = client.get_screenshots(str(creator["id"]))
            except (httpx.HTTPError, KeyError, ValueError) as e:
                errors += 1
                logger.warning(f"Hall of Fame fetch failed for user {user.id}: {e}")
                continue

            inserted, updated = upsert_hall_of_fame_images(db, user.id, screenshots)
            upserted += inserted + updated
    finally:
        if own_client:
            client.close()

    logger.info(f"Hall of Fame cache refresh done: {upserted} images, {errors} errors")
    return schemas.HallOfFameRefreshResult(
        users_processed=len(users),
        images_upserted=upserted,
        errors=errors,
    )

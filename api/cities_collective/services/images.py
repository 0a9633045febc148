"""City screenshots and primary-image selection.

A city shows at most one primary image, chosen from its uploaded screenshots
and its Hall of Fame images together. Every change to the primary flag runs
in one transaction that clears both tables before setting the new primary;
partial unique indexes on ``(city_id) WHERE is_primary`` back this up within
each table.
"""

from __future__ import annotations

import logging
from collections import Counter

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import models, schemas
from ..cache import invalidate_city_cache
from ..errors import NotFoundError, UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)

MAX_IMAGES_PER_CITY = 15


def _lock_owned_city(db: Session, city_id: int, user_id: int) -> models.City:
    """Load the city row FOR UPDATE; a missing city counts as not owned."""
    city = (
        db.query(models.City)
        .filter(models.City.id == city_id)
        .with_for_update()
        .first()
    )
    if city is None or city.user_id != user_id:
        raise UnauthorizedError("You do not own this city")
    return city


def _clear_primaries(db: Session, city_id: int) -> None:
    db.query(models.CityImage).filter(
        models.CityImage.city_id == city_id, models.CityImage.is_primary.is_(True)
    ).update({models.CityImage.is_primary: False}, synchronize_session=False)
    db.query(models.HallOfFameCache).filter(
        models.HallOfFameCache.city_id == city_id, models.HallOfFameCache.is_primary.is_(True)
    ).update({models.HallOfFameCache.is_primary: False}, synchronize_session=False)
    # The cleared rows must reach the database before a new primary is set
    db.flush()


def _has_primary(db: Session, city_id: int) -> bool:
    uploaded = (
        db.query(models.CityImage.id)
        .filter(models.CityImage.city_id == city_id, models.CityImage.is_primary.is_(True))
        .first()
    )
    if uploaded:
        return True
    hof = (
        db.query(models.HallOfFameCache.id)
        .filter(models.HallOfFameCache.city_id == city_id, models.HallOfFameCache.is_primary.is_(True))
        .first()
    )
    return hof is not None


def _first_image(db: Session, city_id: int, exclude_id: int | None = None) -> models.CityImage | None:
    q = db.query(models.CityImage).filter(models.CityImage.city_id == city_id)
    if exclude_id is not None:
        q = q.filter(models.CityImage.id != exclude_id)
    return q.order_by(models.CityImage.sort_order.asc().nulls_last(), models.CityImage.id.asc()).first()


# ============================================================================
# CRUD
# ============================================================================


def create_city_image(
    db: Session,
    city_id: int,
    data: schemas.CityImageCreate,
    user_id: int | None = None,
) -> models.CityImage:
    """
    Append an already-stored screenshot to a city.

    The image goes after the existing ones in display order. A city's first
    image becomes its primary unless a Hall of Fame image already is.
    """
    try:
        if user_id is not None:
            _lock_owned_city(db, city_id, user_id)
        elif db.query(models.City).filter(models.City.id == city_id).with_for_update().first() is None:
            raise NotFoundError("City not found")

        count = db.query(func.count(models.CityImage.id)).filter(models.CityImage.city_id == city_id).scalar()
        if count >= MAX_IMAGES_PER_CITY:
            raise ValidationError(f"Maximum {MAX_IMAGES_PER_CITY} images allowed per city")

        max_sort = (
            db.query(func.max(models.CityImage.sort_order))
            .filter(models.CityImage.city_id == city_id)
            .scalar()
        )
        image = models.CityImage(
            city_id=city_id,
            sort_order=0 if max_sort is None else max_sort + 1,
            is_primary=not _has_primary(db, city_id),
            **data.model_dump(),
        )
        db.add(image)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(image)
    invalidate_city_cache(city_id)
    return image


def get_city_images(db: Session, city_id: int) -> list[models.CityImage]:
    """Primary first, then display order. Fills in any missing sort order."""
    missing = (
        db.query(models.CityImage.id)
        .filter(models.CityImage.city_id == city_id, models.CityImage.sort_order.is_(None))
        .first()
    )
    if missing:
        ordered = (
            db.query(models.CityImage)
            .filter(models.CityImage.city_id == city_id)
            .order_by(models.CityImage.is_primary.desc(), models.CityImage.uploaded_at.desc())
            .all()
        )
        for index, image in enumerate(ordered):
            image.sort_order = index
        db.commit()

    return (
        db.query(models.CityImage)
        .filter(models.CityImage.city_id == city_id)
        .order_by(
            models.CityImage.is_primary.desc(),
            models.CityImage.sort_order.asc(),
            models.CityImage.id.asc(),
        )
        .all()
    )


def delete_image_engagement(db: Session, image_type: str, image_ids) -> None:
    """Remove likes, comments, comment likes and views of the given images, inside the caller's transaction."""
    comment_ids = select(models.ImageComment.id).where(
        models.ImageComment.image_type == image_type, models.ImageComment.image_id.in_(image_ids)
    )
    db.query(models.ImageCommentLike).filter(models.ImageCommentLike.comment_id.in_(comment_ids)).delete(
        synchronize_session=False
    )
    for model in (models.ImageComment, models.ImageLike, models.ImageView):
        db.query(model).filter(model.image_type == image_type, model.image_id.in_(image_ids)).delete(
            synchronize_session=False
        )


def delete_city_image(db: Session, image_id: int, user_id: int) -> models.CityImage:
    """
    Delete a screenshot owned by ``user_id``.

    If it was the primary, the next image in display order is promoted in
    the same transaction. The returned row still carries the storage paths
    so the caller can remove the files.
    """
    image = db.get(models.CityImage, image_id)
    if image is None:
        raise NotFoundError("Image not found")

    city_id = image.city_id
    try:
        _lock_owned_city(db, city_id, user_id)
        was_primary = image.is_primary
        delete_image_engagement(db, models.IMAGE_TYPE_SCREENSHOT, [image_id])
        db.delete(image)
        db.flush()

        if was_primary:
            successor = _first_image(db, city_id)
            if successor is not None:
                successor.is_primary = True
        db.commit()
    except Exception:
        db.rollback()
        raise

    invalidate_city_cache(city_id)
    logger.info(f"User {user_id} deleted image {image_id} from city {city_id}")
    return image


def reorder_city_images(db: Session, city_id: int, user_id: int, image_ids: list[int]) -> list[models.CityImage]:
    """Set display order; ``image_ids`` must list every image of the city exactly once."""
    try:
        _lock_owned_city(db, city_id, user_id)
        images = db.query(models.CityImage).filter(models.CityImage.city_id == city_id).all()
        by_id = {image.id: image for image in images}

        if len(image_ids) != len(set(image_ids)) or set(image_ids) != set(by_id):
            raise ValidationError("Image list does not match the city's images")

        for index, image_id in enumerate(image_ids):
            by_id[image_id].sort_order = index
        db.commit()
    except Exception:
        db.rollback()
        raise

    invalidate_city_cache(city_id)
    return get_city_images(db, city_id)


# ============================================================================
# PRIMARY SELECTION
# ============================================================================


def set_primary_image(db: Session, image_id: int, city_id: int, user_id: int) -> None:
    """
    Make an uploaded screenshot the city's only primary image.

    Raises UnauthorizedError unless ``user_id`` owns the city, and
    NotFoundError unless the image belongs to it.
    """
    try:
        _lock_owned_city(db, city_id, user_id)

        image = (
            db.query(models.CityImage)
            .filter(models.CityImage.id == image_id, models.CityImage.city_id == city_id)
            .first()
        )
        if image is None:
            raise NotFoundError("Image not found or does not belong to this city")

        _clear_primaries(db, city_id)
        db.query(models.CityImage).filter(models.CityImage.id == image_id).update(
            {models.CityImage.is_primary: True}, synchronize_session=False
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.expire_all()
    invalidate_city_cache(city_id)
    logger.info(f"Image {image_id} is now primary for city {city_id}")


def set_primary_hall_of_fame_image(db: Session, hof_image_id: str, city_id: int, user_id: int) -> None:
    """Same as ``set_primary_image`` for a Hall of Fame image assigned to the city."""
    try:
        _lock_owned_city(db, city_id, user_id)

        image = (
            db.query(models.HallOfFameCache)
            .filter(
                models.HallOfFameCache.hof_image_id == hof_image_id,
                models.HallOfFameCache.city_id == city_id,
            )
            .first()
        )
        if image is None:
            raise NotFoundError("Hall of Fame image not found for this city")

        _clear_primaries(db, city_id)
        db.query(models.HallOfFameCache).filter(models.HallOfFameCache.id == image.id).update(
            {models.HallOfFameCache.is_primary: True}, synchronize_session=False
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.expire_all()
    invalidate_city_cache(city_id)
    logger.info(f"Hall of Fame image {hof_image_id} is now primary for city {city_id}")


def count_primaries(db: Session, city_id: int | None = None) -> Counter:
    """Number of primary images per city across both image tables."""
    counts: Counter = Counter()
    uploaded = db.query(models.CityImage.city_id).filter(models.CityImage.is_primary.is_(True))
    hof = db.query(models.HallOfFameCache.city_id).filter(
        models.HallOfFameCache.is_primary.is_(True), models.HallOfFameCache.city_id.isnot(None)
    )
    if city_id is not None:
        uploaded = uploaded.filter(models.CityImage.city_id == city_id)
        hof = hof.filter(models.HallOfFameCache.city_id == city_id)

    for (cid,) in uploaded.all():
        counts[cid] += 1
    for (cid,) in hof.all():
        counts[cid] += 1
    return counts


def fix_duplicate_primary_images(db: Session, dry_run: bool = False) -> int:
    """
    Repair cities with more than one primary image.

    The uploaded screenshot first in display order is kept; when only Hall of
    Fame images are flagged, the oldest one is kept. Returns the number of
    cities repaired (or that would be, with ``dry_run``).
    """
    duplicates = sorted(cid for cid, n in count_primaries(db).items() if n > 1)
    if dry_run or not duplicates:
        return len(duplicates)

    for city_id in duplicates:
        try:
            keep_upload = (
                db.query(models.CityImage)
                .filter(models.CityImage.city_id == city_id, models.CityImage.is_primary.is_(True))
                .order_by(models.CityImage.sort_order.asc().nulls_last(), models.CityImage.id.asc())
                .first()
            )
            keep_hof = None
            if keep_upload is None:
                keep_hof = (
                    db.query(models.HallOfFameCache)
                    .filter(
                        models.HallOfFameCache.city_id == city_id,
                        models.HallOfFameCache.is_primary.is_(True),
                    )
                    .order_by(models.HallOfFameCache.id.asc())
                    .first()
                )

            _clear_primaries(db, city_id)
            if keep_upload is not None:
                db.query(models.CityImage).filter(models.CityImage.id == keep_upload.id).update(
                    {models.CityImage.is_primary: True}, synchronize_session=False
                )
            elif keep_hof is not None:
                db.query(models.HallOfFameCache).filter(models.HallOfFameCache.id == keep_hof.id).update(
                    {models.HallOfFameCache.is_primary: True}, synchronize_session=False
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        invalidate_city_cache(city_id)
        logger.info(f"Fixed duplicate primary images for city {city_id}")

    db.expire_all()
    return len(duplicates)


def ensure_primary_images(db: Session, dry_run: bool = False) -> int:
    """Give every city that has screenshots but no primary image one. Returns cities updated."""
    with_images = {cid for (cid,) in db.query(models.CityImage.city_id).distinct().all()}
    missing = sorted(with_images - set(count_primaries(db)))
    if dry_run or not missing:
        return len(missing)

    for city_id in missing:
        first = _first_image(db, city_id)
        if first is not None:
            first.is_primary = True
    db.commit()

    for city_id in missing:
        invalidate_city_cache(city_id)
    logger.info(f"Assigned primary images to {len(missing)} cities")
    return len(missing)

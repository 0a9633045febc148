"""City records: creation, listings, detail, counters and community stats."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Query, Session

from .. import models, schemas, settings
from ..cache import (
    TAG_CITIES,
    TAG_COMMUNITY,
    cached_query,
    invalidate_city_cache,
)
from ..errors import NotFoundError, UnauthorizedError
from ..utils.audit import log_admin_action
from .images import delete_image_engagement

logger = logging.getLogger(__name__)


# ============================================================================
# SUMMARY QUERY
# ============================================================================


def _count_for_city(model):
    return (
        select(func.count(model.id))
        .where(model.city_id == models.City.id)
        .correlate(models.City)
        .scalar_subquery()
    )


def city_summary_query(db: Session) -> Query:
    """City rows joined with their owner and aggregated social counters."""
    return db.query(
        models.City,
        models.User.username,
        models.User.name,
        models.User.is_content_creator,
        _count_for_city(models.Like).label("like_count"),
        _count_for_city(models.Comment).label("comment_count"),
        _count_for_city(models.CityImage).label("image_count"),
    ).outerjoin(models.User, models.City.user_id == models.User.id)


def image_variants(image: models.CityImage) -> schemas.ImageVariants:
    return schemas.ImageVariants(
        id=image.id,
        source="upload",
        thumbnail=image.thumbnail_path,
        medium=image.medium_path,
        large=image.large_path,
        original=image.original_path,
    )


def hall_of_fame_variants(image: models.HallOfFameCache) -> schemas.ImageVariants:
    return schemas.ImageVariants(
        id=image.hof_image_id,
        source="hall_of_fame",
        thumbnail=image.image_url_thumbnail,
        medium=image.image_url_fhd,
        large=image.image_url_fhd,
        original=image.image_url_4k,
    )


def get_primary_images(db: Session, city_ids: Iterable[int]) -> dict[int, schemas.ImageVariants]:
    """
    Resolve the display image for each city.

    A flagged primary (uploaded or Hall of Fame) wins; otherwise the first
    uploaded screenshot in display order is used.
    """
    ids = list(set(city_ids))
    if not ids:
        return {}

    result: dict[int, schemas.ImageVariants] = {}

    hof_primaries = (
        db.query(models.HallOfFameCache)
        .filter(models.HallOfFameCache.city_id.in_(ids), models.HallOfFameCache.is_primary.is_(True))
        .all()
    )
    for image in hof_primaries:
        result[image.city_id] = hall_of_fame_variants(image)

    uploads = (
        db.query(models.CityImage)
        .filter(models.CityImage.city_id.in_(ids))
        .order_by(
            models.CityImage.city_id,
            models.CityImage.is_primary.desc(),
            models.CityImage.sort_order.asc(),
            models.CityImage.id.asc(),
        )
        .all()
    )
    for image in uploads:
        if image.city_id not in result:
            result[image.city_id] = image_variants(image)

    return result


def build_city_summaries(db: Session, rows: list) -> list[schemas.CitySummary]:
    """Turn ``city_summary_query`` rows into response models."""
    primaries = get_primary_images(db, (row[0].id for row in rows))
    summaries = []
    for city, username, name, is_creator, like_count, comment_count, image_count in rows:
        summaries.append(
            schemas.CitySummary(
                id=city.id,
                user_id=city.user_id,
                city_name=city.city_name,
                map_name=city.map_name,
                population=city.population,
                money=city.money,
                xp=city.xp,
                theme=city.theme,
                game_mode=city.game_mode,
                downloadable=city.downloadable,
                uploaded_at=city.uploaded_at,
                mods_enabled=city.mods_enabled or [],
                author_username=username,
                author_name=name,
                author_is_content_creator=bool(is_creator),
                like_count=like_count or 0,
                comment_count=comment_count or 0,
                image_count=image_count or 0,
                primary_image=primaries.get(city.id),
            )
        )
    return summaries


def _dump(summaries: list[schemas.CitySummary]) -> list[dict]:
    return [s.model_dump(mode="json") for s in summaries]


def _load(rows: list[dict]) -> list[schemas.CitySummary]:
    return [schemas.CitySummary.model_validate(row) for row in rows]


# ============================================================================
# CRUD
# ============================================================================


def get_city_by_id(db: Session, city_id: int) -> models.City | None:
    return db.get(models.City, city_id)


def require_city(db: Session, city_id: int) -> models.City:
    city = get_city_by_id(db, city_id)
    if not city:
        raise NotFoundError("City not found")
    return city


def require_owned_city(db: Session, city_id: int, user_id: int) -> models.City:
    city = require_city(db, city_id)
    if city.user_id != user_id:
        raise UnauthorizedError("You do not own this city")
    return city


def create_city(db: Session, user_id: int, data: schemas.CityCreate) -> models.City:
    """Store an uploaded city and tell the owner's followers about it."""
    from .notifications import NotificationService

    city = models.City(user_id=user_id, **data.model_dump())
    db.add(city)
    db.commit()
    db.refresh(city)

    invalidate_city_cache(city.id)
    logger.info(f"User {user_id} uploaded city {city.id}")

    NotificationService.notify_followers_of_new_city(db, user_id, city)
    return city


def get_city_detail(db: Session, city_id: int) -> schemas.CityDetail:
    from .hall_of_fame import get_city_hall_of_fame_images
    from .images import get_city_images

    row = city_summary_query(db).filter(models.City.id == city_id).first()
    if row is None:
        raise NotFoundError("City not found")

    summary = build_city_summaries(db, [row])[0]
    city = row[0]
    favorite_count = (
        db.query(func.count(models.Favorite.id)).filter(models.Favorite.city_id == city_id).scalar() or 0
    )

    return schemas.CityDetail(
        **summary.model_dump(),
        preview=city.preview,
        save_game_data=city.save_game_data,
        session_guid=city.session_guid,
        auto_save=city.auto_save,
        left_hand_traffic=city.left_hand_traffic,
        natural_disasters=city.natural_disasters,
        unlock_all=city.unlock_all,
        unlimited_money=city.unlimited_money,
        unlock_map_tiles=city.unlock_map_tiles,
        simulation_date=city.simulation_date,
        content_prerequisites=city.content_prerequisites or [],
        file_name=city.file_name,
        description=city.description,
        download_count=city.download_count or 0,
        view_count=city.view_count or 0,
        updated_at=city.updated_at,
        favorite_count=favorite_count,
        images=[schemas.CityImageOut.model_validate(img) for img in get_city_images(db, city_id)],
        hall_of_fame_images=[
            schemas.HallOfFameImageOut.model_validate(img)
            for img in get_city_hall_of_fame_images(db, city_id)
        ],
    )


def _delete_city_rows(db: Session, city: models.City) -> None:
    """Remove a city and everything hanging off it, inside the caller's transaction."""
    city_id = city.id
    comment_ids = select(models.Comment.id).where(models.Comment.city_id == city_id)

    db.query(models.CommentLike).filter(models.CommentLike.comment_id.in_(comment_ids)).delete(
        synchronize_session=False
    )
    delete_image_engagement(
        db,
        models.IMAGE_TYPE_SCREENSHOT,
        select(models.CityImage.id).where(models.CityImage.city_id == city_id),
    )
    for model in (models.Comment, models.Like, models.Favorite, models.CityImage):
        db.query(model).filter(model.city_id == city_id).delete(synchronize_session=False)

    # Hall of Fame images belong to the creator, not the city
    db.query(models.HallOfFameCache).filter(models.HallOfFameCache.city_id == city_id).update(
        {models.HallOfFameCache.city_id: None, models.HallOfFameCache.is_primary: False},
        synchronize_session=False,
    )
    for model in (models.ImageLike, models.ImageComment, models.ImageView):
        db.query(model).filter(model.city_id == city_id).update({model.city_id: None}, synchronize_session=False)
    db.delete(city)


def delete_city(db: Session, city_id: int, user_id: int) -> None:
    city = require_owned_city(db, city_id, user_id)
    try:
        _delete_city_rows(db, city)
        db.commit()
    except Exception:
        db.rollback()
        raise
    invalidate_city_cache(city_id)
    logger.info(f"User {user_id} deleted city {city_id}")


def admin_delete_city(db: Session, city_id: int, admin: models.User) -> None:
    city = require_city(db, city_id)
    city_name = city.city_name
    try:
        _delete_city_rows(db, city)
        db.commit()
    except Exception:
        db.rollback()
        raise
    invalidate_city_cache(city_id)
    log_admin_action(db, admin.id, "delete_city", "city", city_id, note=city_name)


def update_city_downloadable(db: Session, city_id: int, user_id: int, downloadable: bool) -> models.City:
    city = require_owned_city(db, city_id, user_id)
    city.downloadable = downloadable
    db.commit()
    invalidate_city_cache(city_id)
    return city


def update_city_description(db: Session, city_id: int, user_id: int, description: str | None) -> models.City:
    city = require_owned_city(db, city_id, user_id)
    city.description = description.strip() if description else None
    db.commit()
    invalidate_city_cache(city_id)
    return city


def update_city_name(db: Session, city_id: int, user_id: int, city_name: str) -> models.City:
    city = require_owned_city(db, city_id, user_id)
    city.city_name = city_name.strip()
    db.commit()
    invalidate_city_cache(city_id)
    return city


def record_city_view(db: Session, city_id: int) -> int:
    require_city(db, city_id)
    db.query(models.City).filter(models.City.id == city_id).update(
        {models.City.view_count: models.City.view_count + 1}, synchronize_session=False
    )
    db.commit()
    return db.query(models.City.view_count).filter(models.City.id == city_id).scalar()


def record_city_download(db: Session, city_id: int) -> int:
    city = require_city(db, city_id)
    if not city.downloadable:
        raise NotFoundError("City is not available for download")
    db.query(models.City).filter(models.City.id == city_id).update(
        {models.City.download_count: models.City.download_count + 1}, synchronize_session=False
    )
    db.commit()
    invalidate_city_cache(city_id)
    return db.query(models.City.download_count).filter(models.City.id == city_id).scalar()


# ============================================================================
# LISTINGS
# ============================================================================


def get_recent_cities(db: Session, limit: int = 12) -> list[schemas.CitySummary]:
    def load() -> list[dict]:
        rows = (
            city_summary_query(db)
            .order_by(models.City.uploaded_at.desc(), models.City.id.desc())
            .limit(limit)
            .all()
        )
        return _dump(build_city_summaries(db, rows))

    return _load(
        cached_query(load, "recent_cities", (limit,), ttl=settings.RECENT_CITIES_CACHE_TTL, tags=[TAG_CITIES])
    )


def get_top_cities_by_money(db: Session, limit: int = 3) -> list[schemas.CitySummary]:
    rows = (
        city_summary_query(db)
        .filter(models.City.money.isnot(None))
        .order_by(models.City.money.desc(), models.City.id.asc())
        .limit(limit)
        .all()
    )
    return build_city_summaries(db, rows)


def get_top_cities_by_likes(db: Session, limit: int = 3) -> list[schemas.CitySummary]:
    like_count = _count_for_city(models.Like)
    rows = (
        city_summary_query(db)
        .order_by(like_count.desc(), models.City.uploaded_at.desc(), models.City.id.desc())
        .limit(limit)
        .all()
    )
    return build_city_summaries(db, rows)


def get_featured_creator_cities(db: Session, limit: int = 6) -> list[schemas.CitySummary]:
    """Newest cities uploaded by content creators."""
    rows = (
        city_summary_query(db)
        .filter(models.User.is_content_creator.is_(True))
        .order_by(models.City.uploaded_at.desc(), models.City.id.desc())
        .limit(limit)
        .all()
    )
    return build_city_summaries(db, rows)


def get_cities_by_user(db: Session, user_id: int) -> list[schemas.CitySummary]:
    rows = (
        city_summary_query(db)
        .filter(models.City.user_id == user_id)
        .order_by(models.City.uploaded_at.desc(), models.City.id.desc())
        .all()
    )
    return build_city_summaries(db, rows)


def get_city_count_by_user(db: Session, user_id: int) -> int:
    return db.query(func.count(models.City.id)).filter(models.City.user_id == user_id).scalar() or 0


def get_total_city_count(db: Session) -> int:
    return db.query(func.count(models.City.id)).scalar() or 0


def get_admin_city_list(db: Session, limit: int = 50, offset: int = 0) -> tuple[list[schemas.CitySummary], int]:
    rows = (
        city_summary_query(db)
        .order_by(models.City.uploaded_at.desc(), models.City.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return build_city_summaries(db, rows), get_total_city_count(db)


# ============================================================================
# FILTER OPTIONS & STATS
# ============================================================================


def _distinct_values(db: Session, column) -> list[str]:
    rows = db.query(column).filter(column.isnot(None), column != "").distinct().order_by(column.asc()).all()
    return [value for (value,) in rows]


def get_unique_themes(db: Session) -> list[str]:
    return cached_query(
        lambda: _distinct_values(db, models.City.theme),
        "unique_themes",
        ttl=settings.FILTER_OPTIONS_CACHE_TTL,
        tags=[TAG_CITIES],
    )


def get_unique_game_modes(db: Session) -> list[str]:
    return cached_query(
        lambda: _distinct_values(db, models.City.game_mode),
        "unique_game_modes",
        ttl=settings.FILTER_OPTIONS_CACHE_TTL,
        tags=[TAG_CITIES],
    )


def get_content_creators(db: Session) -> list[str]:
    rows = (
        db.query(models.User.username)
        .filter(models.User.is_content_creator.is_(True), models.User.username.isnot(None))
        .order_by(models.User.username.asc())
        .all()
    )
    return [username for (username,) in rows]


def _compute_community_stats(db: Session) -> dict:
    totals = db.query(
        func.count(models.City.id),
        func.coalesce(func.sum(models.City.download_count), 0),
        func.coalesce(func.sum(models.City.view_count), 0),
    ).one()
    return schemas.CommunityStats(
        total_cities=totals[0] or 0,
        total_users=db.query(func.count(models.User.id)).scalar() or 0,
        total_likes=db.query(func.count(models.Like.id)).scalar() or 0,
        total_comments=db.query(func.count(models.Comment.id)).scalar() or 0,
        total_downloads=int(totals[1] or 0),
        total_views=int(totals[2] or 0),
    ).model_dump(mode="json")


def get_community_stats(db: Session) -> schemas.CommunityStats:
    data = cached_query(
        lambda: _compute_community_stats(db),
        "community_stats",
        ttl=settings.COMMUNITY_STATS_CACHE_TTL,
        tags=[TAG_COMMUNITY],
    )
    return schemas.CommunityStats.model_validate(data)

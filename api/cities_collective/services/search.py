"""City search: free-text, filters, sorting and offset pagination.

``search_cities`` and ``get_search_cities_count`` build their WHERE clause
from the same ``build_search_predicates`` so the reported total always
matches the rows a caller can page through.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Literal

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..cache import TAG_CITIES, cached_query
from ..db import query_timeout
from .cities import build_city_summaries, city_summary_query

logger = logging.getLogger(__name__)

SortBy = Literal["newest", "oldest", "population", "money", "xp", "name"]
SortOrder = Literal["asc", "desc"]

SORT_OPTIONS: tuple[str, ...] = ("newest", "oldest", "population", "money", "xp", "name")

# Direction used when the caller does not pick one
DEFAULT_SORT_ORDER: SortOrder = "desc"

_SORT_COLUMNS = {
    "newest": models.City.uploaded_at,
    "oldest": models.City.uploaded_at,
    "population": models.City.population,
    "money": models.City.money,
    "xp": models.City.xp,
    "name": models.City.city_name,
}


@dataclass
class CitySearchFilters:
    query: str | None = None
    theme: str | None = None
    game_mode: str | None = None
    min_population: int | None = None
    max_population: int | None = None
    min_money: int | None = None
    max_money: int | None = None
    min_xp: int | None = None
    max_xp: int | None = None
    content_creator: str | None = None  # username of a content creator
    has_images: bool = False
    sort_by: SortBy = "newest"
    sort_order: SortOrder | None = None

    def cache_args(self) -> dict:
        return asdict(self)


def _search_words(query: str | None) -> list[str]:
    if not query:
        return []
    return query.lower().split()


def _escape_like(word: str) -> str:
    return word.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_search_predicates(filters: CitySearchFilters) -> list:
    """
    WHERE clauses for a filter set. Expects ``users`` outer-joined on the owner.

    Each free-text word must appear (case-insensitive substring) in the city
    name, map name, owner username or owner email.
    """
    predicates = []

    for word in _search_words(filters.query):
        pattern = f"%{_escape_like(word)}%"
        predicates.append(
            or_(
                models.City.city_name.ilike(pattern, escape="\\"),
                models.City.map_name.ilike(pattern, escape="\\"),
                models.User.username.ilike(pattern, escape="\\"),
                models.User.email.ilike(pattern, escape="\\"),
            )
        )

    if filters.theme:
        predicates.append(models.City.theme == filters.theme)
    if filters.game_mode:
        predicates.append(models.City.game_mode == filters.game_mode)

    ranges = (
        (models.City.population, filters.min_population, filters.max_population),
        (models.City.money, filters.min_money, filters.max_money),
        (models.City.xp, filters.min_xp, filters.max_xp),
    )
    for column, low, high in ranges:
        if low is not None:
            predicates.append(column >= low)
        if high is not None:
            predicates.append(column <= high)

    if filters.content_creator:
        predicates.append(models.User.is_content_creator.is_(True))
        predicates.append(func.lower(models.User.username) == filters.content_creator.strip().lower())

    if filters.has_images:
        predicates.append(
            or_(
                exists().where(models.CityImage.city_id == models.City.id),
                exists().where(models.HallOfFameCache.city_id == models.City.id),
            )
        )

    return predicates


def build_order_by(filters: CitySearchFilters) -> list:
    sort_by = filters.sort_by if filters.sort_by in _SORT_COLUMNS else "newest"
    direction = filters.sort_order or DEFAULT_SORT_ORDER
    column = _SORT_COLUMNS[sort_by]

    if direction == "asc":
        return [column.asc().nulls_last(), models.City.id.asc()]
    return [column.desc().nulls_last(), models.City.id.desc()]


def _search_rows(db: Session, filters: CitySearchFilters, limit: int | None, offset: int) -> list:
    q = city_summary_query(db).filter(*build_search_predicates(filters))
    q = q.order_by(*build_order_by(filters))
    if offset:
        q = q.offset(offset)
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def search_cities(
    db: Session,
    filters: CitySearchFilters | None = None,
    limit: int | None = 12,
    offset: int = 0,
) -> list[schemas.CitySummary]:
    """Return one page of matching cities; ``limit=None`` returns every match."""
    filters = filters or CitySearchFilters()

    def load() -> list[dict]:
        with query_timeout(db):
            rows = _search_rows(db, filters, limit, offset)
            return [s.model_dump(mode="json") for s in build_city_summaries(db, rows)]

    data = cached_query(
        load,
        "search_cities",
        (filters.cache_args(), limit, offset),
        ttl=settings.SEARCH_CACHE_TTL,
        tags=[TAG_CITIES],
    )
    return [schemas.CitySummary.model_validate(row) for row in data]


def get_search_cities_count(db: Session, filters: CitySearchFilters | None = None) -> int:
    filters = filters or CitySearchFilters()

    def load() -> int:
        with query_timeout(db):
            stmt = (
                select(func.count(models.City.id))
                .select_from(models.City)
                .outerjoin(models.User, models.City.user_id == models.User.id)
                .where(*build_search_predicates(filters))
            )
            return db.execute(stmt).scalar_one()

    return cached_query(
        load,
        "search_cities_count",
        (filters.cache_args(),),
        ttl=settings.SEARCH_CACHE_TTL,
        tags=[TAG_CITIES],
    )


def get_filter_options(db: Session) -> schemas.FilterOptions:
    from .cities import get_content_creators, get_unique_game_modes, get_unique_themes

    return schemas.FilterOptions(
        themes=get_unique_themes(db),
        game_modes=get_unique_game_modes(db),
        content_creators=get_content_creators(db),
        sort_options=list(SORT_OPTIONS),
    )

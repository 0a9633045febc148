"""Search endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..services import search as search_service
from ..services.search import CitySearchFilters
from ..services.users import search_users as search_user_accounts

router = APIRouter(prefix="/api/search", tags=["Search"])


@router.get("", response_model=schemas.SearchResults)
def search_cities(
    q: str | None = Query(None, max_length=200),
    theme: str | None = None,
    game_mode: str | None = Query(None, alias="gameMode"),
    min_population: int | None = Query(None, alias="minPopulation", ge=0),
    max_population: int | None = Query(None, alias="maxPopulation", ge=0),
    min_money: int | None = Query(None, alias="minMoney"),
    max_money: int | None = Query(None, alias="maxMoney"),
    min_xp: int | None = Query(None, alias="minXp", ge=0),
    max_xp: int | None = Query(None, alias="maxXp", ge=0),
    content_creator: str | None = Query(None, alias="contentCreator"),
    has_images: bool = Query(False, alias="hasImages"),
    sort_by: Literal["newest", "oldest", "population", "money", "xp", "name"] = Query("newest", alias="sortBy"),
    sort_order: Literal["asc", "desc"] | None = Query(None, alias="sortOrder"),
    limit: int = Query(12, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> schemas.SearchResults:
    """
    Search cities with filters, sorting and offset pagination.

    ``total`` counts every match, so clients can page with ``hasMore``.
    """
    filters = CitySearchFilters(
        query=q,
        theme=theme or None,
        game_mode=game_mode or None,
        min_population=min_population,
        max_population=max_population,
        min_money=min_money,
        max_money=max_money,
        min_xp=min_xp,
        max_xp=max_xp,
        content_creator=content_creator or None,
        has_images=has_images,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    cities = search_service.search_cities(db, filters, limit=limit, offset=offset)
    total = search_service.get_search_cities_count(db, filters)
    return schemas.SearchResults(
        cities=cities,
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(cities) < total,
    )


@router.get("/filter-options", response_model=schemas.FilterOptions)
def get_filter_options(db: Session = Depends(get_db)) -> schemas.FilterOptions:
    return search_service.get_filter_options(db)


@router.get("/users", response_model=list[schemas.UserPublic])
def search_users(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=50),
    db: Session = Depends(get_db),
) -> list[schemas.UserPublic]:
    """Username lookup for tagging and profile search."""
    return [schemas.UserPublic.model_validate(user) for user in search_user_accounts(db, q, limit)]

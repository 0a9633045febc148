"""Admin and moderation endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user_optional, require_admin
from ..cache import clear_cache, get_cache_stats
from ..deps import get_db
from ..errors import ValidationError
from ..services import api_keys, hall_of_fame, images, moderation, social
from ..services import cities as city_service
from ..services import users as user_service
from ..utils.audit import get_recent_admin_actions, log_admin_action

router = APIRouter(prefix="/api/admin", tags=["Admin"])
logger = logging.getLogger(__name__)


@router.get("/check", response_model=schemas.AdminCheck)
def check_admin(
    current_user: models.User | None = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
) -> schemas.AdminCheck:
    """Anonymous visitors are simply not admins."""
    if current_user is None:
        return schemas.AdminCheck(is_admin=False)
    return schemas.AdminCheck(is_admin=user_service.is_user_admin(db, current_user.id))


# ============================================================================
# CITIES
# ============================================================================


@router.get("/cities", response_model=schemas.Page[schemas.CitySummary])
def list_cities(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> schemas.Page[schemas.CitySummary]:
    cities, total = city_service.get_admin_city_list(db, limit=limit, offset=offset)
    return schemas.Page[schemas.CitySummary](items=cities, total=total, limit=limit, offset=offset)


@router.delete("/delete-city/{city_id}", response_model=schemas.SuccessResponse)
def delete_city(
    city_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.SuccessResponse:
    city_service.admin_delete_city(db, city_id, admin)
    return schemas.SuccessResponse(message="City deleted")


@router.get("/user-cities/{user_id}", response_model=list[schemas.CitySummary])
def list_user_cities(
    user_id: int,
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> list[schemas.CitySummary]:
    return city_service.get_cities_by_user(db, user_id)


@router.post("/fix-primary-images", response_model=schemas.FixPrimaryImagesResult)
def fix_primary_images(
    dry_run: bool = Query(False, alias="dryRun"),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.FixPrimaryImagesResult:
    """Repair cities with several primary images and give image-only cities a primary."""
    result = schemas.FixPrimaryImagesResult(
        duplicates_fixed=images.fix_duplicate_primary_images(db, dry_run=dry_run),
        primaries_assigned=images.ensure_primary_images(db, dry_run=dry_run),
    )
    if not dry_run:
        log_admin_action(
            db,
            admin.id,
            "fix_primary_images",
            note=f"{result.duplicates_fixed} duplicates, {result.primaries_assigned} assigned",
        )
    return result


# ============================================================================
# USERS
# ============================================================================


@router.get("/search-users", response_model=list[schemas.UserWithStats])
def search_users(
    q: str | None = Query(None, max_length=100),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> list[schemas.UserWithStats]:
    rows = user_service.get_all_users_with_stats(db, query=q, limit=limit)
    return [
        schemas.UserWithStats(
            **schemas.UserFull.model_validate(row["user"]).model_dump(),
            city_count=row["city_count"] or 0,
            comment_count=row["comment_count"] or 0,
            follower_count=row["follower_count"] or 0,
        )
        for row in rows
    ]


@router.post("/users/{user_id}/toggle-admin", response_model=schemas.UserFull)
def toggle_admin(
    user_id: int,
    payload: schemas.ToggleAdminRequest,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.UserFull:
    if user_id == admin.id and not payload.is_admin:
        raise ValidationError("You cannot remove your own admin access")

    user = user_service.set_admin(db, user_id, payload.is_admin)
    log_admin_action(db, admin.id, "toggle_admin", "user", user_id, note=f"is_admin={payload.is_admin}")
    return schemas.UserFull.model_validate(user)


@router.post("/users/{user_id}/toggle-content-creator", response_model=schemas.UserFull)
def toggle_content_creator(
    user_id: int,
    payload: schemas.ToggleContentCreatorRequest,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.UserFull:
    user = user_service.set_content_creator(db, user_id, payload.is_content_creator)
    log_admin_action(
        db,
        admin.id,
        "toggle_content_creator",
        "user",
        user_id,
        note=f"is_content_creator={payload.is_content_creator}",
    )
    return schemas.UserFull.model_validate(user)


# ============================================================================
# API KEYS
# ============================================================================


@router.get("/api-keys", response_model=list[schemas.ApiKeyOut])
def list_api_keys(
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> list[schemas.ApiKeyOut]:
    return api_keys.get_all_api_keys(db)


@router.post("/api-keys", response_model=schemas.ApiKeyCreated, status_code=status.HTTP_201_CREATED)
def create_api_key(
    payload: schemas.ApiKeyCreate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.ApiKeyCreated:
    """Create a key for a user. The plaintext key is only returned here."""
    created = api_keys.create_api_key(db, payload.user_id, payload.name)
    log_admin_action(db, admin.id, "create_api_key", "api_key", created.id, note=f"user {payload.user_id}")
    return created


@router.get("/api-keys/user/{user_id}", response_model=list[schemas.ApiKeyOut])
def list_user_api_keys(
    user_id: int,
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> list[schemas.ApiKeyOut]:
    return api_keys.get_user_api_keys(db, user_id)


@router.delete("/api-keys/{key_id}", response_model=schemas.SuccessResponse)
def delete_api_key(
    key_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.SuccessResponse:
    api_keys.delete_api_key(db, key_id)
    log_admin_action(db, admin.id, "delete_api_key", "api_key", key_id)
    return schemas.SuccessResponse(message="API key deleted")


@router.post("/api-keys/{key_id}/toggle", response_model=schemas.ApiKeyOut)
def toggle_api_key(
    key_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.ApiKeyOut:
    key = api_keys.toggle_api_key_status(db, key_id)
    log_admin_action(db, admin.id, "toggle_api_key", "api_key", key_id, note=f"is_active={key.is_active}")
    return key


# ============================================================================
# COMMENTS & MODERATION
# ============================================================================


@router.get("/comments", response_model=schemas.Page[schemas.AdminCommentOut])
def list_comments(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> schemas.Page[schemas.AdminCommentOut]:
    comments, total = social.get_all_comments(db, limit=limit, offset=offset)
    return schemas.Page[schemas.AdminCommentOut](items=comments, total=total, limit=limit, offset=offset)


@router.delete("/comments/{comment_id}", response_model=schemas.SuccessResponse)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.SuccessResponse:
    social.delete_comment_as_admin(db, comment_id, admin)
    return schemas.SuccessResponse(message="Comment deleted")


@router.get("/moderation-settings")
def get_moderation_settings(
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> dict[str, Any]:
    return moderation.get_all_moderation_settings(db)


@router.put("/moderation-settings")
def update_moderation_settings(
    payload: schemas.ModerationSettingsUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> dict[str, Any]:
    """Replace the stored word lists; omitted lists are left as they are."""
    if payload.profanity_list is not None:
        moderation.set_moderation_setting(db, moderation.PROFANITY_LIST_KEY, payload.profanity_list)
    if payload.spam_indicators is not None:
        moderation.set_moderation_setting(db, moderation.SPAM_INDICATORS_KEY, payload.spam_indicators)
    log_admin_action(db, admin.id, "update_moderation_settings", "moderation_setting")
    return moderation.get_all_moderation_settings(db)


@router.get("/audit-log", response_model=list[schemas.AuditLogOut])
def list_audit_log(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> list[schemas.AuditLogOut]:
    return [schemas.AuditLogOut.model_validate(entry) for entry in get_recent_admin_actions(db, limit)]


# ============================================================================
# CACHE
# ============================================================================


@router.get("/cache-stats", response_model=schemas.CacheStats)
def cache_stats(_admin: models.User = Depends(require_admin)) -> schemas.CacheStats:
    return schemas.CacheStats.model_validate(get_cache_stats())


@router.delete("/cache-stats", response_model=schemas.SuccessResponse)
def flush_cache(admin: models.User = Depends(require_admin)) -> schemas.SuccessResponse:
    deleted = clear_cache()
    logger.info(f"Admin {admin.id} cleared {deleted} cache keys")
    return schemas.SuccessResponse(message=f"Cleared {deleted} cache keys")


# ============================================================================
# HALL OF FAME
# ============================================================================


@router.get("/hall-of-fame-images", response_model=list[schemas.HallOfFameImageOut])
def list_hall_of_fame_images(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _admin: models.User = Depends(require_admin),
) -> list[schemas.HallOfFameImageOut]:
    return [
        schemas.HallOfFameImageOut.model_validate(image)
        for image in hall_of_fame.get_all_hall_of_fame_images(db, limit=limit, offset=offset)
    ]


@router.post("/hall-of-fame-images/{image_id}/assign-city", response_model=schemas.HallOfFameImageOut)
def assign_hall_of_fame_image(
    image_id: int,
    payload: schemas.AssignCityRequest,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
) -> schemas.HallOfFameImageOut:
    image = hall_of_fame.assign_hall_of_fame_image_to_city(db, image_id, payload.city_id)
    log_admin_action(
        db, admin.id, "assign_hall_of_fame_image", "hall_of_fame_image", image_id, note=f"city {payload.city_id}"
    )
    return schemas.HallOfFameImageOut.model_validate(image)

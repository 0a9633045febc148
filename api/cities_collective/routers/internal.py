"""Service-to-service endpoints guarded by ``X-Internal-Token``."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import create_access_token, require_internal_token
from ..deps import get_db
from ..errors import NotFoundError
from ..services import users as user_service
from ..services.hall_of_fame import refresh_hall_of_fame_cache

router = APIRouter(
    prefix="/api/internal",
    tags=["Internal"],
    dependencies=[Depends(require_internal_token)],
)
logger = logging.getLogger(__name__)


@router.post("/update-hall-of-fame-cache", response_model=schemas.HallOfFameRefreshResult)
def update_hall_of_fame_cache(db: Session = Depends(get_db)) -> schemas.HallOfFameRefreshResult:
    """Re-fetch Hall of Fame screenshots for every user with a Creator ID."""
    return refresh_hall_of_fame_cache(db)


@router.post("/password-reset-token")
def issue_password_reset_token(
    payload: schemas.PasswordResetRequest,
    db: Session = Depends(get_db),
) -> dict[str, str]:
    """Issue a reset token for the mailer to put into the reset link."""
    user = user_service.get_user_by_email(db, payload.email)
    if user is None:
        raise NotFoundError("User not found")
    token = user_service.create_password_reset_token(db, user.id)
    logger.info(f"Issued password reset token for user {user.id}")
    return {"token": token}


@router.post("/oauth-sign-in", response_model=schemas.TokenResponse)
def oauth_sign_in(
    payload: schemas.OAuthSignInRequest,
    db: Session = Depends(get_db),
) -> schemas.TokenResponse:
    """Exchange a Google or GitHub identity verified by the web front end for a session token."""
    user = user_service.sign_in_with_oauth(
        db,
        payload.provider,
        payload.provider_id,
        payload.email,
        payload.name,
        avatar=payload.avatar,
    )
    return schemas.TokenResponse(
        access_token=create_access_token(user.id),
        user=schemas.UserFull.model_validate(user),
    )

"""Password sign-in and session endpoints.

OAuth handshakes are handled by the web front end.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..auth import JWT_ACCESS_TOKEN_EXPIRE_MINUTES, create_access_token, get_current_user
from ..deps import get_db
from ..errors import UnauthorizedError
from ..services import users as user_service

router = APIRouter(prefix="/api/auth", tags=["Auth"])
logger = logging.getLogger(__name__)


def _issue_session(request: Request, response: Response, user: models.User) -> schemas.TokenResponse:
    token = create_access_token(user.id)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return schemas.TokenResponse(access_token=token, user=schemas.UserFull.model_validate(user))


@router.post("/register", response_model=schemas.TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: schemas.RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> schemas.TokenResponse:
    user = user_service.create_user(
        db, payload.email, payload.password, username=payload.username, name=payload.name
    )
    return _issue_session(request, response, user)


@router.post("/login", response_model=schemas.TokenResponse)
def login(
    payload: schemas.LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> schemas.TokenResponse:
    """Sign in with username or email plus password."""
    user = user_service.authenticate_password(db, payload.identifier, payload.password)
    if user is None:
        raise UnauthorizedError("Invalid credentials")
    return _issue_session(request, response, user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout() -> Response:
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response


@router.get("/me", response_model=schemas.UserFull)
def get_me(current_user: models.User = Depends(get_current_user)) -> schemas.UserFull:
    return schemas.UserFull.model_validate(current_user)


@router.post("/password-reset/confirm", response_model=schemas.SuccessResponse)
def confirm_password_reset(
    payload: schemas.PasswordResetConfirm,
    db: Session = Depends(get_db),
) -> schemas.SuccessResponse:
    """Set a new password with a token issued through the internal API."""
    user_service.reset_password_with_token(db, payload.token, payload.new_password)
    return schemas.SuccessResponse(message="Password updated")

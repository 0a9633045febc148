from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import models, settings
from .deps import get_db
from .errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

# Security scheme for Bearer token
oauth2_scheme = HTTPBearer(auto_error=False)

# JWT Configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not JWT_SECRET_KEY:
    raise RuntimeError(
        "JWT_SECRET_KEY environment variable is required but not set. "
        "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )
if len(JWT_SECRET_KEY) < 32:
    raise RuntimeError("JWT_SECRET_KEY is too short. Must be at least 32 characters long.")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))


def create_access_token(user_id: int, expires_in_seconds: int | None = None) -> str:
    """Create a signed session token for a user."""
    if expires_in_seconds is None:
        expires_in_seconds = JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60

    now = datetime.now(timezone.utc)
    payload = {
        "user_id": str(user_id),
        "exp": now + timedelta(seconds=expires_in_seconds),
        "iat": now,
        "type": "access",
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def _user_from_token(token: str, db: Session) -> models.User:
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid session")

    user_id_str = payload.get("user_id")
    if not user_id_str:
        raise UnauthorizedError("Invalid session: missing user_id")

    try:
        user_id = int(user_id_str)
    except ValueError:
        raise UnauthorizedError("Invalid user ID in session")

    user = db.get(models.User, user_id)
    if not user:
        raise UnauthorizedError("User not found")
    return user


def _session_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Get the signed-in user from a Bearer token or the session cookie.
    """
    token = _session_token(request, credentials)
    if not token:
        raise UnauthorizedError("Authentication required")
    return _user_from_token(token, db)


def get_current_user_optional(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User | None:
    """
    Get current user if authenticated, None otherwise.

    Used for endpoints that work differently for signed-in and anonymous visitors.
    """
    token = _session_token(request, credentials)
    if not token:
        return None
    try:
        return _user_from_token(token, db)
    except UnauthorizedError:
        return None


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    """Require that the current user is an administrator."""
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user


# ============================================================================
# API KEY AUTHENTICATION
# ============================================================================


@dataclass
class ApiKeyPrincipal:
    """Caller authenticated through an API key."""

    user: models.User
    api_key: models.ApiKey

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def api_key_name(self) -> str:
        return self.api_key.name


def extract_api_key(request: Request) -> str | None:
    """Read the key from ``X-API-Key`` or ``Authorization: Bearer``."""
    key = request.headers.get("x-api-key")
    if key:
        return key.strip()

    authorization = request.headers.get("authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def get_api_key_user(request: Request, db: Session = Depends(get_db)) -> ApiKeyPrincipal:
    """Authenticate an external API call; inactive and unknown keys are rejected."""
    from .services.api_keys import authenticate_api_key

    key = extract_api_key(request)
    if not key:
        raise UnauthorizedError("Invalid or missing API key")

    principal = authenticate_api_key(db, key)
    if principal is None:
        raise UnauthorizedError("Invalid or missing API key")
    return principal


def require_internal_token(request: Request) -> None:
    """Guard for service-to-service endpoints."""
    expected = settings.INTERNAL_API_TOKEN
    provided = request.headers.get("x-internal-token", "")
    if not expected or not secrets.compare_digest(provided, expected):
        raise UnauthorizedError("Invalid internal token")

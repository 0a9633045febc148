"""API keys for the external HoF Creator API."""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import NotFoundError, UnauthorizedError

logger = logging.getLogger(__name__)

KEY_PREFIX = "cc_"
KEY_BYTES = 32
# "cc_" plus the first 8 hex characters
DISPLAY_PREFIX_LENGTH = len(KEY_PREFIX) + 8


def hash_api_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()


def generate_api_key() -> str:
    """``cc_`` followed by 64 hex characters."""
    return f"{KEY_PREFIX}{secrets.token_hex(KEY_BYTES)}"


def mask_api_key(api_key: models.ApiKey) -> str:
    return f"{api_key.key_prefix or KEY_PREFIX}{'*' * 8}"


def _to_schema(api_key: models.ApiKey, key: str | None = None) -> schemas.ApiKeyOut:
    user = api_key.user
    return schemas.ApiKeyOut(
        id=api_key.id,
        user_id=api_key.user_id,
        name=api_key.name,
        key=key or mask_api_key(api_key),
        is_active=api_key.is_active,
        last_used=api_key.last_used,
        created_at=api_key.created_at,
        username=user.username if user else None,
        email=user.email if user else None,
    )


def create_api_key(db: Session, user_id: int, name: str) -> schemas.ApiKeyCreated:
    """Create a key and return it with the plaintext secret, which is not stored."""
    if db.get(models.User, user_id) is None:
        raise NotFoundError("User not found")

    plaintext = generate_api_key()
    api_key = models.ApiKey(
        user_id=user_id,
        name=name.strip(),
        key=hash_api_key(plaintext),
        key_prefix=plaintext[:DISPLAY_PREFIX_LENGTH],
        is_active=True,
    )
    db.add(api_key)
    db.commit()
    db.refresh(api_key)
    logger.info(f"Created API key {api_key.id} for user {user_id}")
    return schemas.ApiKeyCreated(**_to_schema(api_key, key=plaintext).model_dump())


def get_user_api_keys(db: Session, user_id: int) -> list[schemas.ApiKeyOut]:
    keys = (
        db.query(models.ApiKey)
        .filter(models.ApiKey.user_id == user_id)
        .order_by(models.ApiKey.created_at.desc(), models.ApiKey.id.desc())
        .all()
    )
    return [_to_schema(k) for k in keys]


def get_all_api_keys(db: Session) -> list[schemas.ApiKeyOut]:
    keys = db.query(models.ApiKey).order_by(models.ApiKey.created_at.desc(), models.ApiKey.id.desc()).all()
    return [_to_schema(k) for k in keys]


def get_api_key_by_key(db: Session, key: str) -> models.ApiKey | None:
    return db.query(models.ApiKey).filter(models.ApiKey.key == hash_api_key(key)).first()


def update_api_key_last_used(db: Session, api_key: models.ApiKey) -> None:
    api_key.last_used = datetime.now(timezone.utc)
    db.commit()


def _get_key(db: Session, key_id: int, user_id: int | None) -> models.ApiKey:
    api_key = db.get(models.ApiKey, key_id)
    if api_key is None:
        raise NotFoundError("API key not found")
    if user_id is not None and api_key.user_id != user_id:
        raise UnauthorizedError("You do not own this API key")
    return api_key


def toggle_api_key_status(db: Session, key_id: int, user_id: int | None = None) -> schemas.ApiKeyOut:
    """Flip a key between active and inactive. ``user_id=None`` skips the ownership check."""
    api_key = _get_key(db, key_id, user_id)
    api_key.is_active = not api_key.is_active
    db.commit()
    logger.info(f"API key {key_id} is now {'active' if api_key.is_active else 'inactive'}")
    return _to_schema(api_key)


def delete_api_key(db: Session, key_id: int, user_id: int | None = None) -> None:
    api_key = _get_key(db, key_id, user_id)
    db.delete(api_key)
    db.commit()
    logger.info(f"Deleted API key {key_id}")


def authenticate_api_key(db: Session, key: str):
    """
    Resolve a presented key to its owner.

    Unknown and inactive keys yield None. A successful lookup records the
    time of use.
    """
    from ..auth import ApiKeyPrincipal

    api_key = get_api_key_by_key(db, key)
    if api_key is None or not api_key.is_active:
        return None

    user = db.get(models.User, api_key.user_id)
    if user is None:
        return None

    update_api_key_last_used(db, api_key)
    return ApiKeyPrincipal(user=user, api_key=api_key)

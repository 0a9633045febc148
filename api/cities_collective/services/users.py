"""User accounts, profiles and password reset tokens."""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, settings
from ..cache import invalidate_city_cache, invalidate_user_cache
from ..errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALLOWED_SOCIAL_PLATFORMS = {"twitter", "youtube", "twitch", "reddit", "discord", "github", "website"}


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def _commit_unique(db: Session, message: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.info(f"Unique constraint violation: {e.orig}")
        raise ConflictError(message) from e


# ============================================================================
# CREATION & LOOKUP
# ============================================================================


def create_user(
    db: Session,
    email: str,
    password: str,
    username: str | None = None,
    name: str | None = None,
) -> models.User:
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")

    user = models.User(
        email=email.strip().lower(),
        username=username,
        name=name,
        password_hash=hash_password(password),
    )
    db.add(user)
    _commit_unique(db, "Email or username already in use")
    db.refresh(user)
    invalidate_user_cache(user.id)
    logger.info(f"Created user {user.id}")
    return user


def create_oauth_user(
    db: Session,
    email: str,
    provider: str,
    provider_id: str,
    name: str | None = None,
    avatar: str | None = None,
) -> models.User:
    """Create an account for a first-time Google or GitHub sign-in."""
    if provider not in ("google", "github"):
        raise ValidationError(f"Unsupported provider: {provider}")

    user = models.User(email=email.strip().lower(), name=name, avatar=avatar)
    setattr(user, f"{provider}_id", provider_id)
    db.add(user)
    _commit_unique(db, "Account already exists")
    db.refresh(user)
    invalidate_user_cache(user.id)
    return user


def get_user_by_id(db: Session, user_id: int) -> models.User | None:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> models.User | None:
    return db.query(models.User).filter(func.lower(models.User.email) == email.strip().lower()).first()


def get_user_by_username_or_email(db: Session, identifier: str) -> models.User | None:
    ident = identifier.strip().lower()
    return (
        db.query(models.User)
        .filter(or_(func.lower(models.User.username) == ident, func.lower(models.User.email) == ident))
        .order_by(models.User.id)
        .first()
    )


def get_user_by_google_id(db: Session, google_id: str) -> models.User | None:
    return db.query(models.User).filter(models.User.google_id == google_id).first()


def get_user_by_github_id(db: Session, github_id: str) -> models.User | None:
    return db.query(models.User).filter(models.User.github_id == github_id).first()


def get_users_with_hof_creator_id(db: Session) -> list[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.hof_creator_id.isnot(None), models.User.hof_creator_id != "")
        .order_by(models.User.id)
        .all()
    )


def get_user_by_hof_creator_id(db: Session, creator_id: str) -> models.User | None:
    return db.query(models.User).filter(models.User.hof_creator_id == creator_id).first()


def _require_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _invalidate_author(user_id: int) -> None:
    # City listings embed the author name, username and creator flag
    invalidate_user_cache(user_id)
    invalidate_city_cache()


def _link_account(
    db: Session, user_id: int, provider: str, provider_id: str, name: str | None, avatar: str | None
) -> models.User:
    user = _require_user(db, user_id)
    setattr(user, f"{provider}_id", provider_id)
    if name:
        user.name = name
    if avatar:
        user.avatar = avatar
    _commit_unique(db, f"{provider.title()} account already linked to another user")
    _invalidate_author(user_id)
    return user


def link_google_account(
    db: Session, user_id: int, google_id: str, name: str | None = None, avatar: str | None = None
) -> models.User:
    return _link_account(db, user_id, "google", google_id, name, avatar)


def link_github_account(
    db: Session, user_id: int, github_id: str, name: str | None = None, avatar: str | None = None
) -> models.User:
    return _link_account(db, user_id, "github", github_id, name, avatar)


def sign_in_with_oauth(
    db: Session,
    provider: str,
    provider_id: str,
    email: str,
    name: str,
    avatar: str | None = None,
) -> models.User:
    """
    Resolve a Google or GitHub identity to an account.

    A known provider id signs straight in. Otherwise an account registered
    with the same email gets the provider linked, and failing that a new
    password-less account is created.
    """
    if provider == "google":
        user = get_user_by_google_id(db, provider_id)
    elif provider == "github":
        user = get_user_by_github_id(db, provider_id)
    else:
        raise ValidationError(f"Unsupported provider: {provider}")
    if user:
        return user

    existing = get_user_by_username_or_email(db, email)
    if existing:
        logger.info(f"Linking {provider} account to user {existing.id}")
        link = link_google_account if provider == "google" else link_github_account
        return link(db, existing.id, provider_id, name=name, avatar=avatar)

    return create_oauth_user(db, email, provider, provider_id, name=name, avatar=avatar)


def authenticate_password(db: Session, identifier: str, password: str) -> models.User | None:
    """Return the user if ``password`` matches, else None."""
    user = get_user_by_username_or_email(db, identifier)
    if not user or not user.password_hash:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# ============================================================================
# ROLES & PROFILE
# ============================================================================


def update_user(
    db: Session,
    user_id: int,
    username: str | None = None,
    is_admin: bool | None = None,
) -> models.User:
    user = _require_user(db, user_id)
    if username is not None:
        user.username = username
    if is_admin is not None:
        user.is_admin = is_admin
    _commit_unique(db, "Username already taken")
    _invalidate_author(user_id)
    return user


def set_admin(db: Session, user_id: int, is_admin: bool) -> models.User:
    return update_user(db, user_id, is_admin=is_admin)


def set_content_creator(db: Session, user_id: int, is_content_creator: bool) -> models.User:
    user = _require_user(db, user_id)
    user.is_content_creator = is_content_creator
    db.commit()
    _invalidate_author(user_id)
    return user


def is_user_admin(db: Session, user_id: int) -> bool:
    user = db.get(models.User, user_id)
    return bool(user and user.is_admin)


def update_profile(
    db: Session,
    user_id: int,
    username: str | None = None,
    name: str | None = None,
    avatar: str | None = None,
    pdx_username: str | None = None,
    discord_username: str | None = None,
) -> models.User:
    user = _require_user(db, user_id)
    if username is not None:
        user.username = username
    if name is not None:
        user.name = name
    if avatar is not None:
        user.avatar = avatar
    if pdx_username is not None:
        user.pdx_username = pdx_username or None
    if discord_username is not None:
        user.discord_username = discord_username or None
    _commit_unique(db, "Username already taken")
    _invalidate_author(user_id)
    return user


def update_social_links(db: Session, user_id: int, links: dict[str, str]) -> models.User:
    unknown = set(links) - ALLOWED_SOCIAL_PLATFORMS
    if unknown:
        raise ValidationError(f"Unsupported social platforms: {', '.join(sorted(unknown))}")

    user = _require_user(db, user_id)
    # Empty values remove the link
    user.social_links = {k: v.strip() for k, v in links.items() if v and v.strip()}
    db.commit()
    invalidate_user_cache(user_id)
    return user


def set_cookie_consent(db: Session, user_id: int, consent: dict[str, bool]) -> models.User:
    user = _require_user(db, user_id)
    # Necessary cookies cannot be declined
    user.cookie_consent = {**consent, "necessary": True}
    user.cookie_consent_at = datetime.now(timezone.utc)
    db.commit()
    return user


def set_hof_creator_id(db: Session, user_id: int, creator_id: str | None) -> models.User:
    user = _require_user(db, user_id)
    user.hof_creator_id = creator_id.strip() if creator_id and creator_id.strip() else None
    db.commit()
    invalidate_user_cache(user_id)
    return user


def get_total_user_count(db: Session) -> int:
    return db.query(func.count(models.User.id)).scalar() or 0


def search_users(db: Session, query: str, limit: int = 20) -> list[models.User]:
    """Case-insensitive substring match on username, name or email."""
    term = query.strip().lower()
    if not term:
        return []
    pattern = f"%{term}%"
    return (
        db.query(models.User)
        .filter(
            or_(
                models.User.username.ilike(pattern),
                models.User.name.ilike(pattern),
                models.User.email.ilike(pattern),
            )
        )
        .order_by(models.User.username.asc(), models.User.id.asc())
        .limit(limit)
        .all()
    )


def get_all_users_with_stats(db: Session, query: str | None = None, limit: int = 100) -> list[dict]:
    """Users with their city, comment and follower counts, for the admin panel."""
    city_count = (
        db.query(func.count(models.City.id))
        .filter(models.City.user_id == models.User.id)
        .correlate(models.User)
        .scalar_subquery()
    )
    comment_count = (
        db.query(func.count(models.Comment.id))
        .filter(models.Comment.user_id == models.User.id)
        .correlate(models.User)
        .scalar_subquery()
    )
    follower_count = (
        db.query(func.count(models.Follow.id))
        .filter(models.Follow.following_id == models.User.id)
        .correlate(models.User)
        .scalar_subquery()
    )

    q = db.query(models.User, city_count, comment_count, follower_count)
    if query and query.strip():
        pattern = f"%{query.strip().lower()}%"
        q = q.filter(
            or_(
                models.User.username.ilike(pattern),
                models.User.name.ilike(pattern),
                models.User.email.ilike(pattern),
            )
        )

    rows = q.order_by(models.User.created_at.desc(), models.User.id.desc()).limit(limit).all()
    return [
        {"user": user, "city_count": cities, "comment_count": comments, "follower_count": followers}
        for user, cities, comments, followers in rows
    ]


# ============================================================================
# PASSWORD RESET
# ============================================================================


def _hash_token(token: str) -> str:
    """Hash a token using SHA256."""
    return hashlib.sha256(token.encode()).hexdigest()


def create_password_reset_token(db: Session, user_id: int) -> str:
    """
    Create a single-use reset token and return it in plain text.

    Only the SHA256 hash is stored. Any previous tokens for the user are
    discarded.
    """
    _require_user(db, user_id)
    delete_password_reset_tokens(db, user_id, commit=False)

    token = secrets.token_hex(32)
    db.add(
        models.PasswordResetToken(
            user_id=user_id,
            token=_hash_token(token),
            expires_at=datetime.now(timezone.utc)
            + timedelta(minutes=settings.PASSWORD_RESET_TOKEN_TTL_MINUTES),
        )
    )
    db.commit()
    return token


def get_password_reset_token(db: Session, token: str) -> models.PasswordResetToken | None:
    """Return the stored token if it exists and has not expired."""
    return (
        db.query(models.PasswordResetToken)
        .filter(
            models.PasswordResetToken.token == _hash_token(token),
            models.PasswordResetToken.expires_at > datetime.now(timezone.utc),
        )
        .first()
    )


def delete_password_reset_tokens(db: Session, user_id: int, commit: bool = True) -> int:
    deleted = (
        db.query(models.PasswordResetToken)
        .filter(models.PasswordResetToken.user_id == user_id)
        .delete(synchronize_session=False)
    )
    if commit:
        db.commit()
    return deleted


def update_user_password(db: Session, user_id: int, new_password: str, commit: bool = True) -> models.User:
    if len(new_password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    user = _require_user(db, user_id)
    user.password_hash = hash_password(new_password)
    if commit:
        db.commit()
    return user


def reset_password_with_token(db: Session, token: str, new_password: str) -> models.User:
    """Set a new password and consume every reset token of the user in one commit."""
    reset = get_password_reset_token(db, token)
    if reset is None:
        raise ValidationError("Invalid or expired reset token")
    user_id = reset.user_id

    user = update_user_password(db, user_id, new_password, commit=False)
    delete_password_reset_tokens(db, user_id, commit=False)
    db.commit()
    db.refresh(user)
    logger.info(f"Password reset for user {user_id}")
    return user

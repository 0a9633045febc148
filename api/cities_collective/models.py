from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import foreign, relationship

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# CORE ENTITIES
# ============================================================================


class User(Base):
    """User account with authentication, role flags and profile information."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(32), unique=True, nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)

    # OAuth identities
    google_id = Column(String(100), unique=True, nullable=True, index=True)
    github_id = Column(String(100), unique=True, nullable=True, index=True)

    # Profile
    name = Column(String(100), nullable=True)
    avatar = Column(String(500), nullable=True)
    pdx_username = Column(String(50), nullable=True)
    discord_username = Column(String(50), nullable=True)
    social_links = Column(JSON, nullable=False, default=dict)
    hof_creator_id = Column(String(255), nullable=True, index=True)

    # Roles
    is_admin = Column(Boolean, nullable=False, default=False, index=True)
    is_content_creator = Column(Boolean, nullable=False, default=False, index=True)

    # Cookie consent
    cookie_consent = Column(JSON, nullable=True)
    cookie_consent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    cities = relationship("City", back_populates="owner")


class City(Base):
    """One uploaded save-game with its gameplay stats and configuration."""

    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    city_name = Column(String(255), nullable=True, index=True)
    map_name = Column(String(255), nullable=True)
    population = Column(Integer, nullable=True)
    money = Column(BigInteger, nullable=True)
    xp = Column(Integer, nullable=True)
    theme = Column(String(100), nullable=True, index=True)
    game_mode = Column(String(50), nullable=True, index=True)

    # Save-game metadata
    preview = Column(String(255), nullable=True)
    save_game_data = Column(String(255), nullable=True)
    session_guid = Column(String(255), nullable=True)
    auto_save = Column(Boolean, nullable=True)
    left_hand_traffic = Column(Boolean, nullable=True)
    natural_disasters = Column(Boolean, nullable=True)
    unlock_all = Column(Boolean, nullable=True)
    unlimited_money = Column(Boolean, nullable=True)
    unlock_map_tiles = Column(Boolean, nullable=True)
    simulation_date = Column(JSON, nullable=True)
    content_prerequisites = Column(JSON, nullable=False, default=list)
    mods_enabled = Column(JSON, nullable=False, default=list)

    # File references (the files themselves live in external storage)
    file_name = Column(String(255), nullable=True)
    file_path = Column(String(500), nullable=True)

    downloadable = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)
    download_count = Column(Integer, nullable=False, default=0)
    view_count = Column(Integer, nullable=False, default=0)

    uploaded_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    owner = relationship("User", back_populates="cities")
    images = relationship(
        "CityImage", back_populates="city", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_cities_population", population.desc()),
        Index("ix_cities_money", money.desc()),
    )


class CityImage(Base):
    """Uploaded screenshot of a city, stored in four size variants."""

    __tablename__ = "city_images"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    city_id = Column(
        Integer, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name = Column(String(255), nullable=True)
    original_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)

    thumbnail_path = Column(String(500), nullable=True)
    medium_path = Column(String(500), nullable=True)
    large_path = Column(String(500), nullable=True)
    original_path = Column(String(500), nullable=True)

    is_primary = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=True, default=0)
    uploaded_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    city = relationship("City", back_populates="images")

    __table_args__ = (
        # At most one primary screenshot per city
        Index(
            "uq_city_images_primary",
            city_id,
            unique=True,
            postgresql_where=(is_primary == True),  # noqa: E712
            sqlite_where=(is_primary == True),  # noqa: E712
        ),
        Index("ix_city_images_city_sort", city_id, sort_order),
    )


class HallOfFameCache(Base):
    """Screenshot mirrored from the external Hall of Fame service."""

    __tablename__ = "hall_of_fame_cache"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    city_id = Column(
        Integer, ForeignKey("cities.id", ondelete="SET NULL"), nullable=True, index=True
    )
    hof_image_id = Column(String(255), unique=True, nullable=False, index=True)
    city_name = Column(String(255), nullable=False)
    city_population = Column(Integer, nullable=True)
    city_milestone = Column(Integer, nullable=True)
    image_url_thumbnail = Column(String(500), nullable=False)
    image_url_fhd = Column(String(500), nullable=False)
    image_url_4k = Column(String(500), nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    last_updated = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index(
            "uq_hall_of_fame_cache_primary",
            city_id,
            unique=True,
            postgresql_where=(is_primary == True),  # noqa: E712
            sqlite_where=(is_primary == True),  # noqa: E712
        ),
    )


# ============================================================================
# SOCIAL FEATURES
# ============================================================================
#
# user_id columns below carry no foreign key: deleting a user leaves their
# comments and likes in place with the old id.


class Like(Base):
    """A user's like on a city."""

    __tablename__ = "likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    city_id = Column(Integer, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (UniqueConstraint("user_id", "city_id", name="uq_likes_user_city"),)


class Favorite(Base):
    """A city bookmarked by a user."""

    __tablename__ = "favorites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    city_id = Column(Integer, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (UniqueConstraint("user_id", "city_id", name="uq_favorites_user_city"),)


class Comment(Base):
    """Comment on a city."""

    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    city_id = Column(Integer, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    author = relationship(
        "User",
        primaryjoin=lambda: foreign(Comment.user_id) == User.id,
        viewonly=True,
    )

    __table_args__ = (Index("ix_comments_city_created", city_id, created_at.desc()),)


class CommentLike(Base):
    """A user's like on a comment."""

    __tablename__ = "comment_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    comment_id = Column(
        Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "comment_id", name="uq_comment_likes_user_comment"),
    )


class Follow(Base):
    """User following relationship."""

    __tablename__ = "follows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower_id = Column(Integer, nullable=False, index=True)
    following_id = Column(Integer, nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follow_follower_following"),
        Index("ix_follows_following_created", following_id, created_at.desc()),
    )


# ============================================================================
# IMAGE ENGAGEMENT
# ============================================================================
#
# Engagement rows point at either a city_images row or a hall_of_fame_cache
# row, told apart by image_type. city_id records the city the image was shown
# under and is cleared when that city goes away.

IMAGE_TYPE_SCREENSHOT = "screenshot"
IMAGE_TYPE_HALL_OF_FAME = "hall_of_fame"
IMAGE_TYPES = (IMAGE_TYPE_SCREENSHOT, IMAGE_TYPE_HALL_OF_FAME)


class ImageLike(Base):
    """A user's like on a single image."""

    __tablename__ = "image_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    image_id = Column(Integer, nullable=False)
    image_type = Column(String(20), nullable=False)
    city_id = Column(Integer, ForeignKey("cities.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "image_id", "image_type", name="uq_image_likes_user_image"),
        Index("ix_image_likes_image", image_type, image_id),
    )


class ImageComment(Base):
    """Comment on a single image."""

    __tablename__ = "image_comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    image_id = Column(Integer, nullable=False)
    image_type = Column(String(20), nullable=False)
    city_id = Column(Integer, ForeignKey("cities.id", ondelete="SET NULL"), nullable=True, index=True)
    content = Column(Text, nullable=False)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (Index("ix_image_comments_image_created", image_type, image_id, created_at.desc()),)


class ImageCommentLike(Base):
    """A user's like on an image comment."""

    __tablename__ = "image_comment_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    comment_id = Column(
        Integer, ForeignKey("image_comments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "comment_id", name="uq_image_comment_likes_user_comment"),
    )


class ImageView(Base):
    """First view of an image by a signed-in user; the view count is the row count."""

    __tablename__ = "image_views"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    image_id = Column(Integer, nullable=False)
    image_type = Column(String(20), nullable=False)
    city_id = Column(Integer, ForeignKey("cities.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "image_id", "image_type", name="uq_image_views_user_image"),
        Index("ix_image_views_image", image_type, image_id),
    )


class Notification(Base):
    """User-targeted event (new follower, new comment, new city, tag)."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    type = Column(String(50), nullable=False)  # "new_city", "comment", "new_follower", "comment_tag"
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    related_user_id = Column(Integer, nullable=True)
    related_city_id = Column(Integer, nullable=True)
    related_comment_id = Column(Integer, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_user_created", user_id, created_at.desc()),
    )


# ============================================================================
# ADMINISTRATION
# ============================================================================


class ApiKey(Base):
    """Bearer credential for the external HoF Creator API."""

    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    # SHA256 of the secret; the plaintext is shown once at creation
    key = Column(String(255), unique=True, nullable=False, index=True)
    key_prefix = Column(String(16), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_used = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    user = relationship("User")


class ModerationSetting(Base):
    """Key/value moderation configuration (profanity list, spam indicators)."""

    __tablename__ = "moderation_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(JSON, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class PasswordResetToken(Base):
    """Single-use password reset token."""

    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(255), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class AuditLog(Base):
    """Audit log for admin actions."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(Integer, nullable=False, index=True)

    action = Column(String(100), nullable=False, index=True)
    target_type = Column(String(20), nullable=True)
    target_id = Column(String(50), nullable=True, index=True)
    note = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

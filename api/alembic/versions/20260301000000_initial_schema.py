"""initial schema

Revision ID: 20260301000000
Revises:
Create Date: 2026-03-01 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20260301000000"
down_revision = None
branch_labels = None
depends_on = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    # ========================================================================
    # CORE ENTITIES
    # ========================================================================

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=32), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("google_id", sa.String(length=100), nullable=True),
        sa.Column("github_id", sa.String(length=100), nullable=True),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("avatar", sa.String(length=500), nullable=True),
        sa.Column("pdx_username", sa.String(length=50), nullable=True),
        sa.Column("discord_username", sa.String(length=50), nullable=True),
        sa.Column("social_links", sa.JSON(), nullable=False),
        sa.Column("hof_creator_id", sa.String(length=255), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_content_creator", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cookie_consent", sa.JSON(), nullable=True),
        sa.Column("cookie_consent_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_google_id", "users", ["google_id"], unique=True)
    op.create_index("ix_users_github_id", "users", ["github_id"], unique=True)
    op.create_index("ix_users_hof_creator_id", "users", ["hof_creator_id"])
    op.create_index("ix_users_is_admin", "users", ["is_admin"])
    op.create_index("ix_users_is_content_creator", "users", ["is_content_creator"])

    op.create_table(
        "cities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("city_name", sa.String(length=255), nullable=True),
        sa.Column("map_name", sa.String(length=255), nullable=True),
        sa.Column("population", sa.Integer(), nullable=True),
        sa.Column("money", sa.BigInteger(), nullable=True),
        sa.Column("xp", sa.Integer(), nullable=True),
        sa.Column("theme", sa.String(length=100), nullable=True),
        sa.Column("game_mode", sa.String(length=50), nullable=True),
        sa.Column("preview", sa.String(length=255), nullable=True),
        sa.Column("save_game_data", sa.String(length=255), nullable=True),
        sa.Column("session_guid", sa.String(length=255), nullable=True),
        sa.Column("auto_save", sa.Boolean(), nullable=True),
        sa.Column("left_hand_traffic", sa.Boolean(), nullable=True),
        sa.Column("natural_disasters", sa.Boolean(), nullable=True),
        sa.Column("unlock_all", sa.Boolean(), nullable=True),
        sa.Column("unlimited_money", sa.Boolean(), nullable=True),
        sa.Column("unlock_map_tiles", sa.Boolean(), nullable=True),
        sa.Column("simulation_date", sa.JSON(), nullable=True),
        sa.Column("content_prerequisites", sa.JSON(), nullable=False),
        sa.Column("mods_enabled", sa.JSON(), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("file_path", sa.String(length=500), nullable=True),
        sa.Column("downloadable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        _created_at("uploaded_at"),
        _created_at("updated_at"),
    )
    op.create_index("ix_cities_id", "cities", ["id"])
    op.create_index("ix_cities_user_id", "cities", ["user_id"])
    op.create_index("ix_cities_city_name", "cities", ["city_name"])
    op.create_index("ix_cities_theme", "cities", ["theme"])
    op.create_index("ix_cities_game_mode", "cities", ["game_mode"])
    op.create_index("ix_cities_uploaded_at", "cities", ["uploaded_at"])
    op.create_index("ix_cities_population", "cities", [sa.text("population DESC")])
    op.create_index("ix_cities_money", "cities", [sa.text("money DESC")])

    op.create_table(
        "city_images",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "city_id", sa.Integer(), sa.ForeignKey("cities.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("original_name", sa.String(length=255), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.String(length=100), nullable=True),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("thumbnail_path", sa.String(length=500), nullable=True),
        sa.Column("medium_path", sa.String(length=500), nullable=True),
        sa.Column("large_path", sa.String(length=500), nullable=True),
        sa.Column("original_path", sa.String(length=500), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer(), nullable=True, server_default="0"),
        _created_at("uploaded_at"),
    )
    op.create_index("ix_city_images_id", "city_images", ["id"])
    op.create_index("ix_city_images_city_id", "city_images", ["city_id"])
    op.create_index("ix_city_images_city_sort", "city_images", ["city_id", "sort_order"])

    # city_id and is_primary arrive in the Hall of Fame assignment migration
    op.create_table(
        "hall_of_fame_cache",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True
        ),
        sa.Column("hof_image_id", sa.String(length=255), nullable=False),
        sa.Column("city_name", sa.String(length=255), nullable=False),
        sa.Column("city_population", sa.Integer(), nullable=True),
        sa.Column("city_milestone", sa.Integer(), nullable=True),
        sa.Column("image_url_thumbnail", sa.String(length=500), nullable=False),
        sa.Column("image_url_fhd", sa.String(length=500), nullable=False),
        sa.Column("image_url_4k", sa.String(length=500), nullable=False),
        _created_at(),
        _created_at("last_updated"),
    )
    op.create_index("ix_hall_of_fame_cache_id", "hall_of_fame_cache", ["id"])
    op.create_index("ix_hall_of_fame_cache_user_id", "hall_of_fame_cache", ["user_id"])
    op.create_index(
        "ix_hall_of_fame_cache_hof_image_id", "hall_of_fame_cache", ["hof_image_id"], unique=True
    )

    # ========================================================================
    # SOCIAL FEATURES
    # ========================================================================

    for table, column in (("likes", "city_id"), ("favorites", "city_id")):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column(
                column, sa.Integer(), sa.ForeignKey("cities.id", ondelete="CASCADE"), nullable=False
            ),
            _created_at(),
            sa.UniqueConstraint("user_id", column, name=f"uq_{table}_user_city"),
        )
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])
        op.create_index(f"ix_{table}_{column}", table, [column])

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column(
            "city_id", sa.Integer(), sa.ForeignKey("cities.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index("ix_comments_id", "comments", ["id"])
    op.create_index("ix_comments_user_id", "comments", ["user_id"])
    op.create_index("ix_comments_city_id", "comments", ["city_id"])
    op.create_index("ix_comments_city_created", "comments", ["city_id", sa.text("created_at DESC")])

    op.create_table(
        "comment_likes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "comment_id",
            sa.Integer(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _created_at(),
        sa.UniqueConstraint("user_id", "comment_id", name="uq_comment_likes_user_comment"),
    )
    op.create_index("ix_comment_likes_user_id", "comment_likes", ["user_id"])
    op.create_index("ix_comment_likes_comment_id", "comment_likes", ["comment_id"])

    op.create_table(
        "follows",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("follower_id", sa.Integer(), nullable=False),
        sa.Column("following_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("follower_id", "following_id", name="uq_follow_follower_following"),
    )
    op.create_index("ix_follows_follower_id", "follows", ["follower_id"])
    op.create_index("ix_follows_following_id", "follows", ["following_id"])
    op.create_index(
        "ix_follows_following_created", "follows", ["following_id", sa.text("created_at DESC")]
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_user_id", sa.Integer(), nullable=True),
        sa.Column("related_city_id", sa.Integer(), nullable=True),
        sa.Column("related_comment_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])
    op.create_index(
        "ix_notifications_user_created", "notifications", ["user_id", sa.text("created_at DESC")]
    )

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("key_prefix", sa.String(length=16), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_used", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_api_keys_id", "api_keys", ["id"])
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])
    op.create_index("ix_api_keys_key", "api_keys", ["key"], unique=True)

    op.create_table(
        "moderation_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(length=100), nullable=False, unique=True),
        sa.Column("value", sa.JSON(), nullable=True),
        _created_at("updated_at"),
    )

    op.create_table(
        "password_reset_tokens",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("token", sa.String(length=255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
    )
    op.create_index("ix_password_reset_tokens_user_id", "password_reset_tokens", ["user_id"])
    op.create_index("ix_password_reset_tokens_token", "password_reset_tokens", ["token"], unique=True)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("target_type", sa.String(length=20), nullable=True),
        sa.Column("target_id", sa.String(length=50), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_target_id", "audit_logs", ["target_id"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "password_reset_tokens",
        "moderation_settings",
        "api_keys",
        "notifications",
        "follows",
        "comment_likes",
        "comments",
        "favorites",
        "likes",
        "hall_of_fame_cache",
        "city_images",
        "cities",
        "users",
    ):
        op.drop_table(table)

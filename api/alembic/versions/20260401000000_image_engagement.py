"""image engagement

Revision ID: 20260401000000
Revises: 20260320000000
Create Date: 2026-04-01 00:00:00.000000

Per-image likes, comments, comment likes and views. Rows address either a
city_images row or a hall_of_fame_cache row through (image_type, image_id).
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20260401000000"
down_revision = "20260320000000"
branch_labels = None
depends_on = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _image_columns() -> list[sa.Column]:
    return [
        sa.Column("image_id", sa.Integer(), nullable=False),
        sa.Column("image_type", sa.String(length=20), nullable=False),
        sa.Column(
            "city_id",
            sa.Integer(),
            sa.ForeignKey("cities.id", ondelete="SET NULL"),
            nullable=True,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "image_likes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        *_image_columns(),
        _created_at(),
        sa.UniqueConstraint("user_id", "image_id", "image_type", name="uq_image_likes_user_image"),
    )
    op.create_index("ix_image_likes_user_id", "image_likes", ["user_id"])
    op.create_index("ix_image_likes_city_id", "image_likes", ["city_id"])
    op.create_index("ix_image_likes_image", "image_likes", ["image_type", "image_id"])

    op.create_table(
        "image_comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        *_image_columns(),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index("ix_image_comments_user_id", "image_comments", ["user_id"])
    op.create_index("ix_image_comments_city_id", "image_comments", ["city_id"])
    op.create_index(
        "ix_image_comments_image_created",
        "image_comments",
        ["image_type", "image_id", sa.text("created_at DESC")],
    )

    op.create_table(
        "image_comment_likes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "comment_id",
            sa.Integer(),
            sa.ForeignKey("image_comments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _created_at(),
        sa.UniqueConstraint("user_id", "comment_id", name="uq_image_comment_likes_user_comment"),
    )
    op.create_index("ix_image_comment_likes_user_id", "image_comment_likes", ["user_id"])
    op.create_index("ix_image_comment_likes_comment_id", "image_comment_likes", ["comment_id"])

    op.create_table(
        "image_views",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        *_image_columns(),
        _created_at(),
        sa.UniqueConstraint("user_id", "image_id", "image_type", name="uq_image_views_user_image"),
    )
    op.create_index("ix_image_views_city_id", "image_views", ["city_id"])
    op.create_index("ix_image_views_image", "image_views", ["image_type", "image_id"])


def downgrade() -> None:
    for table in ("image_views", "image_comment_likes", "image_comments", "image_likes"):
        op.drop_table(table)

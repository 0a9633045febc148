"""unique primary images

Revision ID: 20260320000000
Revises: 20260315000000
Create Date: 2026-03-20 00:00:00.000000

Enforce at most one primary screenshot per city:
- Demote every primary except the earliest (lowest sort_order, then id)
  in city_images, and all but the lowest id in hall_of_fame_cache
- Create partial unique indexes on (city_id) WHERE is_primary
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20260320000000"
down_revision = "20260315000000"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        UPDATE city_images
        SET is_primary = FALSE
        WHERE is_primary = TRUE
          AND id <> (
            SELECT ci.id
            FROM city_images ci
            WHERE ci.city_id = city_images.city_id AND ci.is_primary = TRUE
            ORDER BY COALESCE(ci.sort_order, 0), ci.id
            LIMIT 1
          )
        """
    )
    op.execute(
        """
        UPDATE hall_of_fame_cache
        SET is_primary = FALSE
        WHERE is_primary = TRUE
          AND (
            city_id IS NULL
            OR id <> (
              SELECT h.id
              FROM hall_of_fame_cache h
              WHERE h.city_id = hall_of_fame_cache.city_id AND h.is_primary = TRUE
              ORDER BY h.id
              LIMIT 1
            )
          )
        """
    )

    # A city shows either an uploaded primary or a Hall of Fame primary
    op.execute(
        """
        UPDATE hall_of_fame_cache
        SET is_primary = FALSE
        WHERE is_primary = TRUE
          AND EXISTS (
            SELECT 1 FROM city_images ci
            WHERE ci.city_id = hall_of_fame_cache.city_id AND ci.is_primary = TRUE
          )
        """
    )

    op.create_index(
        "uq_city_images_primary",
        "city_images",
        ["city_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
        sqlite_where=sa.text("is_primary"),
    )
    op.create_index(
        "uq_hall_of_fame_cache_primary",
        "hall_of_fame_cache",
        ["city_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
        sqlite_where=sa.text("is_primary"),
    )


def downgrade() -> None:
    op.drop_index("uq_hall_of_fame_cache_primary", table_name="hall_of_fame_cache")
    op.drop_index("uq_city_images_primary", table_name="city_images")

"""hall of fame city assignment

Revision ID: 20260315000000
Revises: 20260301000000
Create Date: 2026-03-15 00:00:00.000000

Links mirrored Hall of Fame screenshots to cities:
- Add hall_of_fame_cache.city_id (FK, SET NULL on city delete) and is_primary
- Backfill city_id by matching the screenshot's city name against the
  owner's cities, case-insensitively, newest upload first
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20260315000000"
down_revision = "20260301000000"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("hall_of_fame_cache") as batch_op:
        batch_op.add_column(sa.Column("city_id", sa.Integer(), nullable=True))
        batch_op.add_column(
            sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false())
        )
        batch_op.create_foreign_key(
            "fk_hall_of_fame_cache_city_id",
            "cities",
            ["city_id"],
            ["id"],
            ondelete="SET NULL",
        )
        batch_op.create_index("ix_hall_of_fame_cache_city_id", ["city_id"])

    op.execute(
        """
        UPDATE hall_of_fame_cache
        SET city_id = (
            SELECT c.id
            FROM cities c
            WHERE c.user_id = hall_of_fame_cache.user_id
              AND LOWER(c.city_name) = LOWER(hall_of_fame_cache.city_name)
            ORDER BY c.uploaded_at DESC, c.id DESC
            LIMIT 1
        )
        WHERE user_id IS NOT NULL AND city_id IS NULL
        """
    )


def downgrade() -> None:
    with op.batch_alter_table("hall_of_fame_cache") as batch_op:
        batch_op.drop_index("ix_hall_of_fame_cache_city_id")
        batch_op.drop_constraint("fk_hall_of_fame_cache_city_id", type_="foreignkey")
        batch_op.drop_column("is_primary")
        batch_op.drop_column("city_id")

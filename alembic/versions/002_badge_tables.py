"""Badge tables.

Creates badge_definitions, user_badges and badge_stats. Definitions are
seeded by the application on startup.

Revision ID: 002_badge_tables
Revises: 001_core_tables
Create Date: 2026-10-12
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_badge_tables"
down_revision: str | None = "001_core_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Badge Definitions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_definitions (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(50) NOT NULL DEFAULT '',
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            trigger_type VARCHAR(32) NOT NULL,
            trigger_config JSONB NOT NULL DEFAULT '{}',
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_badge_defs_trigger
        ON badge_definitions(trigger_type)
    """)

    # --- User Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(255) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badge_definitions(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            metadata JSONB NOT NULL DEFAULT '{}',
            CONSTRAINT user_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_badges_user
        ON user_badges(user_id)
    """)

    # --- Badge Stats ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_stats (
            badge_id INTEGER PRIMARY KEY REFERENCES badge_definitions(id),
            total_earned INTEGER NOT NULL DEFAULT 0,
            last_earned_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS badge_stats CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS badge_definitions CASCADE")

"""Core game tables.

Creates users, the challenge catalog, attempts (with the one-best-attempt
partial unique index), per-challenge aggregate counters and user_stats.

Revision ID: 001_core_tables
Revises:
Create Date: 2026-10-12
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_core_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(255) PRIMARY KEY,
            display_name VARCHAR(255),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Challenge catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id VARCHAR(64) PRIMARY KEY,
            date_key VARCHAR(10) UNIQUE NOT NULL,
            title TEXT NOT NULL,
            scenario_text TEXT NOT NULL DEFAULT '',
            category VARCHAR(100) NOT NULL DEFAULT 'general',
            difficulty INTEGER NOT NULL DEFAULT 1,
            is_published BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_options (
            id VARCHAR(64) PRIMARY KEY,
            challenge_id VARCHAR(64) NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            option_text TEXT NOT NULL,
            tier_label VARCHAR(20) NOT NULL,
            explanation_short TEXT NOT NULL DEFAULT '',
            ideal_rank INTEGER NOT NULL CHECK (ideal_rank >= 1),
            CONSTRAINT uq_challenge_options_challenge_rank UNIQUE (challenge_id, ideal_rank)
        )
    """)

    # --- Attempts ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS attempts (
            id VARCHAR(64) PRIMARY KEY,
            user_id VARCHAR(255) NOT NULL REFERENCES users(id),
            challenge_id VARCHAR(64) NOT NULL REFERENCES challenges(id),
            date_key VARCHAR(10) NOT NULL,
            submitted_at TIMESTAMPTZ NOT NULL,
            ranking JSONB NOT NULL,
            score INTEGER NOT NULL CHECK (score BETWEEN 0 AND 100),
            grade VARCHAR(20) NOT NULL,
            is_best_attempt BOOLEAN NOT NULL DEFAULT false
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_attempts_user_challenge
        ON attempts(user_id, challenge_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_attempts_user_date_key
        ON attempts(user_id, date_key)
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_attempts_one_best_per_user_challenge
        ON attempts(user_id, challenge_id)
        WHERE is_best_attempt
    """)

    # --- Aggregates (counted attempts only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_aggregates (
            challenge_id VARCHAR(64) PRIMARY KEY REFERENCES challenges(id) ON DELETE CASCADE,
            total_attempts INTEGER NOT NULL DEFAULT 0,
            score_sum INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_score_counts (
            challenge_id VARCHAR(64) NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            score INTEGER NOT NULL,
            count INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT pk_challenge_score_counts PRIMARY KEY (challenge_id, score)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_position_counts (
            challenge_id VARCHAR(64) NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            option_id VARCHAR(64) NOT NULL,
            position INTEGER NOT NULL,
            count INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT pk_challenge_position_counts PRIMARY KEY (challenge_id, option_id, position)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_ranking_counts (
            challenge_id VARCHAR(64) NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            ranking_key VARCHAR(1024) NOT NULL,
            count INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT pk_challenge_ranking_counts PRIMARY KEY (challenge_id, ranking_key)
        )
    """)

    # --- User stats (denormalized) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_stats (
            user_id VARCHAR(255) PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_completed_date_key VARCHAR(10),
            total_attempts INTEGER NOT NULL DEFAULT 0,
            score_sum INTEGER NOT NULL DEFAULT 0,
            submission_count INTEGER NOT NULL DEFAULT 0,
            best_percentile INTEGER,
            updated_at TIMESTAMPTZ
        )
    """)


def downgrade() -> None:
    for table in (
        "user_stats",
        "challenge_ranking_counts",
        "challenge_position_counts",
        "challenge_score_counts",
        "challenge_aggregates",
        "attempts",
        "challenge_options",
        "challenges",
        "users",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")

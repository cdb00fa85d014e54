"""ORM models for the MoneyRank schema.

The Alembic migrations under alembic/versions create the same tables on
PostgreSQL; the test-suite builds them from this metadata on SQLite.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from moneyrank.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table. Identity is established by the auth provider."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Challenge catalog (read-only to the pipeline)
# ---------------------------------------------------------------------------


class Challenge(Base):
    """One daily challenge per calendar date key."""

    __tablename__ = "challenges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    date_key: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    scenario_text: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False, server_default="general")
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    options: Mapped[list[ChallengeOption]] = relationship(
        "ChallengeOption",
        order_by="ChallengeOption.ideal_rank",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def ideal_order(self) -> list[str]:
        """Option ids sorted best to worst."""
        return [o.id for o in sorted(self.options, key=lambda o: o.ideal_rank)]


class ChallengeOption(Base):
    """A rankable option. ideal_rank is a total order within its challenge."""

    __tablename__ = "challenge_options"
    __table_args__ = (
        UniqueConstraint("challenge_id", "ideal_rank", name="uq_challenge_options_challenge_rank"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    option_text: Mapped[str] = mapped_column(Text, nullable=False)
    tier_label: Mapped[str] = mapped_column(String(20), nullable=False)
    explanation_short: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    ideal_rank: Mapped[int] = mapped_column(Integer, nullable=False)


# ---------------------------------------------------------------------------
# Attempts
# ---------------------------------------------------------------------------


class Attempt(Base):
    """One row per accepted submission. Only is_best_attempt is ever updated."""

    __tablename__ = "attempts"
    __table_args__ = (
        Index("idx_attempts_user_challenge", "user_id", "challenge_id"),
        Index("idx_attempts_user_date_key", "user_id", "date_key"),
        # At most one best attempt per (user, challenge), whatever the application does.
        Index(
            "uq_attempts_one_best_per_user_challenge",
            "user_id",
            "challenge_id",
            unique=True,
            postgresql_where=text("is_best_attempt"),
            sqlite_where=text("is_best_attempt"),
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(255), ForeignKey("users.id"), nullable=False)
    challenge_id: Mapped[str] = mapped_column(String(64), ForeignKey("challenges.id"), nullable=False)
    date_key: Mapped[str] = mapped_column(String(10), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ranking: Mapped[list[str]] = mapped_column(JSONType, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    grade: Mapped[str] = mapped_column(String(20), nullable=False)
    is_best_attempt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())


# ---------------------------------------------------------------------------
# Community aggregates: counted (best) attempts only
# ---------------------------------------------------------------------------


class ChallengeAggregate(Base):
    """Per-challenge totals over counted attempts."""

    __tablename__ = "challenge_aggregates"

    challenge_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("challenges.id", ondelete="CASCADE"), primary_key=True
    )
    total_attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    score_sum: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ChallengeScoreCount(Base):
    """Score histogram used for percentile."""

    __tablename__ = "challenge_score_counts"
    __table_args__ = (PrimaryKeyConstraint("challenge_id", "score", name="pk_challenge_score_counts"),)

    challenge_id: Mapped[str] = mapped_column(String(64), ForeignKey("challenges.id", ondelete="CASCADE"))
    score: Mapped[int] = mapped_column(Integer)
    count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


class ChallengePositionCount(Base):
    """How many counted attempts placed an option at a rank position (1-based)."""

    __tablename__ = "challenge_position_counts"
    __table_args__ = (
        PrimaryKeyConstraint("challenge_id", "option_id", "position", name="pk_challenge_position_counts"),
    )

    challenge_id: Mapped[str] = mapped_column(String(64), ForeignKey("challenges.id", ondelete="CASCADE"))
    option_id: Mapped[str] = mapped_column(String(64))
    position: Mapped[int] = mapped_column(Integer)
    count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


class ChallengeRankingCount(Base):
    """How many counted attempts submitted exactly this ranking."""

    __tablename__ = "challenge_ranking_counts"
    __table_args__ = (
        PrimaryKeyConstraint("challenge_id", "ranking_key", name="pk_challenge_ranking_counts"),
    )

    challenge_id: Mapped[str] = mapped_column(String(64), ForeignKey("challenges.id", ondelete="CASCADE"))
    ranking_key: Mapped[str] = mapped_column(String(1024))
    count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


# ---------------------------------------------------------------------------
# Per-user derived state
# ---------------------------------------------------------------------------


class UserStats(Base):
    """Denormalized per-user summary: single row per user, mutated only by the pipeline."""

    __tablename__ = "user_stats"

    user_id: Mapped[str] = mapped_column(String(255), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_completed_date_key: Mapped[str | None] = mapped_column(String(10), nullable=True)
    total_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    score_sum: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    submission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    best_percentile: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def average_score(self) -> float:
        if not self.total_attempts:
            return 0.0
        return round(self.score_sum / self.total_attempts, 1)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


class BadgeDefinition(Base):
    """Badge definitions: seeded on startup."""

    __tablename__ = "badge_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, server_default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(32), nullable=False)
    trigger_config: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UserBadge(Base):
    """Badges earned by users: UNIQUE(user_id, badge_id) prevents duplicates."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="user_badges_user_id_badge_id_key"),
        Index("idx_user_badges_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_id: Mapped[int] = mapped_column(Integer, ForeignKey("badge_definitions.id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    badge_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    badge: Mapped[BadgeDefinition] = relationship("BadgeDefinition", lazy="joined")


class BadgeStats(Base):
    """Aggregate badge statistics: how many users earned each badge."""

    __tablename__ = "badge_stats"

    badge_id: Mapped[int] = mapped_column(Integer, ForeignKey("badge_definitions.id"), primary_key=True)
    total_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_earned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

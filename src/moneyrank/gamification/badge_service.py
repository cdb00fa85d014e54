"""Badge award service with duplicate prevention and notification."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.db.models import BadgeDefinition, BadgeStats, UserBadge
from moneyrank.stats.aggregate_service import dialect_insert

logger = logging.getLogger(__name__)

BADGE_EARNED_CHANNEL = "pubsub:badge_earned"


async def get_badge_by_slug(db: AsyncSession, slug: str) -> BadgeDefinition | None:
    """Fetch a badge definition by slug."""
    result = await db.execute(
        select(BadgeDefinition).where(BadgeDefinition.slug == slug)
    )
    return result.scalar_one_or_none()


async def has_badge(db: AsyncSession, user_id: str, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def earned_badge_ids(db: AsyncSession, user_id: str) -> set[int]:
    result = await db.execute(select(UserBadge.badge_id).where(UserBadge.user_id == user_id))
    return {row[0] for row in result}


async def award_badge(
    db: AsyncSession,
    user_id: str,
    badge: BadgeDefinition,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Award a badge to a user inside the caller's transaction.

    Returns True if awarded, False if already earned. The insert is
    ON CONFLICT DO NOTHING against UNIQUE(user_id, badge_id), so a concurrent
    award from another submission is a no-op rather than an error that would
    unwind the whole submission.
    """
    now = datetime.now(timezone.utc)

    stmt = (
        dialect_insert(db, UserBadge)
        .values(
            user_id=user_id,
            badge_id=badge.id,
            earned_at=now,
            badge_metadata=metadata or {},
        )
        .on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
        .returning(UserBadge.id)
    )
    result = await db.execute(stmt)
    if result.scalar_one_or_none() is None:
        return False

    # Update badge_stats
    stats_stmt = dialect_insert(db, BadgeStats).values(
        badge_id=badge.id,
        total_earned=1,
        last_earned_at=now,
        updated_at=now,
    )
    stats_stmt = stats_stmt.on_conflict_do_update(
        index_elements=["badge_id"],
        set_={
            "total_earned": BadgeStats.total_earned + 1,
            "last_earned_at": now,
            "updated_at": now,
        },
    )
    await db.execute(stats_stmt)

    logger.info("Badge %s awarded to %s", badge.slug, user_id)
    return True


async def publish_badges_earned(
    redis: object,
    user_id: str,
    badges: list[BadgeDefinition],
) -> None:
    """Push badge-earned events via Redis pub/sub. Call only after commit."""
    if redis is None:
        return
    for badge in badges:
        try:
            await redis.publish(  # type: ignore[attr-defined]
                BADGE_EARNED_CHANNEL,
                json.dumps({
                    "user_id": user_id,
                    "badge_slug": badge.slug,
                    "badge_name": badge.name,
                    "rarity": badge.rarity,
                }),
            )
        except Exception:
            logger.warning("Failed to publish badge_earned notification", exc_info=True)

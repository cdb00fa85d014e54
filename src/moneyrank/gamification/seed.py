"""Badge seed data: the launch badge catalogue."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.db.models import BadgeDefinition, BadgeStats
from moneyrank.stats.aggregate_service import dialect_insert

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # Participation
    {
        "slug": "first_ranking",
        "name": "First Ranking",
        "description": "Complete your first daily challenge",
        "icon": "sparkles",
        "category": "participation",
        "rarity": "common",
        "trigger_type": "total_attempts",
        "trigger_config": {"threshold": 1},
        "sort_order": 1,
    },
    {
        "slug": "rankings_10",
        "name": "Regular",
        "description": "Complete 10 challenges",
        "icon": "calendar",
        "category": "participation",
        "rarity": "common",
        "trigger_type": "total_attempts",
        "trigger_config": {"threshold": 10},
        "sort_order": 2,
    },
    {
        "slug": "rankings_50",
        "name": "Money Minded",
        "description": "Complete 50 challenges",
        "icon": "piggy-bank",
        "category": "participation",
        "rarity": "rare",
        "trigger_type": "total_attempts",
        "trigger_config": {"threshold": 50},
        "sort_order": 3,
    },
    # Streaks
    {
        "slug": "streak_3",
        "name": "Warming Up",
        "description": "Complete challenges three days in a row",
        "icon": "flame",
        "category": "streak",
        "rarity": "common",
        "trigger_type": "current_streak",
        "trigger_config": {"threshold": 3},
        "sort_order": 10,
    },
    {
        "slug": "streak_7",
        "name": "Week Strong",
        "description": "Keep a seven day streak",
        "icon": "flame",
        "category": "streak",
        "rarity": "rare",
        "trigger_type": "current_streak",
        "trigger_config": {"threshold": 7},
        "sort_order": 11,
    },
    {
        "slug": "streak_30",
        "name": "Habit Formed",
        "description": "Keep a thirty day streak",
        "icon": "trophy",
        "category": "streak",
        "rarity": "epic",
        "trigger_type": "longest_streak",
        "trigger_config": {"threshold": 30},
        "sort_order": 12,
    },
    # Skill
    {
        "slug": "perfect_match",
        "name": "Perfect Match",
        "description": "Rank every option exactly like the experts",
        "icon": "target",
        "category": "skill",
        "rarity": "common",
        "trigger_type": "score",
        "trigger_config": {"min_score": 100},
        "sort_order": 20,
    },
    {
        "slug": "sharp_eye",
        "name": "Sharp Eye",
        "description": "Score 90 or better on five challenges",
        "icon": "eye",
        "category": "skill",
        "rarity": "rare",
        "trigger_type": "high_scores",
        "trigger_config": {"min_score": 90, "count": 5},
        "sort_order": 21,
    },
    {
        "slug": "on_fire",
        "name": "On Fire",
        "description": "Score 100 while on a seven day streak",
        "icon": "zap",
        "category": "skill",
        "rarity": "epic",
        "trigger_type": "score",
        "trigger_config": {"min_score": 100, "min_streak": 7},
        "sort_order": 22,
    },
    {
        "slug": "steady_hand",
        "name": "Steady Hand",
        "description": "Hold an average score of 75 or more over at least 10 challenges",
        "icon": "scale",
        "category": "skill",
        "rarity": "epic",
        "trigger_type": "average_score",
        "trigger_config": {"min_average": 75, "min_attempts": 10},
        "sort_order": 23,
    },
    # Community
    {
        "slug": "top_five_percent",
        "name": "Top 5%",
        "description": "Finish in the top 5% of at least 10 players",
        "icon": "medal",
        "category": "community",
        "rarity": "rare",
        "trigger_type": "percentile",
        "trigger_config": {"min_percentile": 95, "min_community": 10},
        "sort_order": 30,
    },
    {
        "slug": "comeback",
        "name": "Comeback",
        "description": "Improve your best score on a challenge by 25 points or more",
        "icon": "trending-up",
        "category": "community",
        "rarity": "common",
        "trigger_type": "score_improvement",
        "trigger_config": {"min_gain": 25},
        "sort_order": 31,
    },
]


async def seed_badges(db: AsyncSession) -> int:
    """Upsert all badge definitions by slug. Returns number of badges seeded."""
    now = datetime.now(timezone.utc)
    seeded = 0
    for badge_data in BADGE_SEED_DATA:
        stmt = dialect_insert(db, BadgeDefinition).values(**badge_data, is_active=True, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "category": stmt.excluded.category,
                "rarity": stmt.excluded.rarity,
                "trigger_type": stmt.excluded.trigger_type,
                "trigger_config": stmt.excluded.trigger_config,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    # Ensure badge_stats rows exist for all badges
    badges = (await db.execute(select(BadgeDefinition))).scalars().all()
    for badge in badges:
        stats_stmt = dialect_insert(db, BadgeStats).values(badge_id=badge.id, total_earned=0)
        stats_stmt = stats_stmt.on_conflict_do_nothing(index_elements=["badge_id"])
        await db.execute(stats_stmt)

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded

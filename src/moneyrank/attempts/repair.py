"""Offline repair for best-attempt flags, community aggregates and user stats.

The submission pipeline keeps everything consistent on its own; these are
for databases that predate the partial unique index, or counters that were
edited by hand. Demoting a duplicate best attempt always rebuilds the
challenge counters and user stats it fed into.

Usage: python -m moneyrank.attempts.repair [--challenge ID ...] [--user ID ...] [--all-challenges]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.attempts.best_attempt import as_utc
from moneyrank.config import get_settings
from moneyrank.database import close_db, get_session_factory, init_db
from moneyrank.db.models import (
    Attempt,
    ChallengeAggregate,
    ChallengePositionCount,
    ChallengeRankingCount,
    ChallengeScoreCount,
    UserStats,
)
from moneyrank.gamification.streak_service import recalculate_streak
from moneyrank.stats.aggregate_service import percentile_for_score, ranking_key
from moneyrank.stats.user_stats import lock_user_stats

logger = logging.getLogger(__name__)


@dataclass
class RepairSummary:
    demoted_pairs: list[tuple[str, str]] = field(default_factory=list)
    challenges_rebuilt: list[str] = field(default_factory=list)
    users_rebuilt: list[str] = field(default_factory=list)


async def repair_duplicate_best_attempts(db: AsyncSession) -> list[tuple[str, str]]:
    """Leave one best attempt per (user, challenge). Caller commits.

    The survivor is the highest score, latest submission on ties. Returns the
    (user_id, challenge_id) pairs that had duplicates.
    """
    pairs = await db.execute(
        select(Attempt.user_id, Attempt.challenge_id)
        .where(Attempt.is_best_attempt.is_(True))
        .group_by(Attempt.user_id, Attempt.challenge_id)
        .having(func.count() > 1)
        .order_by(Attempt.user_id, Attempt.challenge_id)
    )

    affected: list[tuple[str, str]] = []
    for user_id, challenge_id in pairs.all():
        rows = (
            await db.execute(
                select(Attempt).where(
                    Attempt.user_id == user_id,
                    Attempt.challenge_id == challenge_id,
                    Attempt.is_best_attempt.is_(True),
                )
            )
        ).scalars().all()
        ordered = sorted(rows, key=lambda a: (a.score, as_utc(a.submitted_at)), reverse=True)
        losers = [a.id for a in ordered[1:]]
        await db.execute(
            update(Attempt)
            .where(Attempt.id.in_(losers))
            .values(is_best_attempt=False)
            .execution_options(synchronize_session=False)
        )
        affected.append((user_id, challenge_id))
        logger.warning(
            "Demoted %d duplicate best attempts for user %s on challenge %s",
            len(losers), user_id, challenge_id,
        )
    return affected


async def rebuild_aggregates(db: AsyncSession, challenge_id: str) -> int:
    """Recompute every counter for a challenge from its counted attempts.

    Returns the number of counted attempts. Caller commits.
    """
    for model in (ChallengeScoreCount, ChallengePositionCount, ChallengeRankingCount, ChallengeAggregate):
        await db.execute(delete(model).where(model.challenge_id == challenge_id))

    result = await db.execute(
        select(Attempt.score, Attempt.ranking).where(
            Attempt.challenge_id == challenge_id,
            Attempt.is_best_attempt.is_(True),
        )
    )
    counted = result.all()

    scores: Counter[int] = Counter()
    rankings: Counter[str] = Counter()
    positions: Counter[tuple[str, int]] = Counter()
    for score, ranking in counted:
        scores[score] += 1
        rankings[ranking_key(ranking)] += 1
        for position, option_id in enumerate(ranking, start=1):
            positions[(option_id, position)] += 1

    db.add(
        ChallengeAggregate(
            challenge_id=challenge_id,
            total_attempts=len(counted),
            score_sum=sum(score for score, _ in counted),
            updated_at=datetime.now(timezone.utc),
        )
    )
    db.add_all(
        ChallengeScoreCount(challenge_id=challenge_id, score=score, count=n)
        for score, n in scores.items()
    )
    db.add_all(
        ChallengeRankingCount(challenge_id=challenge_id, ranking_key=key, count=n)
        for key, n in rankings.items()
    )
    db.add_all(
        ChallengePositionCount(challenge_id=challenge_id, option_id=option_id, position=position, count=n)
        for (option_id, position), n in positions.items()
    )
    await db.flush()

    logger.info("Rebuilt aggregates for challenge %s from %d counted attempts", challenge_id, len(counted))
    return len(counted)


async def rebuild_user_stats(db: AsyncSession, user_id: str) -> UserStats:
    """Recompute a user's counters and streak from their attempts. Caller commits.

    Rebuild the aggregates of the user's challenges first: best_percentile is
    read back from the score histograms.
    """
    stats = await lock_user_stats(db, user_id)

    counted = (
        await db.execute(
            select(Attempt.challenge_id, Attempt.score).where(
                Attempt.user_id == user_id,
                Attempt.is_best_attempt.is_(True),
            )
        )
    ).all()
    submissions = (
        await db.execute(select(func.count()).select_from(Attempt).where(Attempt.user_id == user_id))
    ).scalar_one()

    stats.total_attempts = len(counted)
    stats.score_sum = sum(score for _, score in counted)
    stats.submission_count = submissions

    best_percentile = None
    for challenge_id, score in counted:
        percentile, _ = await percentile_for_score(db, challenge_id, score)
        best_percentile = percentile if best_percentile is None else max(best_percentile, percentile)
    stats.best_percentile = best_percentile

    await recalculate_streak(db, user_id)
    stats.updated_at = datetime.now(timezone.utc)
    await db.flush()

    logger.info("Rebuilt stats for user %s from %d counted attempts", user_id, len(counted))
    return stats


async def run_repair(
    db: AsyncSession,
    *,
    challenge_ids: Iterable[str] = (),
    user_ids: Iterable[str] = (),
    all_challenges: bool = False,
) -> RepairSummary:
    """Demote duplicates, then rebuild every challenge and user they touched
    along with any explicitly requested. Caller commits."""
    summary = RepairSummary(demoted_pairs=await repair_duplicate_best_attempts(db))

    challenges = list(challenge_ids)
    users = list(user_ids)
    for user_id, challenge_id in summary.demoted_pairs:
        challenges.append(challenge_id)
        users.append(user_id)
    if all_challenges:
        result = await db.execute(select(Attempt.challenge_id).distinct())
        challenges.extend(row[0] for row in result)

    for challenge_id in dict.fromkeys(challenges):
        await rebuild_aggregates(db, challenge_id)
        summary.challenges_rebuilt.append(challenge_id)
    for user_id in dict.fromkeys(users):
        await rebuild_user_stats(db, user_id)
        summary.users_rebuilt.append(user_id)
    return summary


async def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Repair best-attempt flags, aggregates and user stats")
    parser.add_argument("--challenge", action="append", default=[], help="rebuild aggregates for this challenge id")
    parser.add_argument("--user", action="append", default=[], help="rebuild stats and streak for this user id")
    parser.add_argument("--all-challenges", action="store_true", help="rebuild aggregates for every attempted challenge")
    args = parser.parse_args(argv)

    settings = get_settings()
    await init_db(settings.database_url)
    try:
        async with get_session_factory()() as db:
            summary = await run_repair(
                db,
                challenge_ids=args.challenge,
                user_ids=args.user,
                all_challenges=args.all_challenges,
            )
            await db.commit()
        logger.info(
            "Repair done: %d duplicate pairs, %d challenges and %d users rebuilt",
            len(summary.demoted_pairs), len(summary.challenges_rebuilt), len(summary.users_rebuilt),
        )
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(main())

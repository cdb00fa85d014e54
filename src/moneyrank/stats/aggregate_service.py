"""Community aggregates over counted attempts.

A counted attempt is a user's current best attempt for a challenge, so each
user contributes exactly one data point per challenge. Counters are kept in
narrow tables and only ever moved with `count = count + :delta` statements;
many users submit against the same challenge at once and a read-modify-write
would lose updates.

Percentages use round-half-up integer arithmetic and are exact: no sampling,
so a user's percentile only moves when the underlying counts do.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, func, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.database import dialect_name
from moneyrank.db.models import (
    Attempt,
    Challenge,
    ChallengeAggregate,
    ChallengePositionCount,
    ChallengeRankingCount,
    ChallengeScoreCount,
)
from moneyrank.stats.schemas import ChallengeStatsResponse, OptionDistribution, OptionPickShare, PositionCount

logger = logging.getLogger(__name__)


def ranking_key(ranking: Sequence[str]) -> str:
    return ",".join(ranking)


def percent(part: int, total: int) -> int:
    """round(100 * part / total), half up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (200 * part + total) // (2 * total)


def percent_1dp(part: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(100 * part / total, 1)


def dialect_insert(db: AsyncSession, model: Any) -> Any:  # noqa: ANN401
    """INSERT construct supporting ON CONFLICT for the session's dialect."""
    if dialect_name(db) == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


# ---------------------------------------------------------------------------
# Writes (inside the submission transaction)
# ---------------------------------------------------------------------------


async def _increment(db: AsyncSession, model: Any, keys: dict[str, Any]) -> None:  # noqa: ANN401
    stmt = dialect_insert(db, model).values(**keys, count=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(keys),
        set_={"count": model.count + 1},
    )
    await db.execute(stmt)


async def _decrement(db: AsyncSession, model: Any, keys: dict[str, Any]) -> None:  # noqa: ANN401
    conditions = [getattr(model, k) == v for k, v in keys.items()]
    await db.execute(
        update(model)
        .where(*conditions)
        .values(count=model.count - 1)
        .execution_options(synchronize_session=False)
    )


async def _apply_contribution(db: AsyncSession, attempt: Attempt, sign: int) -> None:
    """Add (sign=+1) or remove (sign=-1) one counted attempt's contribution."""
    bump = _increment if sign > 0 else _decrement
    challenge_id = attempt.challenge_id

    await bump(db, ChallengeScoreCount, {"challenge_id": challenge_id, "score": attempt.score})
    await bump(
        db,
        ChallengeRankingCount,
        {"challenge_id": challenge_id, "ranking_key": ranking_key(attempt.ranking)},
    )
    for position, option_id in enumerate(attempt.ranking, start=1):
        await bump(
            db,
            ChallengePositionCount,
            {"challenge_id": challenge_id, "option_id": option_id, "position": position},
        )


async def apply_counted_change(db: AsyncSession, new: Attempt, previous: Attempt | None) -> None:
    """Move the user's counted contribution from previous (if any) to new."""
    now = datetime.now(timezone.utc)
    added = 0 if previous is not None else 1
    score_delta = new.score - (previous.score if previous is not None else 0)

    stmt = dialect_insert(db, ChallengeAggregate).values(
        challenge_id=new.challenge_id,
        total_attempts=added,
        score_sum=score_delta,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["challenge_id"],
        set_={
            "total_attempts": ChallengeAggregate.total_attempts + added,
            "score_sum": ChallengeAggregate.score_sum + score_delta,
            "updated_at": now,
        },
    )
    await db.execute(stmt)

    if previous is not None:
        await _apply_contribution(db, previous, -1)
    await _apply_contribution(db, new, +1)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def begin_snapshot(db: AsyncSession) -> None:
    """Make the following reads see one consistent snapshot.

    Must be the first statement of the session's transaction.
    """
    if dialect_name(db) == "postgresql":
        await db.execute(text("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ"))


async def percentile_for_score(db: AsyncSession, challenge_id: str, score: int) -> tuple[int, int]:
    """(percentile, total counted) for a score. Ties count as not worse."""
    result = await db.execute(
        select(
            func.coalesce(
                func.sum(case((ChallengeScoreCount.score <= score, ChallengeScoreCount.count), else_=0)),
                0,
            ),
            func.coalesce(func.sum(ChallengeScoreCount.count), 0),
        ).where(ChallengeScoreCount.challenge_id == challenge_id)
    )
    at_or_below, total = result.one()
    return percent(int(at_or_below), int(total)), int(total)


async def get_aggregate(db: AsyncSession, challenge_id: str) -> ChallengeAggregate | None:
    result = await db.execute(
        select(ChallengeAggregate).where(ChallengeAggregate.challenge_id == challenge_id)
    )
    return result.scalar_one_or_none()


async def _count_for_ranking(db: AsyncSession, challenge_id: str, ranking: Sequence[str]) -> int:
    result = await db.execute(
        select(ChallengeRankingCount.count).where(
            ChallengeRankingCount.challenge_id == challenge_id,
            ChallengeRankingCount.ranking_key == ranking_key(ranking),
        )
    )
    return int(result.scalar_one_or_none() or 0)


async def _position_counts(db: AsyncSession, challenge_id: str) -> dict[tuple[str, int], int]:
    result = await db.execute(
        select(
            ChallengePositionCount.option_id,
            ChallengePositionCount.position,
            ChallengePositionCount.count,
        ).where(ChallengePositionCount.challenge_id == challenge_id)
    )
    return {(row.option_id, row.position): int(row.count) for row in result}


def build_position_distribution(
    option_ids: Sequence[str],
    counts: dict[tuple[str, int], int],
    total: int,
) -> list[OptionDistribution]:
    """Every option x every rank position, zero counts included."""
    n = len(option_ids)
    return [
        OptionDistribution(
            option_id=option_id,
            positions=[
                PositionCount(
                    position=position,
                    count=counts.get((option_id, position), 0),
                    percent=percent_1dp(counts.get((option_id, position), 0), total),
                )
                for position in range(1, n + 1)
            ],
        )
        for option_id in option_ids
    ]


def build_option_pick_stats(
    option_ids: Sequence[str],
    counts: dict[tuple[str, int], int],
    total: int,
) -> list[OptionPickShare]:
    """How often each option was ranked first, and first or second."""
    shares = []
    for option_id in option_ids:
        first = counts.get((option_id, 1), 0)
        top_two = first + counts.get((option_id, 2), 0)
        shares.append(
            OptionPickShare(
                option_id=option_id,
                top_pick_count=first,
                top_pick_percent=percent(first, total),
                top_two_count=top_two,
                top_two_percent=percent(top_two, total),
            )
        )
    return shares


async def get_stats(db: AsyncSession, challenge: Challenge, attempt: Attempt) -> ChallengeStatsResponse:
    """Community comparison for one of the user's attempts."""
    percentile, total = await percentile_for_score(db, challenge.id, attempt.score)
    aggregate = await get_aggregate(db, challenge.id)
    counts = await _position_counts(db, challenge.id)
    exact = await _count_for_ranking(db, challenge.id, attempt.ranking)

    top_pick = attempt.ranking[0] if attempt.ranking else None
    top_pick_count = counts.get((top_pick, 1), 0) if top_pick else 0
    top_two_count = top_pick_count + (counts.get((top_pick, 2), 0) if top_pick else 0)

    average = 0.0
    if aggregate is not None and aggregate.total_attempts > 0:
        average = round(aggregate.score_sum / aggregate.total_attempts, 1)

    return ChallengeStatsResponse(
        percentile=percentile,
        top_percent=max(0, 100 - percentile) if total else 0,
        exact_match_percent=percent(exact, total),
        top_pick_percent=percent(top_pick_count, total),
        top_two_percent=percent(top_two_count, total),
        total_attempts=total,
        average_score=average,
        position_distribution=build_position_distribution(challenge.ideal_order, counts, total),
        option_pick_stats=build_option_pick_stats(challenge.ideal_order, counts, total),
    )

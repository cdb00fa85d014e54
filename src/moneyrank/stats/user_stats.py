"""Per-user stats row and score history over counted attempts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.attempts.best_attempt import as_utc
from moneyrank.database import dialect_name
from moneyrank.db.models import Attempt, UserStats
from moneyrank.scoring.engine import DEFAULT_THRESHOLDS, GradeThresholds
from moneyrank.stats.aggregate_service import dialect_insert
from moneyrank.stats.schemas import ScoreAverages, ScoreDistribution, ScoreHistoryEntry, ScoreHistoryResponse


async def lock_user_stats(db: AsyncSession, user_id: str) -> UserStats:
    """Get the user's stats row, creating it if needed, locked FOR UPDATE.

    The insert is ON CONFLICT DO NOTHING so two first submissions from the
    same user on different challenges do not collide on the primary key.
    """
    stmt = dialect_insert(db, UserStats).values(
        user_id=user_id,
        updated_at=datetime.now(timezone.utc),
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id"]))

    query = select(UserStats).where(UserStats.user_id == user_id).execution_options(populate_existing=True)
    if dialect_name(db) == "postgresql":
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one()


async def get_user_stats(db: AsyncSession, user_id: str) -> UserStats | None:
    result = await db.execute(select(UserStats).where(UserStats.user_id == user_id))
    return result.scalar_one_or_none()


async def counted_scores(db: AsyncSession, user_id: str) -> list[int]:
    """Scores of every counted (best) attempt the user holds."""
    result = await db.execute(
        select(Attempt.score).where(
            Attempt.user_id == user_id,
            Attempt.is_best_attempt.is_(True),
        )
    )
    return [row[0] for row in result]


def _mean(scores: list[int]) -> int:
    """Half-up integer mean, 0 for no scores."""
    if not scores:
        return 0
    return (2 * sum(scores) + len(scores)) // (2 * len(scores))


async def score_history(
    db: AsyncSession,
    user_id: str,
    thresholds: GradeThresholds = DEFAULT_THRESHOLDS,
    now: datetime | None = None,
) -> ScoreHistoryResponse:
    """Averages, grade buckets and trend over the user's counted attempts.

    The trend compares the last seven days against the attempts 7 to 30 days
    old, or against the all-time average when that window is empty.
    """
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(Attempt)
        .where(Attempt.user_id == user_id, Attempt.is_best_attempt.is_(True))
        .order_by(Attempt.submitted_at, Attempt.id)
    )
    attempts = list(result.scalars())
    scores = [a.score for a in attempts]

    last_7: list[int] = []
    last_30: list[int] = []
    previous: list[int] = []
    for attempt in attempts:
        age = now - as_utc(attempt.submitted_at)
        if age <= timedelta(days=7):
            last_7.append(attempt.score)
        if age <= timedelta(days=30):
            last_30.append(attempt.score)
            if age > timedelta(days=7):
                previous.append(attempt.score)

    all_time = _mean(scores)
    recent = _mean(last_7)
    baseline = _mean(previous) if previous else all_time
    if baseline > 0:
        trend_percent = round((recent - baseline) * 100 / baseline)
    else:
        trend_percent = 0
    if recent > baseline:
        trend = "improving"
    elif recent < baseline:
        trend = "declining"
    else:
        trend = "stable"

    perfect = sum(1 for s in scores if s == 100)
    great = sum(1 for s in scores if thresholds.great <= s < 100)
    good = sum(1 for s in scores if thresholds.good <= s < thresholds.great)

    return ScoreHistoryResponse(
        averages=ScoreAverages(last_7_days=recent, last_30_days=_mean(last_30), all_time=all_time),
        score_distribution=ScoreDistribution(
            perfect=perfect,
            great=great,
            good=good,
            risky=len(scores) - perfect - great - good,
        ),
        trend=trend,
        trend_percent=trend_percent,
        total_attempts=len(scores),
        best_score=max(scores, default=0),
        worst_score=min(scores, default=0),
        history=[
            ScoreHistoryEntry(
                submitted_at=as_utc(a.submitted_at),
                score=a.score,
                challenge_id=a.challenge_id,
                date_key=a.date_key,
            )
            for a in attempts
        ],
    )

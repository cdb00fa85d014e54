"""Attempt submission pipeline.

One submission is one transaction:

    score (no transaction) -> pair lock -> insert attempt -> best-attempt
    tie-break -> aggregate counters -> user stats + streak -> badges -> commit

Readers never see a partially applied submission. Transient storage
conflicts (lock timeouts, deadlocks, unique-index races, SQLite busy) rerun
the whole transaction with backoff; once the budget is spent the caller gets
TransientStorageError. Badge notifications go out only after commit.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from moneyrank.attempts.best_attempt import get_best_attempt, insert_attempt, outranks, promote
from moneyrank.attempts.locks import SubmissionLock
from moneyrank.attempts.retry import RetryConfig
from moneyrank.challenges.service import ensure_unlocked, require_challenge
from moneyrank.config import Settings
from moneyrank.db.models import Attempt, BadgeDefinition, Challenge
from moneyrank.errors import TransientStorageError
from moneyrank.gamification.badge_service import publish_badges_earned
from moneyrank.gamification.rules import BadgeSnapshot
from moneyrank.gamification.streak_service import complete_day
from moneyrank.gamification.trigger_engine import TriggerEngine
from moneyrank.scoring.engine import DEFAULT_THRESHOLDS, GradeThresholds, ScoreResult, score_ranking
from moneyrank.stats.aggregate_service import apply_counted_change, percentile_for_score
from moneyrank.stats.user_stats import counted_scores, lock_user_stats
from moneyrank.users.service import ensure_user

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    attempt: Attempt
    score: ScoreResult
    became_best: bool
    percentile: int
    community_size: int
    awarded: list[BadgeDefinition] = field(default_factory=list)

    @property
    def badges_awarded(self) -> list[str]:
        return [b.slug for b in self.awarded]


class SubmissionPipeline:
    """Validates, scores and records ranking submissions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        lock: SubmissionLock | None = None,
        retry_config: RetryConfig | None = None,
        thresholds: GradeThresholds = DEFAULT_THRESHOLDS,
        timeout_seconds: float = 10.0,
        redis: object = None,
    ) -> None:
        self.session_factory = session_factory
        self.lock = lock or SubmissionLock()
        self.retry_config = retry_config or RetryConfig()
        self.thresholds = thresholds
        self.timeout_seconds = timeout_seconds
        self.redis = redis

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        *,
        lock: SubmissionLock | None = None,
        redis: object = None,
    ) -> SubmissionPipeline:
        return cls(
            session_factory,
            lock=lock or SubmissionLock(settings.lock_timeout_seconds),
            retry_config=RetryConfig.from_settings(settings),
            thresholds=GradeThresholds(
                great=settings.grade_great_threshold,
                good=settings.grade_good_threshold,
            ),
            timeout_seconds=settings.submission_timeout_seconds,
            redis=redis,
        )

    async def submit(
        self,
        user_id: str,
        challenge_id: str,
        ranking: Sequence[str],
        submitted_at: datetime | None = None,
        user_today: str | None = None,
    ) -> SubmissionResult:
        """Record one submission.

        Raises NotFoundError for an unknown challenge, ForbiddenError when the
        challenge day is after user_today, and ValidationError for a ranking
        that is not a permutation of its options; none of them touch storage.
        """
        # Fixed before any retry so ties resolve by when the user submitted.
        if submitted_at is None:
            submitted_at = datetime.now(timezone.utc)
        ranking = list(ranking)

        async with self.session_factory() as db:
            challenge = await require_challenge(db, challenge_id)
        if user_today is not None:
            ensure_unlocked(challenge, user_today)
        scored = score_ranking(ranking, challenge.ideal_order, self.thresholds)

        retry = 0
        while True:
            try:
                outcome = await self._run_once(user_id, challenge, ranking, scored, submitted_at)
                break
            except Exception as exc:
                if not self.retry_config.is_retryable(exc):
                    raise
                if retry >= self.retry_config.max_retries:
                    logger.error(
                        "Submission by %s for challenge %s failed after %d tries: %s",
                        user_id, challenge_id, retry + 1, type(exc).__name__,
                    )
                    raise TransientStorageError from exc
                delay = self.retry_config.calculate_delay(retry)
                retry += 1
                logger.warning(
                    "Submission by %s for challenge %s hit %s, retry %d/%d in %.3fs",
                    user_id, challenge_id, type(exc).__name__,
                    retry, self.retry_config.max_retries, delay,
                )
                await asyncio.sleep(delay)

        await publish_badges_earned(self.redis, user_id, outcome.awarded)
        return outcome

    async def _run_once(
        self,
        user_id: str,
        challenge: Challenge,
        ranking: list[str],
        scored: ScoreResult,
        submitted_at: datetime,
    ) -> SubmissionResult:
        async with self.session_factory() as db:
            async with self.lock.hold(db, user_id, challenge.id):
                try:
                    outcome = await asyncio.wait_for(
                        self._apply(db, user_id, challenge, ranking, scored, submitted_at),
                        timeout=self.timeout_seconds,
                    )
                    await db.commit()
                except BaseException:
                    await db.rollback()
                    raise
        return outcome

    async def _apply(
        self,
        db: AsyncSession,
        user_id: str,
        challenge: Challenge,
        ranking: list[str],
        scored: ScoreResult,
        submitted_at: datetime,
    ) -> SubmissionResult:
        await ensure_user(db, user_id)

        attempt = await insert_attempt(
            db,
            user_id=user_id,
            challenge_id=challenge.id,
            date_key=challenge.date_key,
            ranking=ranking,
            result=scored,
            submitted_at=submitted_at,
        )
        previous = await get_best_attempt(db, user_id, challenge.id, for_update=True)

        became_best = outranks(attempt, previous)
        if became_best:
            await promote(db, attempt, previous)
            await apply_counted_change(db, attempt, previous)

        stats = await lock_user_stats(db, user_id)
        stats.submission_count += 1
        if became_best:
            if previous is None:
                stats.total_attempts += 1
                stats.score_sum += attempt.score
            else:
                stats.score_sum += attempt.score - previous.score

        best_score = attempt.score if became_best else previous.score  # type: ignore[union-attr]
        percentile, community_size = await percentile_for_score(db, challenge.id, best_score)
        if stats.best_percentile is None or percentile > stats.best_percentile:
            stats.best_percentile = percentile

        if previous is None:
            await complete_day(db, stats, challenge.date_key)
        stats.updated_at = datetime.now(timezone.utc)
        await db.flush()

        snapshot = BadgeSnapshot(
            user_id=user_id,
            challenge_id=challenge.id,
            score=attempt.score,
            is_best_attempt=became_best,
            previous_best_score=previous.score if previous is not None else None,
            percentile=percentile,
            community_size=community_size,
            current_streak=stats.current_streak,
            longest_streak=stats.longest_streak,
            total_attempts=stats.total_attempts,
            average_score=stats.average_score,
            counted_scores=tuple(await counted_scores(db, user_id)),
        )
        awarded = await TriggerEngine(db).evaluate(snapshot)
        await db.flush()

        return SubmissionResult(
            attempt=attempt,
            score=scored,
            became_best=became_best,
            percentile=percentile,
            community_size=community_size,
            awarded=awarded,
        )

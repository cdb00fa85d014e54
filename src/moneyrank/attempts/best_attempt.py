"""Best-attempt bookkeeping: one best attempt per (user, challenge).

Every function here runs inside the caller's transaction while the
per-pair SubmissionLock is held. The partial unique index
uq_attempts_one_best_per_user_challenge backs the invariant at the storage
layer: a racing writer that slips past the lock gets an IntegrityError
instead of a second best row.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from moneyrank.database import dialect_name
from moneyrank.db.models import Attempt
from moneyrank.scoring.engine import ScoreResult


def as_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


async def insert_attempt(
    db: AsyncSession,
    *,
    user_id: str,
    challenge_id: str,
    date_key: str,
    ranking: list[str],
    result: ScoreResult,
    submitted_at: datetime,
) -> Attempt:
    """Insert a new, not-yet-best attempt row."""
    attempt = Attempt(
        user_id=user_id,
        challenge_id=challenge_id,
        date_key=date_key,
        submitted_at=submitted_at,
        ranking=list(ranking),
        score=result.score,
        grade=result.grade.value,
        is_best_attempt=False,
    )
    db.add(attempt)
    await db.flush()
    return attempt


async def get_best_attempt(
    db: AsyncSession,
    user_id: str,
    challenge_id: str,
    *,
    for_update: bool = False,
) -> Attempt | None:
    """The user's current best attempt for a challenge, if any."""
    stmt = select(Attempt).where(
        Attempt.user_id == user_id,
        Attempt.challenge_id == challenge_id,
        Attempt.is_best_attempt.is_(True),
    )
    if for_update and dialect_name(db) == "postgresql":
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def outranks(candidate: Attempt, current: Attempt | None) -> bool:
    """Whether candidate should replace current as the best attempt.

    Higher score wins; equal scores go to the later submission.
    """
    if current is None:
        return True
    if candidate.score != current.score:
        return candidate.score > current.score
    return as_utc(candidate.submitted_at) >= as_utc(current.submitted_at)


async def promote(db: AsyncSession, attempt: Attempt, previous: Attempt | None) -> None:
    """Make attempt the best, demoting previous first."""
    if previous is not None:
        await db.execute(
            update(Attempt)
            .where(Attempt.id == previous.id)
            .values(is_best_attempt=False)
            .execution_options(synchronize_session=False)
        )
        set_committed_value(previous, "is_best_attempt", False)
    await db.execute(
        update(Attempt)
        .where(Attempt.id == attempt.id)
        .values(is_best_attempt=True)
        .execution_options(synchronize_session=False)
    )
    set_committed_value(attempt, "is_best_attempt", True)

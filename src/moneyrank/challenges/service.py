"""Challenge catalog lookups. Read-only: challenges are authored elsewhere."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.challenges.date_keys import shift_date_key
from moneyrank.db.models import Attempt, Challenge
from moneyrank.errors import ForbiddenError, NotFoundError

# Upcoming days listed (locked) in the archive after the player's today.
ARCHIVE_FUTURE_DAYS = 6


async def get_challenge(db: AsyncSession, challenge_id: str) -> Challenge | None:
    """Fetch a challenge with its options."""
    result = await db.execute(select(Challenge).where(Challenge.id == challenge_id))
    return result.scalar_one_or_none()


async def get_challenge_by_date_key(db: AsyncSession, date_key: str) -> Challenge | None:
    """Fetch the published challenge for a calendar day."""
    result = await db.execute(
        select(Challenge).where(
            Challenge.date_key == date_key,
            Challenge.is_published.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def require_challenge(db: AsyncSession, challenge_id: str) -> Challenge:
    """Fetch a published challenge or raise NotFoundError."""
    challenge = await get_challenge(db, challenge_id)
    if challenge is None or not challenge.is_published or not challenge.options:
        msg = "Challenge not found"
        raise NotFoundError(msg)
    return challenge


def is_locked(date_key: str, user_today: str) -> bool:
    """Days after the player's local today cannot be played yet."""
    return date_key > user_today


def ensure_unlocked(challenge: Challenge, user_today: str) -> None:
    if is_locked(challenge.date_key, user_today):
        msg = "This challenge is locked"
        raise ForbiddenError(msg)


async def list_archive(
    db: AsyncSession,
    user_id: str,
    user_today: str,
) -> list[tuple[Challenge, Attempt | None]]:
    """Published challenges up to a few days past user_today, newest first,
    each paired with the user's counted attempt."""
    horizon = shift_date_key(user_today, ARCHIVE_FUTURE_DAYS)
    challenges = (
        await db.execute(
            select(Challenge)
            .where(Challenge.is_published.is_(True), Challenge.date_key <= horizon)
            .order_by(Challenge.date_key.desc())
        )
    ).scalars().all()

    best = await db.execute(
        select(Attempt).where(
            Attempt.user_id == user_id,
            Attempt.is_best_attempt.is_(True),
            Attempt.challenge_id.in_([c.id for c in challenges]),
        )
    )
    by_challenge = {a.challenge_id: a for a in best.scalars()}
    return [(c, by_challenge.get(c.id)) for c in challenges]

"""Daily completion streaks.

A day counts once the user has a counted attempt for that day's challenge.
The state lives on user_stats as (current_streak, longest_streak,
last_completed_date_key). advance_streak moves it forward one day at a time;
complete_day applies a new day inside the submission transaction under the
user-stats row lock and rebuilds from history when an older day is filled in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.challenges.date_keys import days_between
from moneyrank.db.models import Attempt, UserStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0
    last_completed_date_key: str | None = None


def advance_streak(state: StreakState, date_key: str) -> StreakState:
    """Apply one completed day to a streak.

    next day after the last completed -> streak + 1
    same day, or an older day -> unchanged (see complete_day)
    anything else (gap, first completion) -> streak restarts at 1
    """
    last = state.last_completed_date_key
    if last is not None:
        gap = days_between(last, date_key)
        if gap <= 0:
            return state
        current = state.current_streak + 1 if gap == 1 else 1
    else:
        current = 1

    return StreakState(
        current_streak=current,
        longest_streak=max(state.longest_streak, current),
        last_completed_date_key=date_key,
    )


def streak_from_days(date_keys: set[str]) -> StreakState:
    """Rebuild streak state from every completed day."""
    state = StreakState()
    for key in sorted(date_keys):
        state = advance_streak(state, key)
    return state


def record_completion(stats: UserStats, date_key: str) -> bool:
    """Advance a locked user_stats row for a completed day. Returns True if it changed."""
    before = StreakState(
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        last_completed_date_key=stats.last_completed_date_key,
    )
    after = advance_streak(before, date_key)
    if after == before:
        return False

    stats.current_streak = after.current_streak
    stats.longest_streak = after.longest_streak
    stats.last_completed_date_key = after.last_completed_date_key
    if after.current_streak == 1 and before.current_streak > 1:
        logger.info("Streak reset for %s after %d days", stats.user_id, before.current_streak)
    return True


async def completed_days(db: AsyncSession, user_id: str) -> set[str]:
    """Every day key the user holds a counted attempt for."""
    result = await db.execute(
        select(Attempt.date_key)
        .where(Attempt.user_id == user_id, Attempt.is_best_attempt.is_(True))
        .distinct()
    )
    return {row[0] for row in result}


async def complete_day(db: AsyncSession, stats: UserStats, date_key: str) -> bool:
    """Apply a newly completed day to a locked user_stats row.

    Days after the last completed one advance the streak in place. An older
    day may bridge a gap in the history, so the state is rebuilt from every
    completed day instead.
    """
    last = stats.last_completed_date_key
    if last is None or days_between(last, date_key) >= 0:
        return record_completion(stats, date_key)

    rebuilt = streak_from_days(await completed_days(db, stats.user_id) | {date_key})
    longest = max(stats.longest_streak, rebuilt.longest_streak)
    changed = (rebuilt.current_streak, longest, rebuilt.last_completed_date_key) != (
        stats.current_streak,
        stats.longest_streak,
        stats.last_completed_date_key,
    )
    stats.current_streak = rebuilt.current_streak
    stats.longest_streak = longest
    stats.last_completed_date_key = rebuilt.last_completed_date_key
    if changed:
        logger.info("Rebuilt streak for %s after back-filling %s: %d", stats.user_id, date_key, rebuilt.current_streak)
    return changed


async def recalculate_streak(db: AsyncSession, user_id: str) -> StreakState:
    """Repair a user's streak from their counted attempts. Caller commits."""
    state = streak_from_days(await completed_days(db, user_id))

    stats_result = await db.execute(select(UserStats).where(UserStats.user_id == user_id))
    stats = stats_result.scalar_one_or_none()
    if stats is not None:
        stats.current_streak = state.current_streak
        stats.longest_streak = state.longest_streak
        stats.last_completed_date_key = state.last_completed_date_key
    return state

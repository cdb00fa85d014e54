"""Daily challenge and archive endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.attempts.best_attempt import get_best_attempt
from moneyrank.attempts.schemas import AttemptResponse
from moneyrank.auth.dependencies import get_current_user
from moneyrank.challenges.date_keys import parse_date_key, resolve_user_today
from moneyrank.challenges.schemas import (
    ArchiveEntryResponse,
    ArchiveResponse,
    ChallengeResponse,
    DailyChallengeResponse,
)
from moneyrank.challenges.service import get_challenge_by_date_key, is_locked, list_archive
from moneyrank.config import get_settings
from moneyrank.database import get_session
from moneyrank.db.models import User
from moneyrank.errors import ForbiddenError, NotFoundError

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])

_USER_TODAY = Query(None, description="Client's local date, YYYY-MM-DD")


async def _daily_challenge(
    db: AsyncSession,
    user: User,
    date_key: str,
    user_today: str,
) -> DailyChallengeResponse:
    challenge = await get_challenge_by_date_key(db, date_key)
    if challenge is None or not challenge.options:
        msg = "No challenge for this date"
        raise NotFoundError(msg)

    attempt = await get_best_attempt(db, user.id, challenge.id)
    if attempt is None and is_locked(date_key, user_today):
        msg = "This challenge is locked"
        raise ForbiddenError(msg)

    return DailyChallengeResponse(
        challenge=ChallengeResponse.from_challenge(challenge, reveal=attempt is not None),
        has_attempted=attempt is not None,
        attempt=AttemptResponse.model_validate(attempt) if attempt is not None else None,
    )


@router.get("/today", response_model=DailyChallengeResponse)
async def get_today(
    user_today: str | None = _USER_TODAY,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Today's challenge in the player's local day (server reset timezone if not given)."""
    today = resolve_user_today(user_today, get_settings().reset_timezone)
    return await _daily_challenge(db, user, today, today)


@router.get("/archive", response_model=ArchiveResponse)
async def get_archive(
    user_today: str | None = _USER_TODAY,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Past challenges plus the coming week, newest first, with the user's counted attempts."""
    today = resolve_user_today(user_today, get_settings().reset_timezone)
    entries = [
        ArchiveEntryResponse(
            id=challenge.id,
            date_key=challenge.date_key,
            title=challenge.title,
            category=challenge.category,
            difficulty=challenge.difficulty,
            is_locked=is_locked(challenge.date_key, today),
            has_attempted=attempt is not None,
            attempt=AttemptResponse.model_validate(attempt) if attempt is not None else None,
            completed_at=attempt.submitted_at if attempt is not None else None,
        )
        for challenge, attempt in await list_archive(db, user.id, today)
    ]
    return ArchiveResponse(user_today=today, challenges=entries)


@router.get("/{date_key}", response_model=DailyChallengeResponse)
async def get_by_date(
    date_key: str,
    user_today: str | None = _USER_TODAY,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Challenge for a specific calendar day. Future days stay locked until played."""
    parse_date_key(date_key)
    today = resolve_user_today(user_today, get_settings().reset_timezone)
    return await _daily_challenge(db, user, date_key, today)

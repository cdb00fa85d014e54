"""Attempt submission and results endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from moneyrank.attempts.best_attempt import get_best_attempt
from moneyrank.attempts.locks import get_submission_lock
from moneyrank.attempts.pipeline import SubmissionPipeline
from moneyrank.attempts.schemas import AttemptResponse, AttemptSubmitRequest, AttemptSubmitResponse
from moneyrank.auth.dependencies import get_current_user
from moneyrank.challenges.date_keys import resolve_user_today
from moneyrank.challenges.schemas import ChallengeResponse
from moneyrank.challenges.service import require_challenge
from moneyrank.config import get_settings
from moneyrank.database import get_session_factory
from moneyrank.db.models import User
from moneyrank.errors import NotFoundError
from moneyrank.redis_client import get_optional_redis
from moneyrank.stats.aggregate_service import begin_snapshot, get_stats
from moneyrank.stats.schemas import ResultsResponse

router = APIRouter(prefix="/api/v1", tags=["Attempts"])


def get_pipeline() -> SubmissionPipeline:
    """Submission pipeline bound to the app's session factory, Redis pool and
    the process-wide submission lock."""
    return SubmissionPipeline.from_settings(
        get_session_factory(),
        get_settings(),
        lock=get_submission_lock(),
        redis=get_optional_redis(),
    )


@router.post("/attempts", response_model=AttemptSubmitResponse, status_code=201)
async def submit_attempt(
    body: AttemptSubmitRequest,
    user_today: str | None = Query(None, description="Client's local date, YYYY-MM-DD"),
    user: User = Depends(get_current_user),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    """Score and record a ranking for a challenge. Days after the player's today are locked."""
    today = resolve_user_today(user_today, get_settings().reset_timezone)
    result = await pipeline.submit(user.id, body.challenge_id, body.ranking, user_today=today)
    return AttemptSubmitResponse(
        **AttemptResponse.model_validate(result.attempt).model_dump(),
        badges_awarded=result.badges_awarded,
    )


@router.get("/results/{challenge_id}", response_model=ResultsResponse)
async def get_results(
    challenge_id: str,
    user: User = Depends(get_current_user),
):
    """The user's counted attempt with community comparison, read from one snapshot."""
    async with get_session_factory()() as db:
        await begin_snapshot(db)
        challenge = await require_challenge(db, challenge_id)
        attempt = await get_best_attempt(db, user.id, challenge.id)
        if attempt is None:
            msg = "No attempt found for this challenge"
            raise NotFoundError(msg)
        stats = await get_stats(db, challenge, attempt)

    return ResultsResponse(
        attempt=AttemptResponse.model_validate(attempt),
        challenge=ChallengeResponse.from_challenge(challenge, reveal=True),
        stats=stats,
    )

"""Current-user endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.auth.dependencies import get_current_user
from moneyrank.config import get_settings
from moneyrank.database import get_session
from moneyrank.db.models import User
from moneyrank.scoring.engine import GradeThresholds
from moneyrank.stats.schemas import ScoreHistoryResponse, UserStatsResponse
from moneyrank.stats.user_stats import get_user_stats, score_history

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me/stats", response_model=UserStatsResponse)
async def get_my_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Streak, counted attempts and averages. Zeros before the first submission."""
    stats = await get_user_stats(db, user.id)
    if stats is None:
        return UserStatsResponse(
            current_streak=0,
            longest_streak=0,
            last_completed_date_key=None,
            total_attempts=0,
            submission_count=0,
            average_score=0.0,
            best_percentile=None,
        )
    return UserStatsResponse(
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        last_completed_date_key=stats.last_completed_date_key,
        total_attempts=stats.total_attempts,
        submission_count=stats.submission_count,
        average_score=stats.average_score,
        best_percentile=stats.best_percentile,
        updated_at=stats.updated_at,
    )


@router.get("/me/score-history", response_model=ScoreHistoryResponse)
async def get_my_score_history(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Averages, grade buckets, trend and the ordered list of counted scores."""
    settings = get_settings()
    thresholds = GradeThresholds(great=settings.grade_great_threshold, good=settings.grade_good_threshold)
    return await score_history(db, user.id, thresholds)

"""Pydantic response models for results, community comparison and user stats."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from moneyrank.attempts.schemas import AttemptResponse
from moneyrank.challenges.schemas import ChallengeResponse


class PositionCount(BaseModel):
    position: int
    count: int
    percent: float


class OptionDistribution(BaseModel):
    option_id: str
    positions: list[PositionCount]


class OptionPickShare(BaseModel):
    option_id: str
    top_pick_count: int
    top_pick_percent: int
    top_two_count: int
    top_two_percent: int


class ChallengeStatsResponse(BaseModel):
    percentile: int
    top_percent: int
    exact_match_percent: int
    top_pick_percent: int
    top_two_percent: int
    total_attempts: int
    average_score: float
    position_distribution: list[OptionDistribution]
    option_pick_stats: list[OptionPickShare]


class UserStatsResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_completed_date_key: str | None
    total_attempts: int
    submission_count: int
    average_score: float
    best_percentile: int | None
    updated_at: datetime | None = None


class ResultsResponse(BaseModel):
    attempt: AttemptResponse
    challenge: ChallengeResponse
    stats: ChallengeStatsResponse


class ScoreAverages(BaseModel):
    last_7_days: int
    last_30_days: int
    all_time: int


class ScoreDistribution(BaseModel):
    perfect: int
    great: int
    good: int
    risky: int


class ScoreHistoryEntry(BaseModel):
    submitted_at: datetime
    score: int
    challenge_id: str
    date_key: str


class ScoreHistoryResponse(BaseModel):
    averages: ScoreAverages
    score_distribution: ScoreDistribution
    trend: str
    trend_percent: int
    total_attempts: int
    best_score: int
    worst_score: int
    history: list[ScoreHistoryEntry]

"""Pydantic models for attempt submission."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AttemptSubmitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    challenge_id: str = Field(..., min_length=1, max_length=64)
    ranking: list[str] = Field(..., min_length=1, max_length=32)


class AttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    challenge_id: str
    date_key: str
    ranking: list[str]
    score: int
    grade: str
    is_best_attempt: bool
    submitted_at: datetime


class AttemptSubmitResponse(AttemptResponse):
    badges_awarded: list[str] = []

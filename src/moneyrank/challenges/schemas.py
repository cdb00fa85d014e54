"""Pydantic response models for the challenge catalog."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from moneyrank.attempts.schemas import AttemptResponse
from moneyrank.db.models import Challenge


class ChallengeOptionResponse(BaseModel):
    id: str
    option_text: str
    tier_label: str | None = None
    explanation_short: str | None = None
    ideal_rank: int | None = None


class ChallengeResponse(BaseModel):
    id: str
    date_key: str
    title: str
    scenario_text: str
    category: str
    difficulty: int
    options: list[ChallengeOptionResponse]

    @classmethod
    def from_challenge(cls, challenge: Challenge, *, reveal: bool) -> ChallengeResponse:
        """Build the payload. Without reveal the answer key is stripped and the
        options are listed by id rather than in ideal order."""
        options = challenge.options if reveal else sorted(challenge.options, key=lambda o: o.id)
        return cls(
            id=challenge.id,
            date_key=challenge.date_key,
            title=challenge.title,
            scenario_text=challenge.scenario_text,
            category=challenge.category,
            difficulty=challenge.difficulty,
            options=[
                ChallengeOptionResponse(
                    id=o.id,
                    option_text=o.option_text,
                    tier_label=o.tier_label if reveal else None,
                    explanation_short=o.explanation_short if reveal else None,
                    ideal_rank=o.ideal_rank if reveal else None,
                )
                for o in options
            ],
        )


class DailyChallengeResponse(BaseModel):
    challenge: ChallengeResponse
    has_attempted: bool
    attempt: AttemptResponse | None = None


class ArchiveEntryResponse(BaseModel):
    id: str
    date_key: str
    title: str
    category: str
    difficulty: int
    is_locked: bool
    has_attempted: bool
    attempt: AttemptResponse | None = None
    completed_at: datetime | None = None


class ArchiveResponse(BaseModel):
    user_today: str
    challenges: list[ArchiveEntryResponse]

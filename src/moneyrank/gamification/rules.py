"""Badge predicates: pure functions over a post-submission snapshot.

Each badge definition names a trigger_type and carries a trigger_config;
the predicate registered for that type decides whether the badge is earned.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class BadgeSnapshot:
    """State visible to badge rules once the submission's other effects are applied."""

    user_id: str
    challenge_id: str
    score: int
    is_best_attempt: bool
    previous_best_score: int | None
    percentile: int
    community_size: int
    current_streak: int
    longest_streak: int
    total_attempts: int
    average_score: float
    counted_scores: tuple[int, ...] = field(default_factory=tuple)


Predicate = Callable[[BadgeSnapshot, dict[str, Any]], bool]


def _meets_min_streak(snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    return snap.current_streak >= int(config.get("min_streak", 0))


def total_attempts(snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    return snap.total_attempts >= int(config["threshold"])


def current_streak(snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    return snap.current_streak >= int(config["threshold"])


def longest_streak(snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    return snap.longest_streak >= int(config["threshold"])


def single_score(snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    return snap.score >= int(config.get("min_score", 100)) and _meets_min_streak(snap, config)


def high_scores(snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    min_score = int(config.get("min_score", 0))
    hits = sum(1 for s in snap.counted_scores if s >= min_score)
    return hits >= int(config["count"]) and _meets_min_streak(snap, config)


def average_score(snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    if snap.total_attempts < int(config.get("min_attempts", 1)):
        return False
    return snap.average_score >= float(config["min_average"])


def percentile(snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    if snap.community_size < int(config.get("min_community", 1)):
        return False
    return snap.percentile >= int(config["min_percentile"])


def score_improvement(snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    if not snap.is_best_attempt or snap.previous_best_score is None:
        return False
    return snap.score - snap.previous_best_score >= int(config.get("min_gain", 1))


PREDICATES: dict[str, Predicate] = {
    "total_attempts": total_attempts,
    "current_streak": current_streak,
    "longest_streak": longest_streak,
    "score": single_score,
    "high_scores": high_scores,
    "average_score": average_score,
    "percentile": percentile,
    "score_improvement": score_improvement,
}


def evaluate(trigger_type: str, snap: BadgeSnapshot, config: dict[str, Any]) -> bool:
    """Whether a badge of this trigger type is earned. Unknown types never fire."""
    predicate = PREDICATES.get(trigger_type)
    if predicate is None:
        return False
    return predicate(snap, config or {})


def award_metadata(trigger_type: str, snap: BadgeSnapshot) -> dict[str, Any]:
    """Facts frozen onto the user_badges row at award time."""
    metadata: dict[str, Any] = {"challenge_id": snap.challenge_id, "score": snap.score}
    if trigger_type in ("current_streak", "longest_streak"):
        metadata["streak"] = snap.current_streak
        metadata["longest_streak"] = snap.longest_streak
    elif trigger_type == "percentile":
        metadata["percentile"] = snap.percentile
        metadata["community_size"] = snap.community_size
    elif trigger_type == "total_attempts":
        metadata["total_attempts"] = snap.total_attempts
    elif trigger_type == "average_score":
        metadata["average_score"] = snap.average_score
    elif trigger_type == "score_improvement":
        metadata["previous_best_score"] = snap.previous_best_score
    return metadata

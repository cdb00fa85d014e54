"""Ranking scorer: Spearman footrule distance, deterministic, no I/O.

score = round(100 - distance / max_distance * 100), clamped to [0, 100],
where max_distance = floor(N^2 / 2). For the 4-option daily challenge that
is 12.5 points per unit of distance:

    ideal order        distance 0  -> 100 (Great)
    one adjacent swap  distance 2  ->  75 (Good)
    fully reversed     distance 8  ->   0 (Risky)
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from moneyrank.errors import ValidationError


class Grade(str, Enum):
    GREAT = "Great"
    GOOD = "Good"
    RISKY = "Risky"


@dataclass(frozen=True)
class GradeThresholds:
    """Minimum score for each grade tier. Scores below `good` are Risky."""

    great: int = 90
    good: int = 60


DEFAULT_THRESHOLDS = GradeThresholds()


@dataclass(frozen=True)
class ScoreResult:
    distance: int
    max_distance: int
    score: int
    grade: Grade


def validate_ranking(ranking: Sequence[str], ideal_order: Sequence[str]) -> None:
    """Raise ValidationError unless ranking is a permutation of ideal_order."""
    if len(ranking) != len(ideal_order):
        msg = f"Your ranking is invalid: expected {len(ideal_order)} options, got {len(ranking)}"
        raise ValidationError(msg)

    duplicates = sorted(oid for oid, n in Counter(ranking).items() if n > 1)
    if duplicates:
        msg = f"Your ranking is invalid: options listed more than once: {', '.join(duplicates)}"
        raise ValidationError(msg)

    unknown = sorted(set(ranking) - set(ideal_order))
    if unknown:
        msg = f"Your ranking is invalid: unknown options: {', '.join(unknown)}"
        raise ValidationError(msg)


def max_footrule_distance(n: int) -> int:
    """Largest possible footrule distance between two permutations of n items."""
    return (n * n) // 2


def footrule_distance(ranking: Sequence[str], ideal_order: Sequence[str]) -> int:
    """Sum of |submitted position - ideal position| over all options."""
    ideal_index = {oid: idx for idx, oid in enumerate(ideal_order)}
    return sum(abs(idx - ideal_index[oid]) for idx, oid in enumerate(ranking))


def score_from_distance(distance: int, max_distance: int) -> int:
    """Map a distance onto 0..100, rounding half up."""
    if max_distance <= 0:
        return 100
    # round(100 - 100 * d / m) with half-up rounding, in integers.
    raw = (200 * (max_distance - distance) + max_distance) // (2 * max_distance)
    return max(0, min(100, raw))


def grade_for_score(score: int, thresholds: GradeThresholds = DEFAULT_THRESHOLDS) -> Grade:
    if score >= thresholds.great:
        return Grade.GREAT
    if score >= thresholds.good:
        return Grade.GOOD
    return Grade.RISKY


def score_ranking(
    ranking: Sequence[str],
    ideal_order: Sequence[str],
    thresholds: GradeThresholds = DEFAULT_THRESHOLDS,
) -> ScoreResult:
    """Validate and score a submitted ranking against the challenge's ideal order."""
    validate_ranking(ranking, ideal_order)
    distance = footrule_distance(ranking, ideal_order)
    max_distance = max_footrule_distance(len(ideal_order))
    score = score_from_distance(distance, max_distance)
    return ScoreResult(
        distance=distance,
        max_distance=max_distance,
        score=score,
        grade=grade_for_score(score, thresholds),
    )

"""
Grading Metric Computations.

Pure functions used to derive UnifiedPerformanceData from a
submission and its grading input.
"""

from datetime import datetime
from typing import Mapping, Optional

from core.clock import ensure_utc
from core.constants import (
    BLOOMS_MASTERY_THRESHOLD,
    ENGAGEMENT_BASE_SCORE,
    ENGAGEMENT_MAX_SCORE,
    ENGAGEMENT_MIN_SCORE,
    SECONDS_PER_MINUTE,
)

from .types import BloomsLevel


def compute_time_spent(
    started_at: Optional[datetime],
    completed_at: Optional[datetime],
    time_spent_minutes: Optional[int],
) -> int:
    """
    Seconds spent on a submission.

    Prefers the recorded start/completion span, then the stored
    minutes, else 0.
    """
    if started_at and completed_at:
        delta = ensure_utc(completed_at) - ensure_utc(started_at)
        return int(delta.total_seconds())
    if time_spent_minutes:
        return int(time_spent_minutes) * SECONDS_PER_MINUTE
    return 0


def compute_percentage(score: float, max_score: float) -> float:
    if max_score > 0:
        return score / max_score * 100
    return 0.0


def determine_demonstrated_level(
    level_scores: Optional[Mapping[BloomsLevel, float]],
    activity_level: Optional[BloomsLevel],
    threshold: float = BLOOMS_MASTERY_THRESHOLD,
) -> Optional[BloomsLevel]:
    """
    Bloom's level a student actually demonstrated.

    The highest-scoring level at or above the threshold; ties go
    to the level that comes first in taxonomy order. Falls back
    to the level the activity targets.
    """
    if not level_scores:
        return activity_level

    best_level = None
    best_score = None
    for level in BloomsLevel:
        score = level_scores.get(level)
        if score is None or score < threshold:
            continue
        if best_score is None or score > best_score:
            best_level, best_score = level, score

    return best_level or activity_level


def calculate_engagement_score(
    time_spent: int,
    interaction_count: int,
    attempt_count: int,
) -> float:
    """
    Engagement on a 0-100 scale.

    Base 50, then:
    - time: +20 for 5-30 minutes, +10 beyond 30
    - interactions: +15 above 10, +10 above 5
    - attempts: +15 on the first attempt, +5 up to three
    """
    score = ENGAGEMENT_BASE_SCORE

    minutes = time_spent / SECONDS_PER_MINUTE
    if 5 <= minutes <= 30:
        score += 20
    elif minutes > 30:
        score += 10

    if interaction_count > 10:
        score += 15
    elif interaction_count > 5:
        score += 10

    if attempt_count == 1:
        score += 15
    elif attempt_count <= 3:
        score += 5

    return float(min(ENGAGEMENT_MAX_SCORE, max(ENGAGEMENT_MIN_SCORE, score)))


def running_mean(previous_mean: float, count: int, value: float) -> float:
    """Mean after adding value as the count-th observation."""
    if count <= 0:
        raise ValueError("count must be positive")
    return (previous_mean * (count - 1) + value) / count

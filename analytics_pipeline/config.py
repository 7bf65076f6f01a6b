"""
Analytics Pipeline - Configuration.

============================================================
PURPOSE
============================================================
Tunables for the grading-event pipeline. Defaults match the
behaviour the rollups were designed around; none of them are
read from the environment.

============================================================
"""

from dataclasses import dataclass, field

from core.constants import (
    BLOOMS_MASTERY_THRESHOLD,
    EXCEPTIONAL_PERCENTAGE,
    STRUGGLING_PERCENTAGE,
)


@dataclass
class QueueConfig:
    """Bounded update queue."""

    max_size: int = 10_000
    """Producers wait (up to enqueue_timeout_seconds) when full."""

    enqueue_timeout_seconds: float = 5.0
    """How long submit() waits for capacity before failing."""

    dead_letter_capacity: int = 1_000
    """Most recent failed items kept for inspection."""


@dataclass
class ThresholdConfig:
    """Performance alert thresholds (percent)."""

    mastery_threshold: float = BLOOMS_MASTERY_THRESHOLD
    """Minimum per-level score for a level to count as demonstrated."""

    struggling_below: float = STRUGGLING_PERCENTAGE
    exceptional_above: float = EXCEPTIONAL_PERCENTAGE

    struggling_confidence: float = 0.8
    exceptional_confidence: float = 0.9


@dataclass
class AnalyticsPipelineConfig:
    """Top-level pipeline configuration."""

    queue: QueueConfig = field(default_factory=QueueConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)

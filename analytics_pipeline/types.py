"""
Analytics Pipeline Types.

============================================================
PURPOSE
============================================================
Enums and event payloads flowing through the pipeline:

- BloomsLevel: the six ordered cognitive levels
- GradingType: how a submission was graded
- AnalyticsEventType: queue element kinds
- GradingData: grader input to process_grading_event
- UnifiedPerformanceData: derived metrics for one submission
- AnalyticsUpdate: one queue element

Payloads are in-memory only. UnifiedPerformanceData feeds the
persisted rollups but is not itself a stored entity.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class BloomsLevel(Enum):
    """Bloom's taxonomy levels, lowest to highest."""
    REMEMBER = "REMEMBER"
    UNDERSTAND = "UNDERSTAND"
    APPLY = "APPLY"
    ANALYZE = "ANALYZE"
    EVALUATE = "EVALUATE"
    CREATE = "CREATE"

    @classmethod
    def parse(cls, value: Any) -> Optional["BloomsLevel"]:
        """Accept a member, its name or its value (any case)."""
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return None


class GradingType(Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"
    AI = "AI"
    HYBRID = "HYBRID"


class AnalyticsEventType(Enum):
    ACTIVITY_SUBMITTED = "activity_submitted"
    ACTIVITY_GRADED = "activity_graded"
    BLOOMS_LEVEL_DEMONSTRATED = "blooms_level_demonstrated"
    PERFORMANCE_THRESHOLD_CROSSED = "performance_threshold_crossed"
    LEARNING_PATTERN_DETECTED = "learning_pattern_detected"


@dataclass
class GradingData:
    """Grader input for one submission."""
    score: float
    max_score: float
    grading_type: GradingType
    graded_by: str
    feedback: Optional[str] = None
    blooms_level_scores: Optional[Dict[BloomsLevel, float]] = None


@dataclass
class UnifiedPerformanceData:
    """Everything derived from one graded submission."""
    student_id: str
    activity_id: str
    submission_id: str

    # Grading
    score: float
    max_score: float
    percentage: float
    graded_at: datetime
    grading_type: GradingType

    # Behaviour
    time_spent: int
    """Seconds."""
    attempt_count: int
    interaction_count: int
    engagement_score: float

    # Context
    class_id: str
    subject_id: str
    activity_type: str

    # Timestamps
    submitted_at: datetime
    started_at: datetime
    completed_at: datetime

    # Bloom's taxonomy
    blooms_level: Optional[BloomsLevel] = None
    blooms_level_scores: Optional[Dict[BloomsLevel, float]] = None
    demonstrated_level: Optional[BloomsLevel] = None

    topic_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "activity_id": self.activity_id,
            "submission_id": self.submission_id,
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "graded_at": self.graded_at.isoformat(),
            "grading_type": self.grading_type.value,
            "time_spent": self.time_spent,
            "attempt_count": self.attempt_count,
            "interaction_count": self.interaction_count,
            "engagement_score": self.engagement_score,
            "class_id": self.class_id,
            "subject_id": self.subject_id,
            "topic_id": self.topic_id,
            "activity_type": self.activity_type,
            "submitted_at": self.submitted_at.isoformat(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "blooms_level": self.blooms_level.value if self.blooms_level else None,
            "blooms_level_scores": (
                {level.value: score for level, score in self.blooms_level_scores.items()}
                if self.blooms_level_scores else None
            ),
            "demonstrated_level": self.demonstrated_level.value if self.demonstrated_level else None,
        }


@dataclass
class UpdateMetadata:
    triggered_by: str
    timestamp: datetime
    confidence: Optional[float] = None
    """0-1, set on threshold alerts."""
    reason: Optional[str] = None


@dataclass
class AnalyticsUpdate:
    """One element of the analytics update queue."""
    type: AnalyticsEventType
    data: UnifiedPerformanceData
    metadata: UpdateMetadata

    def describe(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "submission_id": self.data.submission_id,
            "student_id": self.data.student_id,
            "triggered_by": self.metadata.triggered_by,
            "confidence": self.metadata.confidence,
            "reason": self.metadata.reason,
        }


@dataclass
class DeadLetter:
    """A queue item whose processing failed."""
    update: AnalyticsUpdate
    error: str
    failed_at: datetime
    error_type: str = field(default="Exception")

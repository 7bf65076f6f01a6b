"""
Rollup Updates.

============================================================
PURPOSE
============================================================
Incremental maintenance of the three rollup families from
one graded submission:

- StudentPerformanceMetrics (student + subject)
- ClassPerformance (class)
- BloomsProgression (student + subject)

Each update runs in its own transaction, so one failing
rollup does not undo the others. Failures are logged and
re-raised to the caller.

============================================================
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from core.clock import ClockFactory, ClockProtocol
from storage.database import transaction_scope
from storage.models.analytics import (
    BloomsProgression,
    ClassPerformance,
    StudentPerformanceMetrics,
)
from storage.repositories.analytics import (
    BloomsProgressionRepository,
    ClassPerformanceRepository,
    StudentPerformanceRepository,
)

from .metrics import running_mean
from .types import UnifiedPerformanceData


logger = logging.getLogger(__name__)


class RollupUpdater:
    """Applies one grading event to the persisted rollups."""

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[ClockProtocol] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()

    # --------------------------------------------------------
    # STUDENT
    # --------------------------------------------------------

    def update_student_metrics(self, data: UnifiedPerformanceData) -> StudentPerformanceMetrics:
        """Create the student+subject rollup or merge this event into it."""
        try:
            with transaction_scope(self._session_factory) as session:
                repo = StudentPerformanceRepository(session)
                metrics = repo.get(data.student_id, data.subject_id)

                if metrics is None:
                    return repo.create(
                        student_id=data.student_id,
                        subject_id=data.subject_id,
                        class_id=data.class_id,
                        total_score=data.score,
                        total_max_score=data.max_score,
                        activity_count=1,
                        average_score=data.score,
                        average_percentage=data.percentage,
                        total_time_spent=data.time_spent,
                        average_engagement=data.engagement_score,
                        last_activity_date=data.completed_at,
                    )

                metrics.total_score += data.score
                metrics.total_max_score += data.max_score
                metrics.activity_count += 1
                metrics.average_score = metrics.total_score / metrics.activity_count
                metrics.average_percentage = (
                    metrics.total_score / metrics.total_max_score * 100
                    if metrics.total_max_score > 0 else 0.0
                )
                metrics.total_time_spent += data.time_spent
                metrics.average_engagement = running_mean(
                    metrics.average_engagement, metrics.activity_count, data.engagement_score
                )
                metrics.last_activity_date = data.completed_at
                return repo.save(metrics)
        except Exception as e:
            logger.error(f"Error updating student performance metrics: {e}")
            raise

    # --------------------------------------------------------
    # CLASS
    # --------------------------------------------------------

    def update_class_performance(self, data: UnifiedPerformanceData) -> ClassPerformance:
        """
        Create the class rollup or fold this event into it.

        activities_graded counts every graded event and
        average_grade is the running mean of their percentages.
        """
        now = self._clock.now()
        try:
            with transaction_scope(self._session_factory) as session:
                repo = ClassPerformanceRepository(session)
                performance = repo.get(data.class_id)

                if performance is None:
                    return repo.create(
                        class_id=data.class_id,
                        average_grade=data.percentage,
                        completion_rate=0.0,
                        submission_rate=0.0,
                        activities_created=0,
                        activities_graded=1,
                        total_points=0.0,
                        average_points=0.0,
                        grade_improvement=0.0,
                        teacher_feedback_rate=0.0,
                        grading_timeliness=0.0,
                        last_updated=now,
                    )

                performance.activities_graded += 1
                performance.average_grade = running_mean(
                    performance.average_grade, performance.activities_graded, data.percentage
                )
                performance.last_updated = now
                return repo.save(performance)
        except Exception as e:
            logger.error(f"Error updating class performance metrics: {e}")
            raise

    # --------------------------------------------------------
    # BLOOM'S
    # --------------------------------------------------------

    def update_blooms_progression(self, data: UnifiedPerformanceData) -> Optional[BloomsProgression]:
        """Count one more occurrence of the demonstrated level."""
        if data.demonstrated_level is None:
            return None

        level = data.demonstrated_level.value
        try:
            with transaction_scope(self._session_factory) as session:
                repo = BloomsProgressionRepository(session)
                progression = repo.get(data.student_id, data.subject_id)

                if progression is None:
                    return repo.create(
                        student_id=data.student_id,
                        subject_id=data.subject_id,
                        class_id=data.class_id,
                        level_counts={level: 1},
                        last_demonstrated_level=level,
                        last_activity_date=data.completed_at,
                    )

                # Reassign so the JSON column is marked dirty
                counts = dict(progression.level_counts or {})
                counts[level] = counts.get(level, 0) + 1
                progression.level_counts = counts
                progression.last_demonstrated_level = level
                progression.last_activity_date = data.completed_at
                return repo.save(progression)
        except Exception as e:
            logger.error(f"Error updating Bloom's progression: {e}")
            raise

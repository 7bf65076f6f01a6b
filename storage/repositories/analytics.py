"""
Analytics Repositories.

============================================================
PURPOSE
============================================================
Data access for the analytics pipeline: loading graded
submissions and reading/writing the unified record and the
three rollup families.

============================================================
REPOSITORIES
============================================================
- ActivityGradeRepository: submission + activity lookup
- PerformanceAnalyticsRepository: unified record upsert
- StudentPerformanceRepository: student+subject rollup
- ClassPerformanceRepository: class rollup
- BloomsProgressionRepository: student+subject Bloom's counts

============================================================
"""

from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from storage.models.analytics import (
    ActivityGrade,
    BloomsProgression,
    ClassPerformance,
    PerformanceAnalytics,
    StudentPerformanceMetrics,
)
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import RecordNotFoundError


class ActivityGradeRepository(BaseRepository[ActivityGrade]):
    """Read access to graded submissions."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, ActivityGrade, "ActivityGradeRepository")

    def get_with_activity(self, submission_id: str) -> ActivityGrade:
        """
        Load a submission together with its activity in one query.

        Raises:
            RecordNotFoundError if no submission has this id
        """
        stmt = (
            select(ActivityGrade)
            .options(joinedload(ActivityGrade.activity))
            .where(ActivityGrade.id == submission_id)
        )
        submission = self._execute_scalar(stmt)
        if submission is None:
            raise RecordNotFoundError(self._repository_name, submission_id)
        return submission


class PerformanceAnalyticsRepository(BaseRepository[PerformanceAnalytics]):
    """Unified per-submission records."""

    # Fields that stay fixed once the record exists
    IDENTITY_FIELDS = (
        "submission_id",
        "student_id",
        "activity_id",
        "class_id",
        "subject_id",
        "topic_id",
        "blooms_level",
        "activity_type",
        "submitted_at",
    )

    def __init__(self, session: Session) -> None:
        super().__init__(session, PerformanceAnalytics, "PerformanceAnalyticsRepository")

    def get_by_submission(self, submission_id: str) -> Optional[PerformanceAnalytics]:
        stmt = select(PerformanceAnalytics).where(
            PerformanceAnalytics.submission_id == submission_id
        )
        return self._execute_scalar(stmt)

    def upsert(self, values: Dict[str, Any]) -> PerformanceAnalytics:
        """
        Create the record for values["submission_id"] or update it.

        On update only the metric fields change; identity fields
        keep the values written at creation.
        """
        existing = self.get_by_submission(values["submission_id"])
        if existing is None:
            return self._add(PerformanceAnalytics(**values))

        for key, value in values.items():
            if key not in self.IDENTITY_FIELDS:
                setattr(existing, key, value)
        self._flush("upsert")
        return existing


class StudentPerformanceRepository(BaseRepository[StudentPerformanceMetrics]):
    """Student+subject performance rollups."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, StudentPerformanceMetrics, "StudentPerformanceRepository")

    def get(self, student_id: str, subject_id: str) -> Optional[StudentPerformanceMetrics]:
        stmt = select(StudentPerformanceMetrics).where(
            StudentPerformanceMetrics.student_id == student_id,
            StudentPerformanceMetrics.subject_id == subject_id,
        )
        return self._execute_scalar(stmt)

    def create(self, **values: Any) -> StudentPerformanceMetrics:
        return self._add(StudentPerformanceMetrics(**values))

    def save(self, metrics: StudentPerformanceMetrics) -> StudentPerformanceMetrics:
        self._flush("update")
        return metrics


class ClassPerformanceRepository(BaseRepository[ClassPerformance]):
    """Per-class rollups."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, ClassPerformance, "ClassPerformanceRepository")

    def get(self, class_id: str) -> Optional[ClassPerformance]:
        stmt = select(ClassPerformance).where(ClassPerformance.class_id == class_id)
        return self._execute_scalar(stmt)

    def create(self, **values: Any) -> ClassPerformance:
        return self._add(ClassPerformance(**values))

    def save(self, performance: ClassPerformance) -> ClassPerformance:
        self._flush("update")
        return performance


class BloomsProgressionRepository(BaseRepository[BloomsProgression]):
    """Student+subject Bloom's level occurrence counts."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, BloomsProgression, "BloomsProgressionRepository")

    def get(self, student_id: str, subject_id: str) -> Optional[BloomsProgression]:
        stmt = select(BloomsProgression).where(
            BloomsProgression.student_id == student_id,
            BloomsProgression.subject_id == subject_id,
        )
        return self._execute_scalar(stmt)

    def create(self, **values: Any) -> BloomsProgression:
        return self._add(BloomsProgression(**values))

    def save(self, progression: BloomsProgression) -> BloomsProgression:
        self._flush("update")
        return progression

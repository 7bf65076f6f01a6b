"""
Analytics Domain ORM Models.

============================================================
PURPOSE
============================================================
Models read and written by the analytics pipeline: graded
submissions and their activities (inputs), the unified
per-submission record, and the incrementally maintained
rollups.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Activity / ActivityGrade: written by grading, read here
- PerformanceAnalytics: upserted synchronously per grading event
- StudentPerformanceMetrics / ClassPerformance / BloomsProgression:
  rollups, updated asynchronously by the queue consumer

============================================================
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storage.models.base import Base, JSONDocument, TimestampMixin, generate_id


class Activity(Base, TimestampMixin):
    """A learning or assessment activity inside a class."""

    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    class_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    topic_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    blooms_level: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        comment="Bloom's level the activity targets"
    )
    learning_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    assessment_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    grades: Mapped[list["ActivityGrade"]] = relationship(back_populates="activity")


class ActivityGrade(Base, TimestampMixin):
    """
    A student's graded submission for one activity.

    ============================================================
    TIMING FIELDS
    ============================================================
    - learning_started_at / learning_completed_at: precise span
    - time_spent_minutes: coarse fallback when the span is missing

    ============================================================
    """

    __tablename__ = "activity_grades"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    activity_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    graded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    learning_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    learning_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    time_spent_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    attempt_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    content: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    activity: Mapped[Activity] = relationship(back_populates="grades")

    __table_args__ = (
        Index("ix_activity_grades_activity_student", "activity_id", "student_id"),
    )


class PerformanceAnalytics(Base, TimestampMixin):
    """Unified per-submission performance record."""

    __tablename__ = "performance_analytics"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    submission_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    topic_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    score: Mapped[float] = mapped_column(Float, nullable=False)
    max_score: Mapped[float] = mapped_column(Float, nullable=False)
    percentage: Mapped[float] = mapped_column(Float, nullable=False)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    engagement_score: Mapped[float] = mapped_column(Float, nullable=False)

    blooms_level: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    demonstrated_level: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    blooms_level_scores: Mapped[Optional[Dict[str, float]]] = mapped_column(JSONDocument, nullable=True)

    grading_type: Mapped[str] = mapped_column(String(16), nullable=False)
    activity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    graded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class StudentPerformanceMetrics(Base, TimestampMixin):
    """Per student+subject performance rollup."""

    __tablename__ = "student_performance_metrics"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)

    total_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_max_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    activity_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    average_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_engagement: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_activity_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("student_id", "subject_id", name="uq_student_metrics_student_subject"),
    )


class ClassPerformance(Base):
    """Per class performance rollup."""

    __tablename__ = "class_performance"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    average_grade: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    completion_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    submission_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    activities_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    activities_graded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_points: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    average_points: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    grade_improvement: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    teacher_feedback_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    grading_timeliness: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class BloomsProgression(Base, TimestampMixin):
    """Per student+subject count of demonstrated Bloom's levels."""

    __tablename__ = "blooms_progression"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    level_counts: Mapped[Dict[str, int]] = mapped_column(JSONDocument, nullable=False, default=dict)
    last_demonstrated_level: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    last_activity_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("student_id", "subject_id", name="uq_blooms_progression_student_subject"),
    )

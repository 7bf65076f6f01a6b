"""
Storage Models Package.

This package contains all ORM models for the school operations
database. Models are organized by domain.

============================================================
MODEL ORGANIZATION
============================================================

Analytics (analytics.py)
- Activity
- ActivityGrade
- PerformanceAnalytics
- StudentPerformanceMetrics
- ClassPerformance
- BloomsProgression

Billing (billing.py)
- Invoice

============================================================
"""

from storage.models.base import Base, TimestampMixin
from storage.models.analytics import (
    Activity,
    ActivityGrade,
    BloomsProgression,
    ClassPerformance,
    PerformanceAnalytics,
    StudentPerformanceMetrics,
)
from storage.models.billing import Invoice

__all__ = [
    "Base",
    "TimestampMixin",
    "Activity",
    "ActivityGrade",
    "BloomsProgression",
    "ClassPerformance",
    "PerformanceAnalytics",
    "StudentPerformanceMetrics",
    "Invoice",
]

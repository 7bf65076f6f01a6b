"""
Analytics Pipeline Package.

============================================================
PURPOSE
============================================================
Turns graded submissions into learning analytics.

- process_grading_event derives per-submission metrics and
  writes the unified performance record
- a bounded in-process queue feeds the student, class and
  Bloom's taxonomy rollups
- threshold crossings are raised as alerts to listeners

============================================================
"""

from .config import AnalyticsPipelineConfig, QueueConfig, ThresholdConfig
from .queue import AnalyticsUpdateQueue
from .rollups import RollupUpdater
from .service import (
    ANALYTICS_UPDATED,
    BLOOMS_LEVEL_DEMONSTRATED,
    PERFORMANCE_ALERT,
    UnifiedAnalyticsService,
)
from .types import (
    AnalyticsEventType,
    AnalyticsUpdate,
    BloomsLevel,
    DeadLetter,
    GradingData,
    GradingType,
    UnifiedPerformanceData,
    UpdateMetadata,
)

__all__ = [
    "AnalyticsPipelineConfig",
    "QueueConfig",
    "ThresholdConfig",
    "AnalyticsUpdateQueue",
    "RollupUpdater",
    "ANALYTICS_UPDATED",
    "BLOOMS_LEVEL_DEMONSTRATED",
    "PERFORMANCE_ALERT",
    "UnifiedAnalyticsService",
    "AnalyticsEventType",
    "AnalyticsUpdate",
    "BloomsLevel",
    "DeadLetter",
    "GradingData",
    "GradingType",
    "UnifiedPerformanceData",
    "UpdateMetadata",
]

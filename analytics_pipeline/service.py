"""
Unified Analytics Service.

============================================================
PURPOSE
============================================================
Connects grading to analytics: each graded submission is
turned into UnifiedPerformanceData, written to the unified
per-submission record, and queued for the rollup consumer.

============================================================
DATA FLOW
============================================================
process_grading_event (caller's path)
  1. load submission + activity
  2-6. derive time spent, percentage, demonstrated level,
       engagement; assemble UnifiedPerformanceData
  7. enqueue ACTIVITY_GRADED (not awaited beyond enqueue)
  8. upsert PerformanceAnalytics
  9. notify "analytics_updated" listeners

queue consumer (background)
  ACTIVITY_GRADED -> student, class and Bloom's rollups,
                     then threshold alerts (enqueued at tail)

============================================================
CONSISTENCY
============================================================
Steps 7 and 8 are two independent channels. If step 8 fails
the queued rollup update still runs; rollups may also lag the
unified record by the queue depth. Both are accepted: rollups
are eventually consistent and a failed rollup update shows up
in the queue's failure count and dead letters.

Every database unit of work runs in a worker thread
(asyncio.to_thread); only enqueueing and listener calls run
on the event loop.

============================================================
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from core.clock import ClockFactory, ClockProtocol, ensure_utc
from core.constants import SYSTEM_TRIGGER
from core.exceptions import SubmissionNotFoundError
from storage.database import transaction_scope
from storage.repositories.analytics import (
    ActivityGradeRepository,
    PerformanceAnalyticsRepository,
)
from storage.repositories.exceptions import RecordNotFoundError

from .config import AnalyticsPipelineConfig
from .metrics import (
    calculate_engagement_score,
    compute_percentage,
    compute_time_spent,
    determine_demonstrated_level,
)
from .queue import AnalyticsUpdateQueue
from .rollups import RollupUpdater
from .types import (
    AnalyticsEventType,
    AnalyticsUpdate,
    BloomsLevel,
    GradingData,
    UnifiedPerformanceData,
    UpdateMetadata,
)


logger = logging.getLogger(__name__)


# Listener event names
ANALYTICS_UPDATED = "analytics_updated"
PERFORMANCE_ALERT = "performance_alert"
BLOOMS_LEVEL_DEMONSTRATED = "blooms_level_demonstrated"

Listener = Callable[[Any], None]


class UnifiedAnalyticsService:
    """
    Grading-event entry point and rollup queue consumer.

    Call start() once the event loop is running; until then
    events are queued but not consumed.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        config: Optional[AnalyticsPipelineConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._session_factory = session_factory
        self._config = config or AnalyticsPipelineConfig()
        self._clock = clock or ClockFactory.get_clock()

        self._rollups = RollupUpdater(session_factory, clock=self._clock)
        self._queue = AnalyticsUpdateQueue(
            handler=self._process_analytics_update,
            config=self._config.queue,
            clock=self._clock,
        )
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def start(self) -> None:
        await self._queue.start()

    async def stop(self, drain: bool = True) -> None:
        await self._queue.stop(drain=drain)

    @property
    def queue(self) -> AnalyticsUpdateQueue:
        return self._queue

    # --------------------------------------------------------
    # LISTENERS
    # --------------------------------------------------------

    def on(self, event: str, listener: Listener) -> None:
        """Register a synchronous listener for an event name."""
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    def _emit(self, event: str, payload: Any) -> None:
        # Fire-and-continue: one failing listener never affects the caller
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception as e:
                logger.error(f"Listener for {event} failed: {e}", exc_info=True)

    # --------------------------------------------------------
    # GRADING EVENTS
    # --------------------------------------------------------

    async def process_grading_event(
        self,
        submission_id: str,
        grading_data: GradingData,
    ) -> UnifiedPerformanceData:
        """
        Process one graded submission.

        Raises:
            SubmissionNotFoundError: unknown submission_id
            AnalyticsBackpressureError: update queue stayed full
            RepositoryException: loading or the unified upsert failed
        """
        try:
            performance = await asyncio.to_thread(
                self._build_performance_data, submission_id, grading_data
            )

            await self._queue.submit(AnalyticsUpdate(
                type=AnalyticsEventType.ACTIVITY_GRADED,
                data=performance,
                metadata=UpdateMetadata(
                    triggered_by=grading_data.graded_by,
                    timestamp=self._clock.now(),
                ),
            ))

            await asyncio.to_thread(self._update_unified_performance_record, performance)
        except Exception as e:
            logger.error(f"Error processing grading event for {submission_id}: {e}")
            raise

        self._emit(ANALYTICS_UPDATED, performance)
        return performance

    def _build_performance_data(
        self,
        submission_id: str,
        grading_data: GradingData,
    ) -> UnifiedPerformanceData:
        with transaction_scope(self._session_factory) as session:
            try:
                submission = ActivityGradeRepository(session).get_with_activity(submission_id)
            except RecordNotFoundError as e:
                raise SubmissionNotFoundError(submission_id) from e
            activity = submission.activity

            content = submission.content or {}
            time_spent = compute_time_spent(
                submission.learning_started_at,
                submission.learning_completed_at,
                submission.time_spent_minutes,
            )
            interaction_count = int(content.get("interactionCount") or 0)
            attempt_count = submission.attempt_count or 1
            activity_level = BloomsLevel.parse(activity.blooms_level)
            submitted_at = ensure_utc(submission.submitted_at)

            return UnifiedPerformanceData(
                student_id=submission.student_id,
                activity_id=submission.activity_id,
                submission_id=submission.id,
                score=grading_data.score,
                max_score=grading_data.max_score,
                percentage=compute_percentage(grading_data.score, grading_data.max_score),
                graded_at=self._clock.now(),
                grading_type=grading_data.grading_type,
                time_spent=time_spent,
                attempt_count=attempt_count,
                interaction_count=interaction_count,
                engagement_score=calculate_engagement_score(
                    time_spent, interaction_count, attempt_count
                ),
                class_id=activity.class_id,
                subject_id=activity.subject_id,
                topic_id=activity.topic_id,
                activity_type=activity.learning_type or activity.assessment_type or "UNKNOWN",
                submitted_at=submitted_at,
                started_at=ensure_utc(submission.learning_started_at or submitted_at),
                completed_at=ensure_utc(
                    submission.learning_completed_at or submission.graded_at or submitted_at
                ),
                blooms_level=activity_level,
                blooms_level_scores=grading_data.blooms_level_scores,
                demonstrated_level=determine_demonstrated_level(
                    grading_data.blooms_level_scores,
                    activity_level,
                    self._config.thresholds.mastery_threshold,
                ),
            )

    def _update_unified_performance_record(self, data: UnifiedPerformanceData) -> None:
        values = {
            "submission_id": data.submission_id,
            "student_id": data.student_id,
            "activity_id": data.activity_id,
            "class_id": data.class_id,
            "subject_id": data.subject_id,
            "topic_id": data.topic_id,
            "score": data.score,
            "max_score": data.max_score,
            "percentage": data.percentage,
            "time_spent": data.time_spent,
            "attempt_count": data.attempt_count,
            "engagement_score": data.engagement_score,
            "blooms_level": data.blooms_level.value if data.blooms_level else None,
            "demonstrated_level": data.demonstrated_level.value if data.demonstrated_level else None,
            "blooms_level_scores": (
                {level.value: score for level, score in data.blooms_level_scores.items()}
                if data.blooms_level_scores else None
            ),
            "grading_type": data.grading_type.value,
            "activity_type": data.activity_type,
            "graded_at": data.graded_at,
            "submitted_at": data.submitted_at,
            "completed_at": data.completed_at,
        }
        with transaction_scope(self._session_factory) as session:
            PerformanceAnalyticsRepository(session).upsert(values)

    # --------------------------------------------------------
    # QUEUE CONSUMER
    # --------------------------------------------------------

    async def _process_analytics_update(self, update: AnalyticsUpdate) -> None:
        if update.type == AnalyticsEventType.ACTIVITY_GRADED:
            await self._process_activity_graded_update(update)
        elif update.type == AnalyticsEventType.BLOOMS_LEVEL_DEMONSTRATED:
            self._process_blooms_level_update(update)
        elif update.type == AnalyticsEventType.PERFORMANCE_THRESHOLD_CROSSED:
            self._process_performance_threshold_update(update)
        else:
            logger.warning(f"Unknown analytics update type: {update.type.value}")

    async def _process_activity_graded_update(self, update: AnalyticsUpdate) -> None:
        data = update.data

        await asyncio.to_thread(self._rollups.update_student_metrics, data)
        await asyncio.to_thread(self._rollups.update_class_performance, data)
        if data.demonstrated_level is not None:
            await asyncio.to_thread(self._rollups.update_blooms_progression, data)

        self._check_performance_thresholds(data)

    def _check_performance_thresholds(self, data: UnifiedPerformanceData) -> List[AnalyticsUpdate]:
        """Queue threshold alerts at the tail of the queue."""
        thresholds = self._config.thresholds
        alerts = []

        if data.percentage < thresholds.struggling_below:
            alerts.append(self._threshold_update(data, thresholds.struggling_confidence, "struggling"))
        if data.percentage > thresholds.exceptional_above:
            alerts.append(self._threshold_update(data, thresholds.exceptional_confidence, "exceptional"))

        for alert in alerts:
            self._queue.submit_nowait(alert)
        return alerts

    def _threshold_update(
        self,
        data: UnifiedPerformanceData,
        confidence: float,
        reason: str,
    ) -> AnalyticsUpdate:
        return AnalyticsUpdate(
            type=AnalyticsEventType.PERFORMANCE_THRESHOLD_CROSSED,
            data=data,
            metadata=UpdateMetadata(
                triggered_by=SYSTEM_TRIGGER,
                timestamp=self._clock.now(),
                confidence=confidence,
                reason=reason,
            ),
        )

    def _process_blooms_level_update(self, update: AnalyticsUpdate) -> None:
        logger.info(
            f"Bloom's level {update.data.demonstrated_level} demonstrated by "
            f"{update.data.student_id} in {update.data.subject_id}"
        )
        self._emit(BLOOMS_LEVEL_DEMONSTRATED, update)

    def _process_performance_threshold_update(self, update: AnalyticsUpdate) -> None:
        logger.info(
            f"Performance threshold crossed ({update.metadata.reason}, "
            f"{update.data.percentage:.1f}%) by {update.data.student_id} "
            f"on {update.data.activity_id}"
        )
        self._emit(PERFORMANCE_ALERT, update)

    # --------------------------------------------------------
    # STATS
    # --------------------------------------------------------

    def get_pipeline_stats(self) -> Dict[str, Any]:
        return {
            "queue": self._queue.get_stats(),
            "listeners": {event: len(items) for event, items in self._listeners.items()},
        }

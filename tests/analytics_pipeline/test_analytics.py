"""
Tests for the Analytics Pipeline.

============================================================
PURPOSE
============================================================
1. Metric computations (time, engagement, Bloom's level)
2. Update queue (FIFO, dead letters, backpressure)
3. Rollups and the unified record (SQLite)
4. Grading event processing end to end
5. Threshold alerts and listeners

============================================================
"""

import asyncio
import threading
import time

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from sqlalchemy import create_engine, func, select


# ============================================================
# FIXTURES
# ============================================================

GRADED_AT = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
STARTED_AT = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_performance(**overrides):
    """UnifiedPerformanceData with sensible defaults."""
    from analytics_pipeline.types import GradingType, UnifiedPerformanceData

    values = dict(
        student_id="stu-1",
        activity_id="act-1",
        submission_id="sub-1",
        score=40.0,
        max_score=50.0,
        percentage=80.0,
        graded_at=GRADED_AT,
        grading_type=GradingType.MANUAL,
        time_spent=600,
        attempt_count=1,
        interaction_count=3,
        engagement_score=85.0,
        class_id="class-1",
        subject_id="math",
        activity_type="QUIZ",
        submitted_at=STARTED_AT,
        started_at=STARTED_AT,
        completed_at=STARTED_AT + timedelta(minutes=10),
    )
    values.update(overrides)
    return UnifiedPerformanceData(**values)


def make_update(submission_id="sub-1", **overrides):
    from analytics_pipeline.types import AnalyticsEventType, AnalyticsUpdate, UpdateMetadata

    return AnalyticsUpdate(
        type=AnalyticsEventType.ACTIVITY_GRADED,
        data=make_performance(submission_id=submission_id, **overrides),
        metadata=UpdateMetadata(triggered_by="teacher-1", timestamp=GRADED_AT),
    )


@pytest.fixture
def session_factory(tmp_path):
    """
    File-backed SQLite database.

    Database work runs in worker threads, so each thread gets
    its own pooled connection.
    """
    from storage.database import create_session_factory
    from storage.models import Base

    engine = create_engine(
        f"sqlite:///{tmp_path / 'analytics.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seeded(session_factory):
    """
    One APPLY-level quiz with three submissions by the same
    student; sub-1 took 12 minutes with 7 interactions.
    """
    from storage.models import Activity, ActivityGrade

    with session_factory() as session:
        session.add(Activity(
            id="act-1",
            title="Fractions",
            class_id="class-1",
            subject_id="math",
            topic_id="fractions",
            blooms_level="APPLY",
            assessment_type="QUIZ",
        ))
        session.add(ActivityGrade(
            id="sub-1",
            activity_id="act-1",
            student_id="stu-1",
            submitted_at=STARTED_AT + timedelta(minutes=12),
            learning_started_at=STARTED_AT,
            learning_completed_at=STARTED_AT + timedelta(minutes=12),
            attempt_count=1,
            content={"interactionCount": 7},
        ))
        for n in (2, 3):
            session.add(ActivityGrade(
                id=f"sub-{n}",
                activity_id="act-1",
                student_id="stu-1",
                submitted_at=STARTED_AT,
                time_spent_minutes=40,
                attempt_count=2,
            ))
        session.commit()
    return session_factory


@pytest.fixture
def clock():
    from core.clock import MockClock

    return MockClock(GRADED_AT)


def _grading(score, max_score=100.0, scores=None):
    from analytics_pipeline.types import GradingData, GradingType

    return GradingData(
        score=score,
        max_score=max_score,
        grading_type=GradingType.MANUAL,
        graded_by="teacher-1",
        blooms_level_scores=scores,
    )


# ============================================================
# METRIC TESTS
# ============================================================

class TestMetrics:
    """Tests for pure metric computations."""

    def test_time_spent_prefers_timestamps(self):
        """The recorded span wins over stored minutes."""
        from analytics_pipeline.metrics import compute_time_spent

        assert compute_time_spent(STARTED_AT, STARTED_AT + timedelta(minutes=12), 99) == 720

    def test_time_spent_fallbacks(self):
        """Stored minutes, then zero."""
        from analytics_pipeline.metrics import compute_time_spent

        assert compute_time_spent(None, None, 12) == 720
        assert compute_time_spent(STARTED_AT, None, None) == 0

    def test_time_spent_naive_timestamps(self):
        """Naive values are treated as UTC."""
        from analytics_pipeline.metrics import compute_time_spent

        naive = datetime(2026, 3, 2, 9, 0)
        assert compute_time_spent(naive, STARTED_AT + timedelta(seconds=30), None) == 30

    def test_percentage(self):
        from analytics_pipeline.metrics import compute_percentage

        assert compute_percentage(45, 50) == 90.0
        assert compute_percentage(10, 0) == 0.0

    def test_demonstrated_level_highest_score(self):
        """The best level at or above threshold is demonstrated."""
        from analytics_pipeline.metrics import determine_demonstrated_level
        from analytics_pipeline.types import BloomsLevel

        scores = {
            BloomsLevel.REMEMBER: 95,
            BloomsLevel.APPLY: 80,
            BloomsLevel.ANALYZE: 65,
        }

        assert determine_demonstrated_level(scores, BloomsLevel.ANALYZE) == BloomsLevel.REMEMBER

        scores = {BloomsLevel.APPLY: 80, BloomsLevel.ANALYZE: 65}
        assert determine_demonstrated_level(scores, BloomsLevel.ANALYZE) == BloomsLevel.APPLY

    def test_demonstrated_level_full_profile(self):
        """APPLY at 85 beats every other qualifying level."""
        from analytics_pipeline.metrics import determine_demonstrated_level
        from analytics_pipeline.types import BloomsLevel

        scores = {
            BloomsLevel.REMEMBER: 50,
            BloomsLevel.UNDERSTAND: 72,
            BloomsLevel.APPLY: 85,
            BloomsLevel.ANALYZE: 69,
            BloomsLevel.EVALUATE: 40,
            BloomsLevel.CREATE: 30,
        }

        assert determine_demonstrated_level(scores, BloomsLevel.CREATE, 70) == BloomsLevel.APPLY

    def test_demonstrated_level_tie_goes_to_earlier_level(self):
        """Equal scores resolve in taxonomy order."""
        from analytics_pipeline.metrics import determine_demonstrated_level
        from analytics_pipeline.types import BloomsLevel

        scores = {BloomsLevel.EVALUATE: 85, BloomsLevel.UNDERSTAND: 85}

        assert determine_demonstrated_level(scores, None) == BloomsLevel.UNDERSTAND

    def test_demonstrated_level_fallback(self):
        """Without a qualifying score the activity level is used."""
        from analytics_pipeline.metrics import determine_demonstrated_level
        from analytics_pipeline.types import BloomsLevel

        assert determine_demonstrated_level({BloomsLevel.CREATE: 69.9}, BloomsLevel.APPLY) == BloomsLevel.APPLY
        assert determine_demonstrated_level(None, BloomsLevel.APPLY) == BloomsLevel.APPLY
        assert determine_demonstrated_level({}, None) is None

    def test_engagement_components(self):
        """Time, interaction and attempt bonuses add to the base."""
        from analytics_pipeline.metrics import calculate_engagement_score

        assert calculate_engagement_score(0, 0, 5) == 50.0
        assert calculate_engagement_score(720, 7, 1) == 95.0
        assert calculate_engagement_score(2400, 0, 2) == 65.0

    def test_engagement_bounded(self):
        """Scores stay within 0-100."""
        from analytics_pipeline.metrics import calculate_engagement_score

        for time_spent in (0, 299, 300, 1800, 1801, 100_000):
            for interactions in (0, 5, 6, 10, 11, 500):
                for attempts in (1, 2, 3, 4, 50):
                    score = calculate_engagement_score(time_spent, interactions, attempts)
                    assert 0.0 <= score <= 100.0

        assert calculate_engagement_score(600, 11, 1) == 100.0

    def test_running_mean(self):
        from analytics_pipeline.metrics import running_mean

        assert running_mean(80.0, 2, 90.0) == 85.0
        assert running_mean(0.0, 1, 70.0) == 70.0

        with pytest.raises(ValueError):
            running_mean(80.0, 0, 90.0)

    def test_blooms_level_parse(self):
        """Levels parse case-insensitively; unknown values are None."""
        from analytics_pipeline.types import BloomsLevel

        assert BloomsLevel.parse("apply") == BloomsLevel.APPLY
        assert BloomsLevel.parse(BloomsLevel.CREATE) == BloomsLevel.CREATE
        assert BloomsLevel.parse("synthesize") is None
        assert BloomsLevel.parse(None) is None


# ============================================================
# QUEUE TESTS
# ============================================================

class TestAnalyticsUpdateQueue:
    """Tests for the bounded update queue."""

    @pytest.mark.asyncio
    async def test_fifo_and_dead_letters(self):
        """A failing item is dead-lettered and later items still run in order."""
        from analytics_pipeline.queue import AnalyticsUpdateQueue

        handled = []

        async def handler(update):
            handled.append(update.data.submission_id)
            if update.data.submission_id == "bad":
                raise ValueError("rollup exploded")

        queue = AnalyticsUpdateQueue(handler)
        for submission_id in ("a", "bad", "c", "d"):
            await queue.submit(make_update(submission_id))

        await queue.start()
        await queue.join()
        await queue.stop()

        assert handled == ["a", "bad", "c", "d"]
        stats = queue.get_stats()
        assert stats["processed"] == 3
        assert stats["failed"] == 1
        assert stats["submitted"] == 4

        dead = queue.dead_letters
        assert len(dead) == 1
        assert dead[0].update.data.submission_id == "bad"
        assert dead[0].error == "rollup exploded"
        assert dead[0].error_type == "ValueError"

    @pytest.mark.asyncio
    async def test_fifo_under_concurrent_producers(self):
        """Concurrent submits during an active drain keep their order, each item once."""
        from analytics_pipeline.config import QueueConfig
        from analytics_pipeline.queue import AnalyticsUpdateQueue

        handled = []

        async def slow_handler(update):
            await asyncio.sleep(0.001)
            handled.append(update.data.submission_id)

        queue = AnalyticsUpdateQueue(slow_handler, config=QueueConfig(max_size=8, enqueue_timeout_seconds=5.0))
        await queue.start()

        expected = [f"sub-{n}" for n in range(50)]
        await asyncio.gather(*(queue.submit(make_update(submission_id)) for submission_id in expected))
        await queue.join()
        await queue.stop()

        assert handled == expected
        assert len(set(handled)) == len(handled)
        assert queue.get_stats()["processed"] == 50

    @pytest.mark.asyncio
    async def test_backpressure(self):
        """A full queue rejects producers after the timeout."""
        from analytics_pipeline.config import QueueConfig
        from analytics_pipeline.queue import AnalyticsUpdateQueue
        from core.exceptions import AnalyticsBackpressureError

        async def handler(update):
            pass

        queue = AnalyticsUpdateQueue(handler, QueueConfig(max_size=1, enqueue_timeout_seconds=0.05))
        await queue.submit(make_update("a"))

        with pytest.raises(AnalyticsBackpressureError) as exc_info:
            await queue.submit(make_update("b"))

        assert exc_info.value.context["capacity"] == 1
        assert exc_info.value.context["update_type"] == "activity_graded"
        assert queue.submit_nowait(make_update("c")) is False

        stats = queue.get_stats()
        assert stats["rejected"] == 1
        assert stats["dropped"] == 1
        assert stats["pending"] == 1

    @pytest.mark.asyncio
    async def test_dead_letters_bounded(self):
        """Only the most recent failures are kept."""
        from analytics_pipeline.config import QueueConfig
        from analytics_pipeline.queue import AnalyticsUpdateQueue

        async def handler(update):
            raise RuntimeError(update.data.submission_id)

        queue = AnalyticsUpdateQueue(handler, QueueConfig(dead_letter_capacity=2))
        for n in range(5):
            await queue.submit(make_update(f"s{n}"))

        await queue.start()
        await queue.stop(drain=True)

        assert [d.error for d in queue.dead_letters] == ["s3", "s4"]
        assert queue.get_stats()["failed"] == 5

    @pytest.mark.asyncio
    async def test_drain_pending(self):
        """Queued items can be discarded without handling."""
        from analytics_pipeline.queue import AnalyticsUpdateQueue

        handler = MagicMock()
        queue = AnalyticsUpdateQueue(handler)
        await queue.submit(make_update("a"))
        await queue.submit(make_update("b"))

        pending = queue.drain_pending()

        assert [u.data.submission_id for u in pending] == ["a", "b"]
        assert queue.qsize() == 0
        assert queue.get_stats()["discarded"] == 2
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_stop(self):
        """Lifecycle flags follow start and stop."""
        from analytics_pipeline.queue import AnalyticsUpdateQueue

        async def handler(update):
            pass

        queue = AnalyticsUpdateQueue(handler)
        assert not queue.is_running

        await queue.start()
        assert queue.get_stats()["running"] is True

        await queue.stop()
        assert not queue.is_running


# ============================================================
# ROLLUP TESTS
# ============================================================

class TestRollups:
    """Tests for incremental rollup maintenance."""

    def test_student_metrics_accumulate(self, session_factory):
        """Totals add up and averages follow."""
        from analytics_pipeline.rollups import RollupUpdater

        rollups = RollupUpdater(session_factory)
        rollups.update_student_metrics(make_performance(score=40.0, max_score=50.0, engagement_score=80.0))
        metrics = rollups.update_student_metrics(
            make_performance(score=45.0, max_score=50.0, engagement_score=90.0, time_spent=300)
        )

        assert metrics.activity_count == 2
        assert metrics.total_score == 85.0
        assert metrics.average_score == 42.5
        assert metrics.average_percentage == 85.0
        assert metrics.total_time_spent == 900
        assert metrics.average_engagement == 85.0

    def test_class_average_is_running_mean(self, session_factory, clock):
        """Three grades of 80, 90 and 70 average to 80."""
        from analytics_pipeline.rollups import RollupUpdater

        rollups = RollupUpdater(session_factory, clock=clock)
        for percentage in (80.0, 90.0, 70.0):
            performance = rollups.update_class_performance(make_performance(percentage=percentage))

        assert performance.activities_graded == 3
        assert performance.average_grade == pytest.approx(80.0)

    def test_blooms_progression_counts(self, session_factory):
        """Each demonstrated level is counted per student and subject."""
        from analytics_pipeline.rollups import RollupUpdater
        from analytics_pipeline.types import BloomsLevel

        rollups = RollupUpdater(session_factory)
        rollups.update_blooms_progression(make_performance(demonstrated_level=BloomsLevel.APPLY))
        rollups.update_blooms_progression(make_performance(demonstrated_level=BloomsLevel.APPLY))
        progression = rollups.update_blooms_progression(make_performance(demonstrated_level=BloomsLevel.ANALYZE))

        assert progression.level_counts == {"APPLY": 2, "ANALYZE": 1}
        assert progression.last_demonstrated_level == "ANALYZE"

    def test_blooms_progression_persisted(self, session_factory):
        """Count changes survive the transaction."""
        from analytics_pipeline.rollups import RollupUpdater
        from analytics_pipeline.types import BloomsLevel
        from storage.models import BloomsProgression

        rollups = RollupUpdater(session_factory)
        rollups.update_blooms_progression(make_performance(demonstrated_level=BloomsLevel.APPLY))
        rollups.update_blooms_progression(make_performance(demonstrated_level=BloomsLevel.APPLY))

        with session_factory() as session:
            stored = session.execute(select(BloomsProgression)).scalar_one()
            assert stored.level_counts == {"APPLY": 2}

    def test_blooms_progression_skipped_without_level(self, session_factory):
        from analytics_pipeline.rollups import RollupUpdater

        assert RollupUpdater(session_factory).update_blooms_progression(make_performance()) is None


# ============================================================
# GRADING EVENT TESTS
# ============================================================

class TestProcessGradingEvent:
    """Tests for the grading event entry point."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, seeded, clock):
        """Derived metrics, the unified record and every rollup."""
        from analytics_pipeline.service import UnifiedAnalyticsService
        from analytics_pipeline.types import BloomsLevel
        from storage.models import (
            BloomsProgression,
            ClassPerformance,
            PerformanceAnalytics,
            StudentPerformanceMetrics,
        )

        service = UnifiedAnalyticsService(seeded, clock=clock)
        await service.start()

        data = await service.process_grading_event("sub-1", _grading(
            45.0, 50.0, {BloomsLevel.APPLY: 80, BloomsLevel.ANALYZE: 75},
        ))
        await service.queue.join()
        await service.stop()

        assert data.percentage == 90.0
        assert data.time_spent == 720
        assert data.interaction_count == 7
        assert data.engagement_score == 95.0
        assert data.demonstrated_level == BloomsLevel.APPLY
        assert data.blooms_level == BloomsLevel.APPLY
        assert data.activity_type == "QUIZ"
        assert data.topic_id == "fractions"
        assert data.graded_at == GRADED_AT
        assert data.started_at == STARTED_AT

        with seeded() as session:
            record = session.execute(select(PerformanceAnalytics)).scalar_one()
            assert record.submission_id == "sub-1"
            assert record.engagement_score == 95.0
            assert record.demonstrated_level == "APPLY"
            assert record.blooms_level_scores == {"APPLY": 80, "ANALYZE": 75}

            metrics = session.execute(select(StudentPerformanceMetrics)).scalar_one()
            assert metrics.activity_count == 1
            assert metrics.average_percentage == 90.0

            performance = session.execute(select(ClassPerformance)).scalar_one()
            assert performance.activities_graded == 1
            assert performance.average_grade == 90.0

            progression = session.execute(select(BloomsProgression)).scalar_one()
            assert progression.level_counts == {"APPLY": 1}

        assert service.get_pipeline_stats()["queue"]["processed"] == 1

    @pytest.mark.asyncio
    async def test_running_averages_over_submissions(self, seeded, clock):
        """Three graded submissions of 80, 90 and 70 percent."""
        from analytics_pipeline.service import UnifiedAnalyticsService
        from storage.models import BloomsProgression, ClassPerformance, StudentPerformanceMetrics

        service = UnifiedAnalyticsService(seeded, clock=clock)
        await service.start()
        for submission_id, score in (("sub-1", 80.0), ("sub-2", 90.0), ("sub-3", 70.0)):
            await service.process_grading_event(submission_id, _grading(score))
        await service.stop(drain=True)

        with seeded() as session:
            performance = session.execute(select(ClassPerformance)).scalar_one()
            assert performance.activities_graded == 3
            assert performance.average_grade == pytest.approx(80.0)

            metrics = session.execute(select(StudentPerformanceMetrics)).scalar_one()
            assert metrics.activity_count == 3
            assert metrics.average_score == pytest.approx(80.0)
            assert metrics.average_percentage == pytest.approx(80.0)

            # No per-level scores: the activity level counts as demonstrated
            progression = session.execute(select(BloomsProgression)).scalar_one()
            assert progression.level_counts == {"APPLY": 3}

    @pytest.mark.asyncio
    async def test_submission_time_fallbacks(self, seeded, clock):
        """Stored minutes and the submission time stand in for missing timestamps."""
        from analytics_pipeline.service import UnifiedAnalyticsService

        service = UnifiedAnalyticsService(seeded, clock=clock)
        data = await service.process_grading_event("sub-2", _grading(70.0))

        assert data.time_spent == 2400
        assert data.interaction_count == 0
        assert data.attempt_count == 2
        assert data.engagement_score == 65.0
        assert data.started_at == STARTED_AT
        assert data.completed_at == STARTED_AT

    @pytest.mark.asyncio
    async def test_unified_record_upserted(self, seeded, clock):
        """Regrading updates the existing record."""
        from analytics_pipeline.service import UnifiedAnalyticsService
        from storage.models import PerformanceAnalytics

        service = UnifiedAnalyticsService(seeded, clock=clock)
        await service.process_grading_event("sub-1", _grading(60.0))
        clock.advance(hours=1)
        await service.process_grading_event("sub-1", _grading(85.0))

        with seeded() as session:
            count = session.execute(select(func.count()).select_from(PerformanceAnalytics)).scalar()
            record = session.execute(select(PerformanceAnalytics)).scalar_one()

        assert count == 1
        assert record.score == 85.0
        assert record.percentage == 85.0

    @pytest.mark.asyncio
    async def test_submission_not_found(self, seeded, clock):
        """Unknown submissions fail before anything is queued."""
        from analytics_pipeline.service import UnifiedAnalyticsService
        from core.exceptions import SubmissionNotFoundError

        service = UnifiedAnalyticsService(seeded, clock=clock)

        with pytest.raises(SubmissionNotFoundError) as exc_info:
            await service.process_grading_event("missing", _grading(50.0))

        assert exc_info.value.submission_id == "missing"
        assert service.queue.qsize() == 0
        assert service.get_pipeline_stats()["queue"]["submitted"] == 0

    @pytest.mark.asyncio
    async def test_update_queued_before_consumer_starts(self, seeded, clock):
        """Events wait in the queue until the consumer runs."""
        from analytics_pipeline.service import UnifiedAnalyticsService
        from analytics_pipeline.types import AnalyticsEventType

        service = UnifiedAnalyticsService(seeded, clock=clock)
        await service.process_grading_event("sub-1", _grading(80.0))

        pending = service.queue.drain_pending()
        assert len(pending) == 1
        assert pending[0].type == AnalyticsEventType.ACTIVITY_GRADED
        assert pending[0].metadata.triggered_by == "teacher-1"

    @pytest.mark.asyncio
    async def test_database_work_leaves_loop_responsive(self, seeded, clock):
        """A slow submission lookup runs off the event loop thread."""
        from unittest.mock import patch

        from analytics_pipeline.service import UnifiedAnalyticsService
        from storage.repositories.analytics import ActivityGradeRepository

        loop_thread = threading.get_ident()
        lookup_threads = []
        original = ActivityGradeRepository.get_with_activity

        def slow_lookup(repo, submission_id):
            lookup_threads.append(threading.get_ident())
            time.sleep(0.3)
            return original(repo, submission_id)

        gaps = []

        async def ticker():
            loop = asyncio.get_running_loop()
            last = loop.time()
            while True:
                await asyncio.sleep(0.02)
                now = loop.time()
                gaps.append(now - last)
                last = now

        service = UnifiedAnalyticsService(seeded, clock=clock)
        ticks = asyncio.create_task(ticker())
        with patch.object(ActivityGradeRepository, "get_with_activity", slow_lookup):
            data = await service.process_grading_event("sub-1", _grading(80.0))
        ticks.cancel()
        with pytest.raises(asyncio.CancelledError):
            await ticks

        assert data.submission_id == "sub-1"
        assert lookup_threads and loop_thread not in lookup_threads
        assert len(gaps) >= 5
        assert max(gaps) < 0.2


# ============================================================
# THRESHOLD AND LISTENER TESTS
# ============================================================

class TestThresholdAlerts:
    """Tests for performance alerts."""

    def test_struggling(self, session_factory, clock):
        """Below 60 percent raises a struggling alert."""
        from analytics_pipeline.service import UnifiedAnalyticsService

        service = UnifiedAnalyticsService(session_factory, clock=clock)
        alerts = service._check_performance_thresholds(make_performance(percentage=55.0))

        assert len(alerts) == 1
        assert alerts[0].metadata.confidence == 0.8
        assert alerts[0].metadata.reason == "struggling"
        assert alerts[0].metadata.triggered_by == "system"
        assert service.queue.qsize() == 1

    def test_exceptional(self, session_factory, clock):
        """Above 95 percent raises an exceptional alert."""
        from analytics_pipeline.service import UnifiedAnalyticsService
        from analytics_pipeline.types import AnalyticsEventType

        service = UnifiedAnalyticsService(session_factory, clock=clock)
        alerts = service._check_performance_thresholds(make_performance(percentage=97.0))

        assert len(alerts) == 1
        assert alerts[0].type == AnalyticsEventType.PERFORMANCE_THRESHOLD_CROSSED
        assert alerts[0].metadata.confidence == 0.9
        assert alerts[0].metadata.reason == "exceptional"

    def test_in_range(self, session_factory, clock):
        """Ordinary results raise nothing, including the boundaries."""
        from analytics_pipeline.service import UnifiedAnalyticsService

        service = UnifiedAnalyticsService(session_factory, clock=clock)

        for percentage in (60.0, 75.0, 95.0):
            assert service._check_performance_thresholds(make_performance(percentage=percentage)) == []
        assert service.queue.qsize() == 0

    @pytest.mark.asyncio
    async def test_alert_reaches_listeners(self, seeded, clock):
        """Alerts are processed after the grading update that raised them."""
        from analytics_pipeline.service import PERFORMANCE_ALERT, UnifiedAnalyticsService

        received = []
        service = UnifiedAnalyticsService(seeded, clock=clock)
        service.on(PERFORMANCE_ALERT, received.append)

        await service.start()
        await service.process_grading_event("sub-1", _grading(55.0))
        await service.queue.join()
        await service.stop()

        assert len(received) == 1
        assert received[0].metadata.reason == "struggling"
        assert received[0].data.submission_id == "sub-1"
        assert service.get_pipeline_stats()["queue"]["processed"] == 2

    @pytest.mark.asyncio
    async def test_failing_listener_isolated(self, seeded, clock):
        """A broken listener does not fail the grading event."""
        from analytics_pipeline.service import ANALYTICS_UPDATED, UnifiedAnalyticsService

        calls = []

        def broken(data):
            raise RuntimeError("listener down")

        service = UnifiedAnalyticsService(seeded, clock=clock)
        service.on(ANALYTICS_UPDATED, broken)
        service.on(ANALYTICS_UPDATED, calls.append)

        data = await service.process_grading_event("sub-1", _grading(80.0))

        assert calls == [data]

        service.off(ANALYTICS_UPDATED, calls.append)
        await service.process_grading_event("sub-1", _grading(80.0))
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_rollup_failure_dead_lettered(self, seeded, clock):
        """A failing rollup is counted and the next event still runs."""
        from analytics_pipeline.service import UnifiedAnalyticsService

        service = UnifiedAnalyticsService(seeded, clock=clock)
        service._rollups.update_class_performance = MagicMock(
            side_effect=[RuntimeError("deadlock detected"), None]
        )

        await service.start()
        await service.process_grading_event("sub-1", _grading(80.0))
        await service.process_grading_event("sub-2", _grading(80.0))
        await service.queue.join()
        await service.stop()

        stats = service.get_pipeline_stats()["queue"]
        assert stats["failed"] == 1
        assert stats["processed"] == 1
        assert service.queue.dead_letters[0].error == "deadlock detected"

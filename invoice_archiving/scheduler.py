"""
Archiving Scheduler.

============================================================
PURPOSE
============================================================
Runs the invoice maintenance job on a fixed interval:

1. Ensure partitions exist for the current and next year
2. Apply lifecycle transitions (archive_old_invoices)

The job runs in a worker thread (asyncio.to_thread) because
compaction blocks for as long as it takes. Only one run is
in flight at a time. A failed run is recorded and logged;
the loop keeps going and the next run retries.

============================================================
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from core.clock import ClockFactory, ClockProtocol

from .models import ArchiveResult, ArchivingPolicy
from .service import InvoiceArchivingService


logger = logging.getLogger(__name__)


DEFAULT_INTERVAL_SECONDS = 30 * 24 * 3600  # monthly


@dataclass
class ArchivingRun:
    """Record of one maintenance run."""
    started_at: datetime
    completed_at: Optional[datetime] = None
    result: Optional[ArchiveResult] = None
    error: Optional[str] = None
    partitions_ensured: List[int] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.result is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "partitions_ensured": list(self.partitions_ensured),
        }


class ArchivingScheduler:
    """Periodic driver for InvoiceArchivingService."""

    def __init__(
        self,
        service: InvoiceArchivingService,
        policy: Optional[ArchivingPolicy] = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        history_size: int = 50,
        clock: Optional[ClockProtocol] = None,
    ):
        self._service = service
        self._policy = policy
        self._interval = interval_seconds
        self._clock = clock or ClockFactory.get_clock()
        self._history: Deque[ArchivingRun] = deque(maxlen=history_size)
        self._task: Optional[asyncio.Task] = None
        self._run_lock = asyncio.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def get_history(self) -> List[ArchivingRun]:
        return list(self._history)

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Archiving scheduler started (interval={self._interval}s)")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Archiving scheduler stopped")

    async def _loop(self) -> None:
        while self._running:
            await self.run_once()
            await asyncio.sleep(self._interval)

    # --------------------------------------------------------
    # EXECUTION
    # --------------------------------------------------------

    async def run_once(self) -> ArchivingRun:
        """Run the maintenance job now, waiting for any run in flight."""
        async with self._run_lock:
            run = ArchivingRun(started_at=self._clock.now())
            try:
                year = self._clock.now().year
                for target_year in (year, year + 1):
                    await asyncio.to_thread(self._service.create_partitions, target_year, self._policy)
                    run.partitions_ensured.append(target_year)

                run.result = await asyncio.to_thread(self._service.archive_old_invoices, self._policy)
            except Exception as e:
                run.error = str(e)
                logger.error(f"Archiving run failed: {e}", exc_info=True)
            finally:
                run.completed_at = self._clock.now()
                self._history.append(run)
            return run

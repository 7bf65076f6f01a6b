"""
Analytics Update Queue.

============================================================
PURPOSE
============================================================
In-process FIFO between grading-event producers and the
rollup consumer.

- Bounded: producers wait for capacity, then fail with
  AnalyticsBackpressureError
- Single consumer task blocking on get(), so items are
  handled one at a time in strict FIFO order
- At-most-once: a failed item is not requeued; it is counted
  and kept in a bounded dead-letter list, and the next item
  proceeds
- Not durable: items still queued when the process exits
  are lost

============================================================
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import AnalyticsBackpressureError

from .config import QueueConfig
from .types import AnalyticsUpdate, DeadLetter


logger = logging.getLogger(__name__)


UpdateHandler = Callable[[AnalyticsUpdate], Awaitable[None]]


class AnalyticsUpdateQueue:
    """Bounded single-consumer queue of AnalyticsUpdate items."""

    def __init__(
        self,
        handler: UpdateHandler,
        config: Optional[QueueConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._handler = handler
        self._config = config or QueueConfig()
        self._clock = clock or ClockFactory.get_clock()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=self._config.max_size)
        self._dead_letters: Deque[DeadLetter] = deque(maxlen=self._config.dead_letter_capacity)
        self._worker: Optional[asyncio.Task] = None
        self._running = False

        self._stats = {
            "submitted": 0,
            "processed": 0,
            "failed": 0,
            "dropped": 0,
            "rejected": 0,
            "discarded": 0,
        }

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._worker = asyncio.create_task(self._consume())
        logger.info(f"Analytics queue started (capacity={self._config.max_size})")

    async def stop(self, drain: bool = True) -> None:
        """
        Stop the consumer.

        With drain=True, waits until every queued item has been
        handled; otherwise pending items are discarded.
        """
        if not self._running:
            return

        if drain:
            await self._queue.join()
        else:
            discarded = self.drain_pending()
            if discarded:
                logger.warning(f"Discarded {len(discarded)} unprocessed analytics updates")

        self._running = False
        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        logger.info("Analytics queue stopped")

    # --------------------------------------------------------
    # PRODUCERS
    # --------------------------------------------------------

    async def submit(self, update: AnalyticsUpdate) -> None:
        """
        Enqueue, waiting for capacity.

        Raises:
            AnalyticsBackpressureError: still full after the timeout
        """
        try:
            await asyncio.wait_for(
                self._queue.put(update),
                timeout=self._config.enqueue_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            self._stats["rejected"] += 1
            raise AnalyticsBackpressureError(
                capacity=self._config.max_size,
                timeout_seconds=self._config.enqueue_timeout_seconds,
                update_type=update.type.value,
            ) from e
        self._stats["submitted"] += 1

    def submit_nowait(self, update: AnalyticsUpdate) -> bool:
        """
        Enqueue without waiting.

        Used by the consumer itself, which must never wait on its
        own queue. Returns False (and counts a drop) when full.
        """
        try:
            self._queue.put_nowait(update)
        except asyncio.QueueFull:
            self._stats["dropped"] += 1
            logger.warning(f"Analytics queue full, dropped update: {update.describe()}")
            return False
        self._stats["submitted"] += 1
        return True

    # --------------------------------------------------------
    # CONSUMER
    # --------------------------------------------------------

    async def _consume(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                await self._handler(update)
                self._stats["processed"] += 1
            except Exception as e:
                self._stats["failed"] += 1
                self._dead_letters.append(DeadLetter(
                    update=update,
                    error=str(e),
                    failed_at=self._clock.now(),
                    error_type=type(e).__name__,
                ))
                logger.error(
                    f"Error processing analytics update {update.describe()}: {e}",
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    # --------------------------------------------------------
    # INSPECTION
    # --------------------------------------------------------

    async def join(self) -> None:
        """Wait until every item queued so far has been handled."""
        await self._queue.join()

    def drain_pending(self) -> List[AnalyticsUpdate]:
        """Remove and return queued items without handling them."""
        pending = []
        while True:
            try:
                pending.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
        self._stats["discarded"] += len(pending)
        return pending

    def qsize(self) -> int:
        return self._queue.qsize()

    @property
    def dead_letters(self) -> List[DeadLetter]:
        return list(self._dead_letters)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "pending": self._queue.qsize(),
            "capacity": self._config.max_size,
            "dead_letters": len(self._dead_letters),
            "running": self._running,
        }

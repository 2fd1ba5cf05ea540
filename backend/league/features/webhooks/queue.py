"""
Background webhook worker.

The webhook route records the delivery and hands it to this queue, then
answers Strava immediately. Workers drain the queue in the background.

- Bounded: submit() refuses work when the queue is full instead of
  growing without limit; the caller annotates the ledger row.
- Observable: counters for submitted/succeeded/failed/rejected.
- Shutdown drains what was already accepted (up to a timeout).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .schemas import StravaWebhookEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuedEvent:
    """Unit of background work."""

    event: StravaWebhookEvent
    ledger_id: Optional[int] = None


@dataclass
class QueueStats:
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    rejected: int = 0


class WebhookEventQueue:
    """
    Bounded asyncio queue with a fixed pool of workers.

    Usage:
        queue = WebhookEventQueue(processor.handle, maxsize=100)
        await queue.start()
        queue.submit(QueuedEvent(event, ledger_id))
        # ... on shutdown ...
        await queue.stop()
    """

    def __init__(
        self,
        handler: Callable[[QueuedEvent], Awaitable[object]],
        maxsize: int = 100,
        workers: int = 1,
    ):
        self._handler = handler
        self._queue: asyncio.Queue[QueuedEvent] = asyncio.Queue(maxsize=maxsize)
        self._worker_count = workers
        self._workers: list[asyncio.Task] = []
        self._accepting = False
        self.stats = QueueStats()

    @property
    def running(self) -> bool:
        return self._accepting

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Start worker tasks."""
        if self._workers:
            return
        self._accepting = True
        self._workers = [
            asyncio.create_task(self._run_worker(n), name=f"webhook-worker-{n}")
            for n in range(self._worker_count)
        ]
        logger.info(f"Webhook queue started ({self._worker_count} worker(s))")

    def submit(self, item: QueuedEvent) -> bool:
        """
        Enqueue without waiting.

        Returns:
            False if the queue is stopped or full
        """
        if not self._accepting:
            self.stats.rejected += 1
            logger.warning(f"Webhook queue not running, dropping {item.event.key} {item.event.object_id}")
            return False
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.stats.rejected += 1
            logger.warning(f"Webhook queue full ({self._queue.maxsize}), dropping {item.event.key} {item.event.object_id}")
            return False
        self.stats.submitted += 1
        return True

    async def join(self) -> None:
        """Wait until every accepted item has been handled."""
        await self._queue.join()

    async def stop(self, drain_timeout: float = 10.0) -> None:
        """Stop accepting, drain accepted work (bounded by drain_timeout), stop workers."""
        self._accepting = False
        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Webhook queue drain timed out with {self.depth} event(s) left")

        for task in self._workers:
            task.cancel()
        for task in self._workers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._workers = []
        logger.info("Webhook queue stopped")

    async def _run_worker(self, number: int) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._handler(item)
                self.stats.succeeded += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats.failed += 1
                logger.error(
                    f"Webhook worker {number}: {item.event.key} {item.event.object_id} failed: {e}"
                )
            finally:
                self._queue.task_done()

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "depth": self.depth,
            "capacity": self._queue.maxsize,
            "workers": len(self._workers),
            "submitted": self.stats.submitted,
            "succeeded": self.stats.succeeded,
            "failed": self.stats.failed,
            "rejected": self.stats.rejected,
        }

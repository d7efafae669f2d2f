"""
Fire-and-forget ingestion pipeline.

Handlers hand a fully formed record to `record()` and continue at once.
Background worker tasks drain an asyncio queue and persist each record
in a thread. A failed write is logged and counted, never surfaced to
the request that produced it. No ordering is kept between records.
"""

import asyncio
from typing import List, Optional

import structlog
from sqlmodel import SQLModel

from .metrics import MetricsCollector
from .store import PersistenceStore

logger = structlog.get_logger(__name__)


class IngestionPipeline:
    """
    Background writer for captured records.

    Features:
    - Non-blocking submission from the request path
    - Bounded queue; overflow drops the record with a warning
    - Graceful drain on shutdown
    """

    def __init__(
        self,
        store: PersistenceStore,
        metrics: Optional[MetricsCollector] = None,
        workers: int = 2,
        queue_max_size: int = 10000,
        shutdown_timeout_seconds: float = 5.0,
    ) -> None:
        self.store = store
        self.metrics = metrics
        self.worker_count = max(1, workers)
        self.queue_max_size = queue_max_size
        self.shutdown_timeout = shutdown_timeout_seconds
        self._queue: Optional["asyncio.Queue[SQLModel]"] = None
        self._tasks: List["asyncio.Task[None]"] = []
        self._running = False

        logger.info(
            "Ingestion pipeline initialized",
            workers=self.worker_count,
            queue_max_size=queue_max_size,
        )

    @property
    def queue(self) -> "asyncio.Queue[SQLModel]":
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.queue_max_size)
        return self._queue

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        """Start the writer tasks."""
        if self._running:
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(self._run_worker(i), name=f"ingestion-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info("Ingestion pipeline started")

    async def stop(self) -> None:
        """Drain pending records within the shutdown budget, then stop."""
        if not self._running:
            return

        try:
            await asyncio.wait_for(self.queue.join(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("Ingestion drain timed out", pending=self.pending)

        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        logger.info("Ingestion pipeline stopped", pending=self.pending)

    def record(self, entry: SQLModel) -> bool:
        """
        Submit a record for writing and return immediately.

        Never raises. Returns False when the record was dropped.
        """
        kind = type(entry).__name__
        try:
            self.queue.put_nowait(entry)
        except asyncio.QueueFull:
            logger.warning("Ingestion queue full, dropping record", kind=kind, pending=self.pending)
            if self.metrics:
                self.metrics.record_dropped(kind)
            return False
        except Exception as e:
            logger.error("Failed to enqueue record", kind=kind, error=str(e), exc_info=True)
            return False

        if self.metrics:
            self.metrics.update_queue_depth(self.pending)
        return True

    async def drain(self) -> None:
        """Wait until every queued record has been processed."""
        await self.queue.join()

    def is_healthy(self) -> bool:
        return self._running and all(not t.done() for t in self._tasks)

    async def _run_worker(self, index: int) -> None:
        """Main writer loop."""
        queue = self.queue
        while True:
            entry = await queue.get()
            try:
                await self._write(entry)
            finally:
                queue.task_done()
                if self.metrics:
                    self.metrics.update_queue_depth(queue.qsize())

    async def _write(self, entry: SQLModel) -> None:
        kind = type(entry).__name__
        try:
            await asyncio.to_thread(self.store.add, entry)
        except Exception as e:
            logger.error(
                "Failed to persist record",
                kind=kind,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            if self.metrics:
                self.metrics.record_write(kind, success=False)
            return

        logger.debug("Record persisted", kind=kind, record_id=getattr(entry, "id", None))
        if self.metrics:
            self.metrics.record_write(kind, success=True)

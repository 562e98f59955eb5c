"""
Background dispatcher for analytics writes.

The search path hands analytics jobs to this dispatcher and returns
immediately; a single consumer task persists them through the
``AnalyticsRecorder``.

Pattern:
    Producers (search requests): submit_* -> put_nowait, never await persistence
    Consumer (one task):         get -> recorder -> task_done

Delivery is at-most-once: a job is dropped (and counted) when the queue is
full or the dispatcher has been stopped. Pending jobs are drained on stop,
bounded by ``drain_timeout``.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .analytics_recorder import AnalyticsRecorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchJob:
    query: str
    filters: dict[str, Any]
    result_count: int
    user_id: str | None = None
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class PerformanceJob:
    query: str
    response_time_ms: float
    result_count: int
    from_cache: bool
    created_at: float = field(default_factory=time.time)


AnalyticsJob = SearchJob | PerformanceJob


class AnalyticsDispatcher:
    """Queue + single consumer task for fire-and-forget analytics persistence."""

    def __init__(self, recorder: AnalyticsRecorder, max_queue_size: int = 1000, drain_timeout: float = 5.0):
        """
        Args:
            recorder: Persists each job (already swallows its own errors)
            max_queue_size: Jobs buffered before new ones are dropped
            drain_timeout: Seconds ``stop()`` waits for pending jobs
        """
        self._recorder = recorder
        self._queue: asyncio.Queue[AnalyticsJob] = asyncio.Queue(maxsize=max_queue_size)
        self._drain_timeout = drain_timeout
        self._running = False
        self._closed = False
        self._consumer_task: asyncio.Task | None = None
        self._stats = {"enqueued": 0, "processed": 0, "dropped": 0, "errors": 0}

    @property
    def running(self) -> bool:
        return self._running

    # ── Producer side ───────────────────────────────────────────────────

    def submit_search(self, query: str, filters: dict[str, Any], result_count: int, user_id: str | None = None) -> bool:
        """Schedule a search record. Returns False if the job was dropped."""
        return self._submit(SearchJob(query=query, filters=filters, result_count=result_count, user_id=user_id))

    def submit_performance(self, query: str, response_time_ms: float, result_count: int, from_cache: bool) -> bool:
        """Schedule a performance record. Returns False if the job was dropped."""
        return self._submit(
            PerformanceJob(query=query, response_time_ms=response_time_ms, result_count=result_count, from_cache=from_cache)
        )

    def _submit(self, job: AnalyticsJob) -> bool:
        if self._closed:
            self._stats["dropped"] += 1
            logger.warning(f"Analytics dispatcher stopped; dropping {type(job).__name__} for '{job.query}'")
            return False

        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self._stats["dropped"] += 1
            logger.warning(f"Analytics queue full; dropping {type(job).__name__} for '{job.query}'")
            return False

        self._stats["enqueued"] += 1
        return True

    # ── Consumer side ───────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the background consumer."""
        if self._running:
            logger.warning("Analytics dispatcher already running")
            return

        self._running = True
        self._closed = False
        self._consumer_task = asyncio.create_task(self._consumer_loop())
        logger.info("Analytics dispatcher started")

    async def stop(self) -> None:
        """Stop accepting jobs, drain what is pending (bounded), then cancel the consumer."""
        self._closed = True
        if self._consumer_task is None:
            self._running = False
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=self._drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Analytics dispatcher stopped with {self._queue.qsize()} pending jobs")

        self._running = False
        self._consumer_task.cancel()
        try:
            await self._consumer_task
        except asyncio.CancelledError:
            pass
        self._consumer_task = None
        logger.info("Analytics dispatcher stopped")

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _consumer_loop(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
                self._stats["processed"] += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats["errors"] += 1
                logger.error(f"Analytics job failed: {type(job).__name__} -> {e}")
            finally:
                self._queue.task_done()

    async def _process(self, job: AnalyticsJob) -> None:
        if isinstance(job, SearchJob):
            await self._recorder.record_search(job.query, job.filters, job.result_count, job.user_id, created_at=job.created_at)
        elif isinstance(job, PerformanceJob):
            await self._recorder.record_search_performance(
                job.query, job.response_time_ms, job.result_count, job.from_cache, created_at=job.created_at
            )
        else:
            logger.warning(f"Unknown analytics job: {job!r}")

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "pending": self._queue.qsize(),
            **self._stats,
        }

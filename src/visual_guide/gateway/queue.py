"""
Admission & Serialization Queue
===============================

Single-flight FIFO in front of the external inference backend.

This module provides the AnalysisQueue class, the one serialization point
protecting the backend from concurrent overload.

Design Rules:
    - FIFO: items are served in enqueue order, no reordering
    - Single worker: submit() starts the worker only if it is not running
    - Pacing: consecutive backend calls are at least pacing_seconds apart,
      which caps the global call rate regardless of client count
    - Each call is bounded by call_timeout_seconds; on timeout the waiter is
      rejected even if the backend finishes later
    - Items are consumed exactly once and never re-queued
    - Items whose waiter already gave up are skipped without a backend call
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Optional

from visual_guide.models.analysis import AnalysisResult


logger = logging.getLogger(__name__)


class QueueTimeoutError(Exception):
    """Raised to a waiter when its backend call exceeded the ceiling."""
    pass


class QueueClosedError(Exception):
    """Raised to waiters when the queue shuts down."""
    pass


@dataclass
class QueueItem:
    """
    A pending analysis.

    The future is the waiter's completion/failure channel: it receives the
    AnalysisResult or the exception of the backend call.
    """

    image_payload: bytes
    client_id: str
    future: "asyncio.Future[AnalysisResult]"
    enqueued_at: float = field(default_factory=time.monotonic)


class AnalysisQueue:
    """
    Bounded-admission FIFO with a single paced worker.

    Attributes:
        pacing_seconds: Minimum gap between backend calls
        call_timeout_seconds: Ceiling for a single backend call
        saturation_threshold: Depth above which the queue reports saturation

    Example:
        queue = AnalysisQueue(backend.analyze, pacing_seconds=3.0)

        if not queue.is_saturated:
            result = await queue.submit(payload, client_id)
    """

    def __init__(
        self,
        analyze: Callable[[bytes], Awaitable[AnalysisResult]],
        pacing_seconds: float = 3.0,
        call_timeout_seconds: float = 30.0,
        saturation_threshold: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize analysis queue.

        Args:
            analyze: Backend coroutine function called once per item
            pacing_seconds: Minimum gap between consecutive backend calls
            call_timeout_seconds: Ceiling for one backend call
            saturation_threshold: Depth above which is_saturated is True
            clock: Time source in seconds
        """
        if saturation_threshold < 0:
            raise ValueError("saturation_threshold must be >= 0")

        self._analyze = analyze
        self.pacing_seconds = pacing_seconds
        self.call_timeout_seconds = call_timeout_seconds
        self.saturation_threshold = saturation_threshold
        self._clock = clock

        self._items: Deque[QueueItem] = deque()
        self._running: bool = False
        self._closed: bool = False
        self._worker: Optional[asyncio.Task] = None
        self._in_flight: Optional[QueueItem] = None
        self._last_call_finished: Optional[float] = None

        # Metrics
        self._total_submitted: int = 0
        self._completed: int = 0
        self._failed: int = 0
        self._timed_out: int = 0
        self._skipped: int = 0

    @property
    def depth(self) -> int:
        """Number of items waiting (excluding the one in flight)."""
        return len(self._items)

    @property
    def is_saturated(self) -> bool:
        """Whether depth exceeds the saturation threshold."""
        return len(self._items) > self.saturation_threshold

    @property
    def is_running(self) -> bool:
        """Whether the worker loop is active."""
        return self._running

    @property
    def in_flight(self) -> bool:
        """Whether a backend call is in progress."""
        return self._in_flight is not None

    def submit(self, image_payload: bytes, client_id: str) -> "asyncio.Future[AnalysisResult]":
        """
        Append an item and make sure the worker is running.

        Must be called from a running event loop.

        Args:
            image_payload: Encoded image bytes
            client_id: Requesting client

        Returns:
            Future resolved with the AnalysisResult or the failure

        Raises:
            QueueClosedError: If the queue was closed
        """
        if self._closed:
            raise QueueClosedError("Analysis queue is closed")

        loop = asyncio.get_running_loop()
        future: "asyncio.Future[AnalysisResult]" = loop.create_future()
        self._items.append(
            QueueItem(
                image_payload=image_payload,
                client_id=client_id,
                future=future,
                enqueued_at=self._clock(),
            )
        )
        self._total_submitted += 1
        self._ensure_worker()
        return future

    def _ensure_worker(self) -> None:
        if self._running:
            return
        self._running = True
        self._worker = asyncio.create_task(self._drain(), name="analysis_queue")

    async def _drain(self) -> None:
        """Worker loop: pop, pace, call backend, resolve; exit when empty."""
        logger.debug(f"Queue worker started, {len(self._items)} pending")
        try:
            while self._items:
                item = self._items.popleft()
                if item.future.done():
                    self._skipped += 1
                    continue

                try:
                    await self._pace()
                except asyncio.CancelledError:
                    self._reject(item, QueueClosedError("Analysis queue is closed"))
                    raise

                # Waiter may have given up while we were pacing
                if item.future.done():
                    self._skipped += 1
                    continue

                await self._process(item)
        finally:
            self._running = False
            self._worker = None
            logger.debug("Queue worker idle")

    async def _pace(self) -> None:
        if self._last_call_finished is None or self.pacing_seconds <= 0:
            return
        remaining = self.pacing_seconds - (self._clock() - self._last_call_finished)
        if remaining > 0:
            await asyncio.sleep(remaining)

    async def _process(self, item: QueueItem) -> None:
        self._in_flight = item
        try:
            result = await asyncio.wait_for(
                self._analyze(item.image_payload),
                timeout=self.call_timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._timed_out += 1
            logger.warning(
                f"Backend call for client {item.client_id} exceeded "
                f"{self.call_timeout_seconds:.0f}s"
            )
            self._reject(item, QueueTimeoutError("Backend call timed out"))
        except asyncio.CancelledError:
            self._reject(item, QueueClosedError("Analysis queue is closed"))
            raise
        except Exception as e:
            self._failed += 1
            logger.error(f"Backend call failed for client {item.client_id}: {e}")
            self._reject(item, e)
        else:
            self._completed += 1
            if not item.future.done():
                item.future.set_result(result)
        finally:
            self._in_flight = None
            self._last_call_finished = self._clock()

    @staticmethod
    def _reject(item: QueueItem, error: BaseException) -> None:
        if not item.future.done():
            item.future.set_exception(error)

    async def close(self) -> int:
        """
        Stop the worker and fail every pending item.

        Returns:
            Number of pending items that were failed.
        """
        self._closed = True
        worker = self._worker
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        failed = 0
        while self._items:
            item = self._items.popleft()
            if not item.future.done():
                item.future.set_exception(QueueClosedError("Analysis queue is closed"))
                failed += 1
        return failed

    def get_metrics(self) -> dict:
        """Get queue metrics for observability."""
        return {
            "depth": len(self._items),
            "saturation_threshold": self.saturation_threshold,
            "running": self._running,
            "in_flight": self._in_flight is not None,
            "total_submitted": self._total_submitted,
            "completed": self._completed,
            "failed": self._failed,
            "timed_out": self._timed_out,
            "skipped": self._skipped,
        }

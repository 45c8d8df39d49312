"""
Scheduled Tasks
===============

Cancellable delayed callbacks tied to a session generation.

A ScheduledTask runs a coroutine after a delay, at most once. Every call to
invalidate() bumps the generation; a callback scheduled under an older
generation is dropped when it wakes up, even if cancellation raced with it.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


class ScheduledTask:
    """
    Single-slot delayed task with a generation counter.

    Scheduling a new callback replaces (cancels) the pending one.

    Example:
        retry = ScheduledTask("retry")
        retry.schedule(15.0, client.analyze_and_narrate)
        ...
        retry.invalidate()  # session stopped; pending retry never fires
    """

    def __init__(self, name: str = "scheduled") -> None:
        self.name = name
        self.generation: int = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        """Whether a callback is scheduled and has not run yet."""
        return self._task is not None and not self._task.done()

    def schedule(
        self,
        delay_seconds: float,
        callback: Callable[[], Awaitable[object]],
        guard: Optional[Callable[[], bool]] = None,
    ) -> None:
        """
        Run callback after delay_seconds unless cancelled or invalidated.

        Must be called from a running event loop.

        Args:
            delay_seconds: Delay before running
            callback: Coroutine function to run
            guard: Extra condition checked right before running
        """
        self.cancel()
        generation = self.generation
        self._task = asyncio.create_task(
            self._run(delay_seconds, callback, guard, generation),
            name=self.name,
        )

    async def _run(
        self,
        delay_seconds: float,
        callback: Callable[[], Awaitable[object]],
        guard: Optional[Callable[[], bool]],
        generation: int,
    ) -> None:
        await asyncio.sleep(max(0.0, delay_seconds))

        if generation != self.generation:
            logger.debug(f"{self.name}: stale generation {generation}, dropped")
            return
        if guard is not None and not guard():
            logger.debug(f"{self.name}: guard failed, dropped")
            return

        # Clear the slot first so the callback may schedule again
        self._task = None
        await callback()

    def cancel(self) -> None:
        """Cancel the pending callback, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def invalidate(self) -> None:
        """Cancel and bump the generation."""
        self.cancel()
        self.generation += 1

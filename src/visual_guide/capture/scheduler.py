"""
Capture Scheduler
=================

Polls the camera, scores motion and decides when to ask for an analysis.

State Machine:
    IDLE -> POLLING -> TRIGGERING | WAITING

    IDLE:       stopped, or the source has not reported dimensions yet
    POLLING:    reading frames, nothing to do this tick
    TRIGGERING: an analysis was dispatched this tick
    WAITING:    motion seen but the motion interval has not elapsed

Design Rules:
    - One poll loop task per scheduler; start() is idempotent
    - Blocking camera reads run in a thread
    - The trigger timestamp is recorded before the analysis starts
    - The analysis client's in-flight latch gates every trigger
    - stop() leaves nothing behind: poll task, latch, retry, reference frame

Example:
    scheduler = CaptureScheduler(source, client)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Set, Tuple

from visual_guide.capture.differencer import FrameDifferencer
from visual_guide.capture.frame import Frame
from visual_guide.capture.policy import (
    TriggerAction,
    TriggerDecision,
    TriggerPolicy,
    TriggerReason,
    TriggerThresholds,
)
from visual_guide.capture.source import CaptureError, FrameSource

if TYPE_CHECKING:
    from visual_guide.client.analysis_client import AnalysisClient


logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Capture scheduler states."""

    IDLE = "idle"
    POLLING = "polling"
    TRIGGERING = "triggering"
    WAITING = "waiting"


class CaptureScheduler:
    """
    Motion-gated analysis scheduler.

    Attributes:
        poll_interval_seconds: Delay between ticks
        motion_size: (width, height) used for motion scoring
    """

    def __init__(
        self,
        source: FrameSource,
        client: "AnalysisClient",
        differencer: Optional[FrameDifferencer] = None,
        policy: Optional[TriggerPolicy] = None,
        poll_interval_seconds: float = 0.5,
        motion_size: Tuple[int, int] = (160, 120),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize capture scheduler.

        Args:
            source: Camera
            client: Analysis client that owns the in-flight latch
            differencer: Motion detector (defaults if None)
            policy: Trigger policy (defaults if None)
            poll_interval_seconds: Delay between ticks
            motion_size: Resolution used for motion scoring
            clock: Time source in seconds
        """
        self.source = source
        self.client = client
        self.differencer = differencer or FrameDifferencer()
        self.policy = policy or TriggerPolicy()
        self.poll_interval_seconds = poll_interval_seconds
        self.motion_size = motion_size
        self._clock = clock

        self._state = SchedulerState.IDLE
        self._poll_task: Optional[asyncio.Task] = None
        self._analysis_tasks: Set[asyncio.Task] = set()
        self._last_trigger_at: Optional[float] = None
        self._last_replay_at: Optional[float] = None

        # Metrics
        self._tick_count: int = 0
        self._trigger_count: int = 0
        self._replay_count: int = 0

    @classmethod
    def from_settings(cls, settings, source: FrameSource, client: "AnalysisClient") -> "CaptureScheduler":
        """Build a scheduler from the capture section of Settings."""
        capture = settings.capture
        return cls(
            source=source,
            client=client,
            differencer=FrameDifferencer(
                threshold=capture.motion_threshold,
                sample_step=capture.sample_step,
            ),
            policy=TriggerPolicy(TriggerThresholds.from_config(capture)),
            poll_interval_seconds=capture.poll_interval_seconds,
            motion_size=(capture.motion_width, capture.motion_height),
        )

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def last_trigger_at(self) -> Optional[float]:
        return self._last_trigger_at

    async def start(self) -> None:
        """Start the poll loop (no-op if already running)."""
        if self.is_running:
            return
        self._poll_task = asyncio.create_task(self._poll_loop(), name="capture_poll")
        logger.info(f"Capture scheduler started, polling every {self.poll_interval_seconds}s")

    async def stop(self) -> None:
        """Stop polling and drop all session state."""
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        # Analyses from this session must not narrate or retry after stop
        analyses = list(self._analysis_tasks)
        for analysis in analyses:
            analysis.cancel()
        if analyses:
            await asyncio.gather(*analyses, return_exceptions=True)
        self._analysis_tasks.clear()

        self.client.reset()
        self.differencer.reset()
        self._last_trigger_at = None
        self._last_replay_at = None
        self._state = SchedulerState.IDLE
        logger.info("Capture scheduler stopped")

    async def wait(self) -> None:
        """
        Block until the poll loop exits.

        Raises:
            CaptureError: If the camera failed while polling
        """
        if self._poll_task is not None:
            await self._poll_task

    def trigger(self) -> bool:
        """
        Request an immediate analysis of the current frame.

        Returns:
            False if an analysis is already in flight.
        """
        return self._dispatch(None, self._clock(), TriggerReason.MOTION)

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.tick()
            except CaptureError:
                self._state = SchedulerState.IDLE
                raise
            except Exception as e:
                logger.error(f"Capture tick failed: {e}")
            await asyncio.sleep(self.poll_interval_seconds)

    async def tick(self, now: Optional[float] = None) -> Optional[TriggerDecision]:
        """
        Run one poll iteration.

        Args:
            now: Current time (defaults to the scheduler clock)

        Returns:
            The policy decision, or None if no frame was available
        """
        if now is None:
            now = self._clock()
        self._tick_count += 1

        if not self.source.is_ready():
            self._state = SchedulerState.IDLE
            return None

        frame = await asyncio.to_thread(self.source.read_frame)
        if frame is None or frame.is_empty:
            self._state = SchedulerState.POLLING
            return None

        width, height = self.motion_size
        motion = self.differencer.compare(frame.resized(width, height))

        decision = self.policy.evaluate(
            motion,
            now=now,
            last_trigger_at=self._last_trigger_at,
            in_flight=self.client.in_flight,
            last_replay_at=self._last_replay_at,
        )

        if decision.action is TriggerAction.TRIGGER:
            self._dispatch(frame, now, decision.reason)
        elif decision.action is TriggerAction.REPLAY:
            self._state = SchedulerState.WAITING
            if self.client.replay_last():
                self._replay_count += 1
            self._last_replay_at = now
        elif decision.reason is TriggerReason.COOLDOWN:
            self._state = SchedulerState.WAITING
        else:
            self._state = SchedulerState.POLLING

        return decision

    def _dispatch(self, frame: Optional[Frame], now: float, reason: TriggerReason) -> bool:
        task = self.client.submit(frame)
        if task is None:
            logger.info(f"Analysis not started ({reason.value}), one is already in flight")
            return False

        self._state = SchedulerState.TRIGGERING
        self._last_trigger_at = now
        self._trigger_count += 1
        logger.info(f"Analysis triggered ({reason.value})")

        self._analysis_tasks.add(task)
        task.add_done_callback(self._analysis_tasks.discard)
        return True

    def get_metrics(self) -> dict:
        """Get scheduler metrics for observability."""
        return {
            "state": self._state.value,
            "ticks": self._tick_count,
            "triggers": self._trigger_count,
            "replays": self._replay_count,
            "last_trigger_at": self._last_trigger_at,
        }

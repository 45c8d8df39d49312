"""
Analysis Client
===============

Client-side orchestration of a single analysis: encode, submit, interpret
the envelope and narrate.

Envelope Handling:
    plain / fromCache  -> store as last known good, narrate guidance
    rateLimited        -> narrate last known good + wait, retry once later
    queueSaturated     -> same as rateLimited
    systemError        -> narrate the gateway's safe-mode message
    transport failure  -> re-issue last known good with decaying confidence,
                          or a conservative result if there is none

Design Rules:
    - Single flight: a call made while another is running returns None
      immediately and has no side effects
    - analyze_and_narrate() never raises for analysis failures
    - Only plain successes replace the last known good result
    - After reset(), an analysis started earlier has no side effects
    - Consecutive-failure confidence is non-increasing and floored
"""

import asyncio
import logging
from typing import Optional

from visual_guide.capture.frame import Frame
from visual_guide.capture.source import FrameSource
from visual_guide.capture.timer import ScheduledTask
from visual_guide.client.guidance import (
    conservative_result,
    degraded_message,
    guidance_for,
    priority_for,
    replay_message,
    throttled_message,
)
from visual_guide.client.narration import LoggingNarrator, NarrationPriority, Narrator
from visual_guide.client.transport import GatewayError, GatewayTransport
from visual_guide.models.analysis import AnalysisResult, ResultEnvelope


logger = logging.getLogger(__name__)


# Confidence given to a throttled re-issue of the last known good result
THROTTLED_CONFIDENCE_DECREMENT = 0.1
THROTTLED_CONFIDENCE_FLOOR = 0.6


class AnalysisClient:
    """
    Single-flight analysis client with last-known-good fallback.

    Attributes:
        source: Camera the frames come from
        transport: Gateway transport
        narrator: Narration sink
        max_dimension: Largest side of the uploaded image
        jpeg_quality: JPEG quality of the uploaded image (0-100)
    """

    def __init__(
        self,
        source: FrameSource,
        transport: GatewayTransport,
        narrator: Optional[Narrator] = None,
        max_dimension: int = 320,
        jpeg_quality: int = 30,
        failure_confidence_decrement: float = 0.2,
        failure_confidence_floor: float = 0.5,
        default_retry_seconds: float = 15.0,
    ) -> None:
        """
        Initialize analysis client.

        Args:
            source: Camera the frames come from
            transport: Gateway transport
            narrator: Narration sink (LoggingNarrator if None)
            max_dimension: Largest side of the uploaded image
            jpeg_quality: JPEG quality of the uploaded image
            failure_confidence_decrement: Confidence lost per consecutive failure
            failure_confidence_floor: Lowest confidence of a re-issued result
            default_retry_seconds: Retry delay when the gateway gives no waitTime
        """
        self.source = source
        self.transport = transport
        self.narrator = narrator or LoggingNarrator()
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self.failure_confidence_decrement = failure_confidence_decrement
        self.failure_confidence_floor = failure_confidence_floor
        self.default_retry_seconds = default_retry_seconds

        self._in_flight: bool = False
        self._last_good: Optional[AnalysisResult] = None
        self._consecutive_failures: int = 0
        self._retry = ScheduledTask("analysis_retry")

        # Metrics
        self._request_count: int = 0
        self._success_count: int = 0
        self._throttled_count: int = 0
        self._system_error_count: int = 0
        self._failure_count: int = 0
        self._rejected_count: int = 0
        self._stale_count: int = 0

    @classmethod
    def from_settings(
        cls,
        settings,
        source: FrameSource,
        transport: Optional[GatewayTransport] = None,
        narrator: Optional[Narrator] = None,
    ) -> "AnalysisClient":
        """Build a client from the client section of Settings."""
        cfg = settings.client
        transport = transport or GatewayTransport(
            cfg.gateway_url,
            timeout=cfg.request_timeout_seconds,
        )
        return cls(
            source=source,
            transport=transport,
            narrator=narrator,
            max_dimension=cfg.max_dimension,
            jpeg_quality=cfg.jpeg_quality,
            failure_confidence_decrement=cfg.failure_confidence_decrement,
            failure_confidence_floor=cfg.failure_confidence_floor,
            default_retry_seconds=cfg.default_retry_seconds,
        )

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def last_good(self) -> Optional[AnalysisResult]:
        return self._last_good

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def retry_pending(self) -> bool:
        return self._retry.pending

    async def analyze_and_narrate(self, frame: Optional[Frame] = None) -> Optional[AnalysisResult]:
        """
        Analyze one frame and narrate the outcome.

        Args:
            frame: Full-resolution frame (read from the source if None)

        Returns:
            The narrated result, or None if rejected, stale or no frame was available
        """
        if not self._acquire():
            return None
        return await self._analyze(frame, self._retry.generation)

    def submit(self, frame: Optional[Frame] = None) -> Optional[asyncio.Task]:
        """
        Start an analysis in the background.

        The latch is taken before this returns, so a second submit in the
        same loop iteration is rejected.

        Returns:
            The analysis task, or None if one is already in flight
        """
        if not self._acquire():
            return None
        return asyncio.create_task(
            self._analyze(frame, self._retry.generation),
            name="analysis",
        )

    def _acquire(self) -> bool:
        if self._in_flight:
            self._rejected_count += 1
            logger.debug("Analysis already in flight, request rejected")
            return False
        self._in_flight = True
        return True

    async def _analyze(self, frame: Optional[Frame], generation: int) -> Optional[AnalysisResult]:
        try:
            if frame is None:
                frame = await asyncio.to_thread(self.source.read_frame)
            if frame is None or frame.is_empty:
                logger.warning("No frame available for analysis")
                return None

            self._request_count += 1
            try:
                payload = self._encode(frame)
                envelope = await self.transport.analyze(payload)
            except (GatewayError, ValueError) as e:
                if self._is_stale(generation):
                    return None
                return self._handle_failure(e)

            if self._is_stale(generation):
                return None
            return self._handle_envelope(envelope)
        finally:
            # A reset session owns the latch now
            if generation == self._retry.generation:
                self._in_flight = False

    def _is_stale(self, generation: int) -> bool:
        if generation != self._retry.generation:
            self._stale_count += 1
            logger.info("Dropping analysis result from a stopped session")
            return True
        return False

    def _encode(self, frame: Frame) -> bytes:
        return frame.fit_within(self.max_dimension).encode_jpeg(self.jpeg_quality)

    def _handle_envelope(self, envelope: ResultEnvelope) -> AnalysisResult:
        if envelope.is_throttled:
            return self._handle_throttled(envelope)

        if envelope.system_error:
            self._system_error_count += 1
            logger.warning(f"Gateway reported a system error: {envelope.message}")
            self.narrator.speak(envelope.message, priority_for(envelope.severity))
            return envelope.result

        result = envelope.result
        self._last_good = result
        self._consecutive_failures = 0
        self._success_count += 1
        if envelope.from_cache:
            logger.debug("Result served from gateway cache")

        self.narrator.speak(guidance_for(result), priority_for(result.severity))
        return result

    def _handle_throttled(self, envelope: ResultEnvelope) -> AnalysisResult:
        self._throttled_count += 1
        wait_seconds = envelope.wait_seconds or self.default_retry_seconds
        logger.info(
            f"Gateway throttled request "
            f"({'rate limited' if envelope.rate_limited else 'queue saturated'}), "
            f"retrying in {wait_seconds:.0f}s"
        )

        text = throttled_message(self._last_good, wait_seconds)
        self.narrator.speak(text, NarrationPriority.MEDIUM)
        self._schedule_retry(wait_seconds)

        if self._last_good is None:
            return envelope.result
        return self._last_good.model_copy(update={
            "message": text,
            "confidence": max(
                THROTTLED_CONFIDENCE_FLOOR,
                self._last_good.confidence - THROTTLED_CONFIDENCE_DECREMENT,
            ),
        })

    def _handle_failure(self, error: Exception) -> AnalysisResult:
        self._failure_count += 1
        self._consecutive_failures += 1
        logger.warning(
            f"Analysis failed ({self._consecutive_failures} in a row): {error}"
        )

        if self._last_good is None:
            result = conservative_result()
            self.narrator.speak(result.message, NarrationPriority.MEDIUM)
            return result

        confidence = max(
            self.failure_confidence_floor,
            self._last_good.confidence
            - self.failure_confidence_decrement * self._consecutive_failures,
        )
        result = self._last_good.model_copy(update={
            "message": degraded_message(self._last_good),
            "confidence": confidence,
        })
        self.narrator.speak(result.message, NarrationPriority.LOW)
        return result

    def _schedule_retry(self, wait_seconds: float) -> None:
        self._retry.schedule(
            wait_seconds,
            self.analyze_and_narrate,
            guard=lambda: self.source.is_active,
        )

    def replay_last(self) -> bool:
        """
        Narrate the last known good result again at low priority.

        Returns:
            False if there is nothing to replay.
        """
        if self._last_good is None:
            return False
        self.narrator.speak(replay_message(self._last_good), NarrationPriority.LOW)
        return True

    def reset(self) -> None:
        """Clear the latch, cancel any pending retry and forget failures."""
        self._in_flight = False
        self._retry.invalidate()
        self._consecutive_failures = 0

    def get_metrics(self) -> dict:
        """Get client metrics for observability."""
        return {
            "requests": self._request_count,
            "succeeded": self._success_count,
            "throttled": self._throttled_count,
            "system_errors": self._system_error_count,
            "failures": self._failure_count,
            "rejected_in_flight": self._rejected_count,
            "stale_dropped": self._stale_count,
            "consecutive_failures": self._consecutive_failures,
            "has_last_good": self._last_good is not None,
            "retry_pending": self._retry.pending,
        }

"""
Analysis Gateway
================

Composition root that runs every analysis request through the cache, the
rate limiter and the admission queue.

Request Pipeline:
    fingerprint -> cache sweep (probabilistic)
               -> cache lookup         (hit: fromCache)
               -> rate-limit check     (deny: rateLimited + waitTime)
               -> saturation check     (full: fallback + queueSaturated)
               -> enqueue and await    (timeout/failure: fallback + systemError)
               -> store in cache, return

Design Rules:
    - analyze() never raises: every path returns a narration-ready envelope
    - Admission rejections are expected and logged at INFO
    - Backend failures are logged and replaced by a safe fallback
    - All shared state (limiter, cache, queue) is owned by this instance
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from visual_guide.gateway.backend import (
    BackendError,
    InferenceBackend,
    MockInferenceBackend,
    OpenAIVisionBackend,
)
from visual_guide.gateway.cache import ResultCache, fingerprint
from visual_guide.gateway.fallback import (
    rate_limited_envelope,
    saturated_envelope,
    system_error_envelope,
)
from visual_guide.gateway.queue import AnalysisQueue, QueueClosedError, QueueTimeoutError
from visual_guide.gateway.rate_limiter import RateLimiter
from visual_guide.models.analysis import ResultEnvelope


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisRequest:
    """A single admitted-or-not analysis request."""

    image_fingerprint: str
    image_payload: bytes
    client_id: str
    submitted_at: float

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        return (
            f"AnalysisRequest(client_id={self.client_id!r}, "
            f"bytes={len(self.image_payload)}, "
            f"submitted_at={self.submitted_at:.3f})"
        )


def _looks_upstream_busy(error: BaseException) -> bool:
    text = str(error)
    return "429" in text or "rate_limit" in text


def create_backend(backend_config) -> InferenceBackend:
    """
    Create inference backend based on config.

    Fails fast if the openai backend is requested without an API key.
    """
    kind = backend_config.kind

    if kind == "mock":
        logger.info("Using MockInferenceBackend")
        return MockInferenceBackend()

    elif kind == "openai":
        logger.info(f"Using OpenAIVisionBackend: model={backend_config.model}")
        return OpenAIVisionBackend.from_env(
            api_key_env=backend_config.api_key_env,
            api_url=backend_config.api_url,
            model=backend_config.model,
            max_tokens=backend_config.max_tokens,
            temperature=backend_config.temperature,
            timeout=backend_config.http_timeout_seconds,
        )

    else:
        raise ValueError(f"Unknown inference backend: {kind}")


class AnalysisGateway:
    """
    Admits, caches, rate-limits and serializes analysis requests.

    Attributes:
        rate_limiter: Per-client admission limits
        cache: Result cache keyed by image fingerprint
        queue: Single-flight queue in front of the backend
        request_timeout_seconds: Ceiling for queue wait plus backend call
    """

    def __init__(
        self,
        backend: InferenceBackend,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[ResultCache] = None,
        queue: Optional[AnalysisQueue] = None,
        request_timeout_seconds: float = 30.0,
        fingerprint_prefix_bytes: int = 100,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            backend: Vision inference backend
            rate_limiter: Rate limiter (default limits if None)
            cache: Result cache (default sizing if None)
            queue: Admission queue (built around backend.analyze if None)
            request_timeout_seconds: Ceiling for awaiting a queued analysis
            fingerprint_prefix_bytes: Payload prefix used for cache keys
            clock: Time source in seconds
            rng: Random source for fallback selection
        """
        self.backend = backend
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter(clock=clock)
        # ResultCache defines __len__, so an empty cache is falsy
        self.cache = cache if cache is not None else ResultCache(clock=clock)
        self.queue = queue if queue is not None else AnalysisQueue(backend.analyze, clock=clock)
        self.request_timeout_seconds = request_timeout_seconds
        self.fingerprint_prefix_bytes = fingerprint_prefix_bytes
        self._clock = clock
        self._rng = rng or random.Random()

        # Counters
        self._request_count: int = 0
        self._cache_hit_count: int = 0
        self._rate_limited_count: int = 0
        self._saturated_count: int = 0
        self._success_count: int = 0
        self._system_error_count: int = 0

        logger.info(
            f"AnalysisGateway initialized: "
            f"limit={self.rate_limiter.max_per_window}/{self.rate_limiter.window_seconds:.0f}s, "
            f"spacing={self.rate_limiter.min_spacing_seconds:.0f}s, "
            f"cache={self.cache.max_entries}x{self.cache.ttl_seconds:.0f}s, "
            f"saturation>{self.queue.saturation_threshold}"
        )

    @classmethod
    def from_settings(
        cls,
        settings,
        backend: Optional[InferenceBackend] = None,
    ) -> "AnalysisGateway":
        """Build a gateway and its components from Settings."""
        backend = backend or create_backend(settings.backend)
        return cls(
            backend=backend,
            rate_limiter=RateLimiter(
                max_per_window=settings.rate_limit.max_per_window,
                window_seconds=settings.rate_limit.window_seconds,
                min_spacing_seconds=settings.rate_limit.min_spacing_seconds,
            ),
            cache=ResultCache(
                ttl_seconds=settings.cache.ttl_seconds,
                max_entries=settings.cache.max_entries,
                sweep_probability=settings.cache.sweep_probability,
            ),
            queue=AnalysisQueue(
                backend.analyze,
                pacing_seconds=settings.queue.pacing_seconds,
                call_timeout_seconds=settings.queue.call_timeout_seconds,
                saturation_threshold=settings.queue.saturation_threshold,
            ),
            request_timeout_seconds=settings.queue.request_timeout_seconds,
            fingerprint_prefix_bytes=settings.cache.fingerprint_prefix_bytes,
        )

    async def analyze(self, image_payload: bytes, client_id: str) -> ResultEnvelope:
        """
        Run one request through the gateway pipeline.

        Args:
            image_payload: Encoded image bytes
            client_id: Requesting client identifier

        Returns:
            ResultEnvelope; never raises for analysis failures
        """
        self._request_count += 1
        request = AnalysisRequest(
            image_fingerprint=fingerprint(image_payload, self.fingerprint_prefix_bytes),
            image_payload=image_payload,
            client_id=client_id,
            submitted_at=self._clock(),
        )

        try:
            return await self._handle(request)
        except Exception as e:
            self._system_error_count += 1
            logger.error(f"Unexpected gateway error for {request}: {e}")
            return system_error_envelope(self._rng, upstream_busy=_looks_upstream_busy(e))

    async def _handle(self, request: AnalysisRequest) -> ResultEnvelope:
        self.cache.maybe_sweep()

        cached = self.cache.get(request.image_fingerprint)
        if cached is not None:
            self._cache_hit_count += 1
            logger.debug(f"Cache hit for client {request.client_id}")
            return ResultEnvelope.wrap(cached, from_cache=True)

        decision = self.rate_limiter.check(request.client_id)
        if not decision.allowed:
            self._rate_limited_count += 1
            return rate_limited_envelope(decision.wait_seconds or 1)

        if self.queue.is_saturated:
            self._saturated_count += 1
            logger.info(
                f"Queue saturated (depth={self.queue.depth}), "
                f"fallback for client {request.client_id}"
            )
            return saturated_envelope(self._rng)

        future = self.queue.submit(request.image_payload, request.client_id)
        try:
            result = await asyncio.wait_for(future, timeout=self.request_timeout_seconds)
        except asyncio.TimeoutError:
            self._system_error_count += 1
            logger.warning(
                f"Analysis for client {request.client_id} timed out after "
                f"{self.request_timeout_seconds:.0f}s"
            )
            return system_error_envelope(self._rng)
        except (BackendError, QueueTimeoutError, QueueClosedError) as e:
            self._system_error_count += 1
            logger.warning(f"Analysis failed for client {request.client_id}: {e}")
            return system_error_envelope(self._rng, upstream_busy=_looks_upstream_busy(e))

        self.cache.put(request.image_fingerprint, result)
        self._success_count += 1
        logger.info(
            f"Analysis complete for client {request.client_id}: "
            f"{result.kind.value}/{result.severity.value}"
        )
        return ResultEnvelope.wrap(result)

    async def close(self) -> None:
        """Stop the queue worker and fail pending requests."""
        failed = await self.queue.close()
        if failed:
            logger.info(f"Gateway closed, {failed} pending requests failed")

    def get_metrics(self) -> dict:
        """Get gateway metrics for observability."""
        return {
            "requests": self._request_count,
            "cache_hits": self._cache_hit_count,
            "rate_limited": self._rate_limited_count,
            "queue_saturated": self._saturated_count,
            "succeeded": self._success_count,
            "system_errors": self._system_error_count,
            "rate_limiter": self.rate_limiter.get_metrics(),
            "cache": self.cache.get_metrics(),
            "queue": self.queue.get_metrics(),
        }

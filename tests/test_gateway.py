"""
Analysis Gateway Tests
======================

Pipeline ordering: cache, rate limit, saturation, queue, fallback.
"""

import asyncio
import random

import pytest

from visual_guide.config import Settings
from visual_guide.gateway.backend import BackendError
from visual_guide.gateway.cache import ResultCache
from visual_guide.gateway.fallback import BUSY_MESSAGE, FALLBACK_RESULTS
from visual_guide.gateway.queue import AnalysisQueue
from visual_guide.gateway.rate_limiter import RateLimiter
from visual_guide.gateway.service import AnalysisGateway

from conftest import FakeBackend, FakeClock, sample_result


FALLBACK_MESSAGES = {r.message for r in FALLBACK_RESULTS}


def build_gateway(backend, clock=None, saturation_threshold=5, request_timeout_seconds=30.0, **limits):
    clock = clock or FakeClock()
    return AnalysisGateway(
        backend=backend,
        rate_limiter=RateLimiter(clock=clock, **limits),
        cache=ResultCache(clock=clock, sweep_probability=0.0),
        queue=AnalysisQueue(backend.analyze, pacing_seconds=0, saturation_threshold=saturation_threshold),
        request_timeout_seconds=request_timeout_seconds,
        clock=clock,
        rng=random.Random(7),
    )


class TestAnalysisGateway:
    """Test AnalysisGateway.analyze()."""

    def test_fresh_analysis_is_cached(self, result):
        backend = FakeBackend([result])
        gateway = build_gateway(backend)

        envelope = asyncio.run(gateway.analyze(b"frame-1", "client"))

        assert envelope.result == result
        assert not envelope.from_cache
        assert len(gateway.cache) == 1
        assert backend.call_count == 1

    def test_cache_hit_skips_rate_limit_and_backend(self, result):
        clock = FakeClock()
        backend = FakeBackend([result])
        gateway = build_gateway(backend, clock=clock)

        async def scenario():
            first = await gateway.analyze(b"frame-1", "client")
            clock.advance(1)
            second = await gateway.analyze(b"frame-1", "client")
            clock.advance(1)
            third = await gateway.analyze(b"frame-1", "client")
            return first, second, third

        first, second, third = asyncio.run(scenario())

        assert second.from_cache and third.from_cache
        assert not second.rate_limited
        assert first.result == second.result == third.result
        assert backend.call_count == 1

    def test_rate_limited_envelope(self, result):
        clock = FakeClock()
        backend = FakeBackend([result])
        gateway = build_gateway(backend, clock=clock)

        async def scenario():
            await gateway.analyze(b"frame-1", "client")
            clock.advance(1)
            return await gateway.analyze(b"frame-2", "client")

        envelope = asyncio.run(scenario())

        assert envelope.rate_limited
        assert envelope.wait_seconds == 14
        assert "14 seconds" in envelope.message
        assert backend.call_count == 1

    def test_saturated_queue_never_calls_backend(self):
        backend = FakeBackend()
        gateway = build_gateway(backend, saturation_threshold=1)

        async def scenario():
            # Fill the queue before the worker gets a chance to run
            pending = [gateway.queue.submit(bytes([i]) * 10, f"other-{i}") for i in range(2)]
            envelope = await gateway.analyze(b"rejected-frame", "client")
            calls_at_rejection = backend.call_count
            await asyncio.gather(*pending)
            return envelope, calls_at_rejection

        envelope, calls_at_rejection = asyncio.run(scenario())

        assert envelope.queue_saturated
        assert envelope.message in FALLBACK_MESSAGES
        assert calls_at_rejection == 0
        assert b"rejected-frame" not in backend.payloads
        assert len(gateway.cache) == 0

    def test_backend_failure_returns_system_error(self):
        backend = FakeBackend([BackendError("Backend API error: 500")])
        gateway = build_gateway(backend)

        envelope = asyncio.run(gateway.analyze(b"frame-1", "client"))

        assert envelope.system_error
        assert envelope.message in FALLBACK_MESSAGES
        assert len(gateway.cache) == 0
        assert gateway.get_metrics()["system_errors"] == 1

    def test_upstream_rate_limit_uses_busy_message(self):
        backend = FakeBackend([BackendError("Backend API error: 429")])
        gateway = build_gateway(backend)

        envelope = asyncio.run(gateway.analyze(b"frame-1", "client"))

        assert envelope.system_error
        assert envelope.message == BUSY_MESSAGE

    def test_request_timeout_returns_system_error(self):
        backend = FakeBackend(delay=1.0)
        gateway = build_gateway(backend, request_timeout_seconds=0.05)

        async def scenario():
            envelope = await gateway.analyze(b"frame-1", "client")
            await gateway.close()
            return envelope

        envelope = asyncio.run(scenario())
        assert envelope.system_error

    def test_unexpected_error_still_returns_envelope(self):
        backend = FakeBackend([RuntimeError("boom")])
        gateway = build_gateway(backend)

        envelope = asyncio.run(gateway.analyze(b"frame-1", "client"))

        assert envelope.system_error

    def test_metrics_shape(self, result):
        gateway = build_gateway(FakeBackend([result]))
        asyncio.run(gateway.analyze(b"frame-1", "client"))

        metrics = gateway.get_metrics()
        assert metrics["requests"] == 1
        assert metrics["succeeded"] == 1
        assert set(metrics) >= {"rate_limiter", "cache", "queue"}

    def test_from_settings_uses_configured_limits(self):
        settings = Settings.model_validate({
            "rate_limit": {"max_per_window": 5, "min_spacing_seconds": 2},
            "cache": {"max_entries": 7},
            "queue": {"saturation_threshold": 9},
        })
        gateway = AnalysisGateway.from_settings(settings, backend=FakeBackend())

        assert gateway.rate_limiter.max_per_window == 5
        assert gateway.rate_limiter.min_spacing_seconds == 2
        assert gateway.cache.max_entries == 7
        assert gateway.queue.saturation_threshold == 9

    def test_injected_empty_components_are_kept(self):
        clock = FakeClock()
        backend = FakeBackend()
        cache = ResultCache(ttl_seconds=10, max_entries=3, clock=clock)
        limiter = RateLimiter(max_per_window=2, clock=clock)
        queue = AnalysisQueue(backend.analyze, saturation_threshold=1)

        gateway = AnalysisGateway(backend=backend, rate_limiter=limiter, cache=cache, queue=queue, clock=clock)

        assert len(cache) == 0
        assert gateway.cache is cache
        assert gateway.rate_limiter is limiter
        assert gateway.queue is queue

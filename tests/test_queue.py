"""
Admission Queue Tests
=====================

FIFO order, single worker, pacing, timeouts and shutdown.
"""

import asyncio
import time

import pytest

from visual_guide.gateway.backend import BackendError
from visual_guide.gateway.queue import AnalysisQueue, QueueClosedError, QueueTimeoutError

from conftest import FakeBackend, sample_result


class TestAnalysisQueue:
    """Test AnalysisQueue behavior."""

    def test_completes_in_fifo_order(self):
        backend = FakeBackend()
        completed = []

        async def scenario():
            queue = AnalysisQueue(backend.analyze, pacing_seconds=0)

            async def wait_for(name, future):
                await future
                completed.append(name)

            futures = {name: queue.submit(name.encode(), "client") for name in ("A", "B", "C")}
            await asyncio.gather(*(wait_for(name, f) for name, f in futures.items()))

        asyncio.run(scenario())

        assert backend.payloads == [b"A", b"B", b"C"]
        assert completed == ["A", "B", "C"]

    def test_single_worker_serializes_calls(self):
        active = 0
        peak = 0

        async def analyze(payload):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return sample_result()

        async def scenario():
            queue = AnalysisQueue(analyze, pacing_seconds=0)
            futures = [queue.submit(bytes([i]), "client") for i in range(4)]
            assert queue.is_running
            await asyncio.gather(*futures)
            await asyncio.sleep(0)
            return queue

        queue = asyncio.run(scenario())
        assert peak == 1
        assert not queue.is_running
        assert queue.get_metrics()["completed"] == 4

    def test_pacing_between_calls(self):
        started = []

        async def analyze(payload):
            started.append(time.monotonic())
            return sample_result()

        async def scenario():
            queue = AnalysisQueue(analyze, pacing_seconds=0.05)
            await asyncio.gather(*(queue.submit(bytes([i]), "client") for i in range(3)))

        asyncio.run(scenario())

        gaps = [b - a for a, b in zip(started, started[1:])]
        assert all(gap >= 0.045 for gap in gaps)

    def test_saturation_threshold(self):
        async def scenario():
            queue = AnalysisQueue(FakeBackend().analyze, pacing_seconds=0, saturation_threshold=2)
            futures = [queue.submit(bytes([i]), "client") for i in range(2)]
            at_threshold = queue.is_saturated
            futures.append(queue.submit(b"x", "client"))
            above_threshold = queue.is_saturated
            await asyncio.gather(*futures)
            return at_threshold, above_threshold

        at_threshold, above_threshold = asyncio.run(scenario())
        assert not at_threshold
        assert above_threshold

    def test_backend_error_reaches_waiter(self):
        backend = FakeBackend([BackendError("Backend API error: 500"), sample_result()])

        async def scenario():
            queue = AnalysisQueue(backend.analyze, pacing_seconds=0)
            failing = queue.submit(b"a", "client")
            passing = queue.submit(b"b", "client")
            with pytest.raises(BackendError):
                await failing
            return await passing

        assert asyncio.run(scenario()) == sample_result()

    def test_call_timeout_rejects_waiter(self):
        backend = FakeBackend(delay=1.0)

        async def scenario():
            queue = AnalysisQueue(backend.analyze, pacing_seconds=0, call_timeout_seconds=0.05)
            with pytest.raises(QueueTimeoutError):
                await queue.submit(b"slow", "client")
            return queue

        queue = asyncio.run(scenario())
        assert queue.get_metrics()["timed_out"] == 1

    def test_abandoned_item_is_skipped(self):
        backend = FakeBackend()

        async def scenario():
            queue = AnalysisQueue(backend.analyze, pacing_seconds=0)
            abandoned = queue.submit(b"gone", "client")
            abandoned.cancel()
            await queue.submit(b"kept", "client")
            return queue

        queue = asyncio.run(scenario())
        assert backend.payloads == [b"kept"]
        assert queue.get_metrics()["skipped"] == 1

    def test_close_fails_pending(self):
        backend = FakeBackend(delay=1.0)

        async def scenario():
            queue = AnalysisQueue(backend.analyze, pacing_seconds=0)
            first = queue.submit(b"a", "client")
            second = queue.submit(b"b", "client")
            await asyncio.sleep(0.01)
            failed = await queue.close()

            with pytest.raises(QueueClosedError):
                await first
            with pytest.raises(QueueClosedError):
                await second
            with pytest.raises(QueueClosedError):
                queue.submit(b"c", "client")
            return failed

        assert asyncio.run(scenario()) == 1

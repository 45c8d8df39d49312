"""
Scheduled Task Tests
====================
"""

import asyncio

from visual_guide.capture.timer import ScheduledTask


class TestScheduledTask:
    """Test delayed, generation-guarded callbacks."""

    def test_runs_after_delay(self):
        calls = []
        task = ScheduledTask("test")

        async def callback():
            calls.append("ran")

        async def scenario():
            task.schedule(0.01, callback)
            assert task.pending
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert calls == ["ran"]
        assert not task.pending

    def test_reschedule_replaces_pending(self):
        calls = []
        task = ScheduledTask("test")

        async def scenario():
            async def first():
                calls.append("first")

            async def second():
                calls.append("second")

            task.schedule(0.01, first)
            task.schedule(0.01, second)
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert calls == ["second"]

    def test_invalidate_drops_callback(self):
        calls = []
        task = ScheduledTask("test")

        async def callback():
            calls.append("ran")

        async def scenario():
            task.schedule(0.01, callback)
            task.invalidate()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert calls == []
        assert task.generation == 1

    def test_guard_prevents_run(self):
        calls = []
        task = ScheduledTask("test")

        async def callback():
            calls.append("ran")

        async def scenario():
            task.schedule(0.01, callback, guard=lambda: False)
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert calls == []

    def test_callback_may_reschedule(self):
        calls = []
        task = ScheduledTask("test")

        async def callback():
            calls.append(len(calls))
            if len(calls) < 3:
                task.schedule(0.0, callback)

        async def scenario():
            task.schedule(0.0, callback)
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert calls == [0, 1, 2]

"""
Trigger Policy Tests
====================
"""

import pytest

from visual_guide.capture.policy import (
    TriggerAction,
    TriggerPolicy,
    TriggerReason,
    TriggerThresholds,
)
from visual_guide.models.motion import MotionSample


MOTION = MotionSample(average_channel_delta=80.0, is_significant=True)
STILL = MotionSample(average_channel_delta=2.0, is_significant=False)


@pytest.fixture
def policy():
    return TriggerPolicy(TriggerThresholds())


class TestTriggerPolicy:
    """Test decision rules in order."""

    def test_initial_trigger(self, policy):
        decision = policy.evaluate(STILL, now=0.0, last_trigger_at=None, in_flight=False)
        assert decision.should_trigger
        assert decision.reason is TriggerReason.INITIAL

    def test_in_flight_blocks_everything(self, policy):
        for motion in (MOTION, STILL):
            decision = policy.evaluate(motion, now=100.0, last_trigger_at=0.0, in_flight=True)
            assert decision.action is TriggerAction.HOLD
            assert decision.reason is TriggerReason.IN_FLIGHT

    def test_motion_after_interval(self, policy):
        decision = policy.evaluate(MOTION, now=5.0, last_trigger_at=0.0, in_flight=False)
        assert decision.should_trigger
        assert decision.reason is TriggerReason.MOTION

    def test_motion_during_cooldown_holds(self, policy):
        decision = policy.evaluate(MOTION, now=2.0, last_trigger_at=0.0, in_flight=False)
        assert decision.action is TriggerAction.HOLD
        assert decision.reason is TriggerReason.COOLDOWN

    def test_motion_during_cooldown_replays_after_delay(self, policy):
        decision = policy.evaluate(MOTION, now=3.0, last_trigger_at=0.0, in_flight=False)
        assert decision.action is TriggerAction.REPLAY

    def test_replay_is_throttled(self, policy):
        decision = policy.evaluate(
            MOTION, now=4.0, last_trigger_at=0.0, in_flight=False, last_replay_at=3.0
        )
        assert decision.action is TriggerAction.HOLD
        assert decision.reason is TriggerReason.COOLDOWN

    def test_static_scene_retriggers(self, policy):
        assert not policy.evaluate(STILL, now=7.9, last_trigger_at=0.0, in_flight=False).should_trigger

        decision = policy.evaluate(STILL, now=8.0, last_trigger_at=0.0, in_flight=False)
        assert decision.should_trigger
        assert decision.reason is TriggerReason.STATIC

    def test_still_scene_holds(self, policy):
        decision = policy.evaluate(STILL, now=3.0, last_trigger_at=0.0, in_flight=False)
        assert decision.action is TriggerAction.HOLD
        assert decision.reason is TriggerReason.STABLE

    def test_thresholds_from_config(self):
        from visual_guide.config import CaptureConfig

        thresholds = TriggerThresholds.from_config(CaptureConfig(static_cooldown_seconds=12))
        assert thresholds.static_cooldown_seconds == 12
        assert thresholds.min_interval_between_analysis_seconds == 5

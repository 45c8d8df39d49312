"""
Trigger Policy
==============

Deterministic decision of whether a poll tick should start an analysis.

Decision Rules (evaluated in order):
    1. Analysis already in flight           -> HOLD    (in_flight)
    2. No previous trigger                  -> TRIGGER (initial)
    3. Significant motion, interval elapsed -> TRIGGER (motion)
    4. Significant motion, interval not met -> REPLAY  (cooldown) when the
       replay delay and replay interval allow it, otherwise HOLD (cooldown)
    5. No motion, static cooldown elapsed   -> TRIGGER (static)
    6. Otherwise                            -> HOLD    (stable)

All timing is measured from the last trigger, never from the last motion,
so a motionless scene is re-described every static_cooldown_seconds.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from visual_guide.models.motion import MotionSample


logger = logging.getLogger(__name__)


class TriggerAction(str, Enum):
    """What the scheduler should do on this tick."""

    TRIGGER = "trigger"
    REPLAY = "replay"
    HOLD = "hold"


class TriggerReason(str, Enum):
    """Why the action was chosen."""

    INITIAL = "initial"
    MOTION = "motion"
    STATIC = "static"
    COOLDOWN = "cooldown"
    IN_FLIGHT = "in_flight"
    STABLE = "stable"


@dataclass
class TriggerThresholds:
    """
    Timing thresholds for the trigger policy.

    The static cooldown is larger than the motion interval so a moving scene
    is analyzed more often than a still one.
    """

    min_interval_between_analysis_seconds: float = 5.0
    static_cooldown_seconds: float = 8.0
    replay_after_seconds: float = 3.0
    replay_interval_seconds: float = 3.0

    @classmethod
    def from_config(cls, capture_config) -> "TriggerThresholds":
        return cls(
            min_interval_between_analysis_seconds=capture_config.min_interval_between_analysis_seconds,
            static_cooldown_seconds=capture_config.static_cooldown_seconds,
            replay_after_seconds=capture_config.replay_after_seconds,
            replay_interval_seconds=capture_config.replay_interval_seconds,
        )


@dataclass(frozen=True)
class TriggerDecision:
    """Result of a policy evaluation."""

    action: TriggerAction
    reason: TriggerReason

    @property
    def should_trigger(self) -> bool:
        return self.action is TriggerAction.TRIGGER

    def __repr__(self) -> str:
        return f"TriggerDecision({self.action.value}, {self.reason.value})"


class TriggerPolicy:
    """
    Stateless trigger policy.

    The caller owns the timestamps (last trigger, last replay) and passes
    them in, which keeps evaluation a pure function of its inputs.
    """

    def __init__(self, thresholds: Optional[TriggerThresholds] = None) -> None:
        self.thresholds = thresholds or TriggerThresholds()
        logger.info(
            f"TriggerPolicy initialized: "
            f"motion_interval={self.thresholds.min_interval_between_analysis_seconds}s, "
            f"static={self.thresholds.static_cooldown_seconds}s, "
            f"replay_after={self.thresholds.replay_after_seconds}s"
        )

    def evaluate(
        self,
        motion: MotionSample,
        now: float,
        last_trigger_at: Optional[float],
        in_flight: bool,
        last_replay_at: Optional[float] = None,
    ) -> TriggerDecision:
        """
        Evaluate one poll tick.

        Args:
            motion: Differencer output for this tick
            now: Current time in seconds
            last_trigger_at: Time of the last trigger (None if never)
            in_flight: Whether an analysis is running
            last_replay_at: Time of the last replay narration (None if never)

        Returns:
            TriggerDecision
        """
        th = self.thresholds

        if in_flight:
            return TriggerDecision(TriggerAction.HOLD, TriggerReason.IN_FLIGHT)

        if last_trigger_at is None:
            return TriggerDecision(TriggerAction.TRIGGER, TriggerReason.INITIAL)

        since_trigger = now - last_trigger_at

        if motion.is_significant:
            if since_trigger >= th.min_interval_between_analysis_seconds:
                return TriggerDecision(TriggerAction.TRIGGER, TriggerReason.MOTION)
            if self._replay_due(now, since_trigger, last_replay_at):
                return TriggerDecision(TriggerAction.REPLAY, TriggerReason.COOLDOWN)
            return TriggerDecision(TriggerAction.HOLD, TriggerReason.COOLDOWN)

        if since_trigger >= th.static_cooldown_seconds:
            return TriggerDecision(TriggerAction.TRIGGER, TriggerReason.STATIC)

        return TriggerDecision(TriggerAction.HOLD, TriggerReason.STABLE)

    def _replay_due(
        self,
        now: float,
        since_trigger: float,
        last_replay_at: Optional[float],
    ) -> bool:
        th = self.thresholds
        if since_trigger < th.replay_after_seconds:
            return False
        if last_replay_at is None:
            return True
        return now - last_replay_at >= th.replay_interval_seconds

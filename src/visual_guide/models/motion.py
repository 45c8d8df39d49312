"""
Motion Models
=============

Output of the frame differencer.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class MotionSample:
    """
    Motion score between a frame and the stored reference frame.

    Attributes:
        average_channel_delta: Mean absolute per-channel difference (0-255)
        is_significant: Whether the delta exceeded the motion threshold
    """

    average_channel_delta: float
    is_significant: bool

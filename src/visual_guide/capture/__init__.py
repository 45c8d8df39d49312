"""
Capture Module
==============

Client-side camera polling, motion scoring and trigger scheduling.

Components:
    - Frame: Captured image with timestamp
    - FrameSource / OpenCVCameraSource: Camera abstraction
    - FrameDifferencer: Strided mean-absolute-difference motion score
    - TriggerPolicy: Decides trigger / replay / hold per tick
    - CaptureScheduler: Poll loop tying the above to the analysis client
    - ScheduledTask: Generation-guarded delayed callback
"""

from visual_guide.capture.differencer import FrameDifferencer
from visual_guide.capture.frame import Frame
from visual_guide.capture.policy import (
    TriggerAction,
    TriggerDecision,
    TriggerPolicy,
    TriggerReason,
    TriggerThresholds,
)
from visual_guide.capture.scheduler import CaptureScheduler, SchedulerState
from visual_guide.capture.source import CaptureError, FrameSource, OpenCVCameraSource
from visual_guide.capture.timer import ScheduledTask

__all__ = [
    "Frame",
    "FrameSource",
    "OpenCVCameraSource",
    "CaptureError",
    "FrameDifferencer",
    "TriggerPolicy",
    "TriggerThresholds",
    "TriggerDecision",
    "TriggerAction",
    "TriggerReason",
    "CaptureScheduler",
    "SchedulerState",
    "ScheduledTask",
]

"""
Frame Differencer
=================

Cheap motion score between consecutive low-resolution frames.

The score is the mean absolute per-channel difference between the new frame
and a stored reference frame, computed over every Nth pixel only (this runs
on every poll tick).

Reference Policy:
    The reference frame is replaced ONLY when a sample is significant, so
    the detector compares against the last stable scene. A constantly
    sliding baseline would hide slow continuous motion.

Edge Cases:
    - First call (no reference): not significant, seeds the reference
    - Reference with different dimensions: not significant, reseeds
"""

import logging
from typing import Optional

import numpy as np

from visual_guide.capture.frame import Frame
from visual_guide.models.motion import MotionSample


logger = logging.getLogger(__name__)


class FrameDifferencer:
    """
    Strided mean-absolute-difference motion detector.

    Attributes:
        threshold: Mean channel delta (0-255) above which motion is significant
        sample_step: Compare every sample_step-th pixel
    """

    def __init__(self, threshold: float = 50.0, sample_step: int = 8) -> None:
        """
        Initialize frame differencer.

        Args:
            threshold: Significance threshold on the 0-255 channel scale
            sample_step: Pixel stride (>= 1)
        """
        if sample_step < 1:
            raise ValueError("sample_step must be >= 1")

        self.threshold = threshold
        self.sample_step = sample_step
        self._reference: Optional[np.ndarray] = None

    @property
    def has_reference(self) -> bool:
        """Whether a reference frame is stored."""
        return self._reference is not None

    def _sample(self, pixels: np.ndarray) -> np.ndarray:
        flat = pixels.reshape(-1, pixels.shape[-1]) if pixels.ndim == 3 else pixels.reshape(-1, 1)
        return flat[::self.sample_step].astype(np.int16)

    def compare(self, frame: Frame) -> MotionSample:
        """
        Score a frame against the reference and update the reference.

        Args:
            frame: Low-resolution frame

        Returns:
            MotionSample with the mean delta and significance
        """
        current = self._sample(frame.pixels)

        if self._reference is None or self._reference.shape != current.shape:
            self._reference = current
            return MotionSample(average_channel_delta=0.0, is_significant=False)

        delta = float(np.abs(current - self._reference).mean())
        is_significant = delta > self.threshold

        if is_significant:
            self._reference = current
            logger.debug(f"Significant change detected: {delta:.2f}")

        return MotionSample(average_channel_delta=delta, is_significant=is_significant)

    def reset(self) -> None:
        """Forget the reference frame."""
        self._reference = None

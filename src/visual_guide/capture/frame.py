"""
Frame Data Model
================

Internal frame representation for the capture pipeline.

Design Rules:
    - Frames are transient and never persisted
    - Pixels are BGR uint8 arrays as delivered by OpenCV
    - Resizing returns a new Frame; the original is never modified
"""

from dataclasses import dataclass

import cv2
import numpy as np


@dataclass(frozen=True, slots=True, eq=False)
class Frame:
    """
    A captured camera frame.

    Attributes:
        pixels: BGR image as np.ndarray (H, W, 3), dtype=uint8
        timestamp: Capture time in seconds
        width: Frame width in pixels
        height: Frame height in pixels
    """

    pixels: np.ndarray
    timestamp: float
    width: int
    height: int

    @classmethod
    def from_array(cls, pixels: np.ndarray, timestamp: float) -> "Frame":
        """Wrap an OpenCV image, reading dimensions from its shape."""
        height, width = pixels.shape[:2]
        return cls(pixels=pixels, timestamp=timestamp, width=width, height=height)

    @property
    def is_empty(self) -> bool:
        """Whether the frame has zero-sized dimensions."""
        return self.width == 0 or self.height == 0

    def resized(self, width: int, height: int) -> "Frame":
        """Return a copy scaled to exactly width x height."""
        small = cv2.resize(self.pixels, (width, height), interpolation=cv2.INTER_AREA)
        return Frame(pixels=small, timestamp=self.timestamp, width=width, height=height)

    def fit_within(self, max_dimension: int) -> "Frame":
        """
        Return a copy whose largest side is at most max_dimension.

        Aspect ratio is preserved; frames already small enough are returned
        unchanged.
        """
        ratio = min(max_dimension / self.width, max_dimension / self.height)
        if ratio >= 1.0:
            return self
        width = max(1, round(self.width * ratio))
        height = max(1, round(self.height * ratio))
        return self.resized(width, height)

    def encode_jpeg(self, quality: int = 30) -> bytes:
        """
        Encode the frame as JPEG.

        Raises:
            ValueError: If OpenCV fails to encode the image
        """
        ok, buffer = cv2.imencode(".jpg", self.pixels, [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ok:
            raise ValueError(f"JPEG encoding failed for {self!r}")
        return buffer.tobytes()

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixels."""
        return (
            f"Frame({self.width}x{self.height}, "
            f"timestamp={self.timestamp:.3f})"
        )

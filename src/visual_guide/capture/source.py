"""
Frame Sources
=============

Camera abstraction for the capture scheduler.

This module provides the FrameSource protocol and the OpenCV-backed
implementation used in production.

Design Rules:
    - read_frame() is blocking; callers push it to a thread
    - A source is "ready" once it reports non-zero frame dimensions
    - Open failures raise CaptureError with text a user can act on
"""

import logging
import time
from typing import Optional, Protocol

import cv2

from visual_guide.capture.frame import Frame


logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Raised when the camera cannot be opened or stops delivering frames."""
    pass


class FrameSource(Protocol):
    """
    Protocol for frame sources.

    Implemented by:
        - OpenCVCameraSource (production)
        - in-memory sources in the test suite
    """

    @property
    def is_active(self) -> bool:
        """Whether the source is open and delivering frames."""
        ...

    def is_ready(self) -> bool:
        """Whether the source reports non-zero frame dimensions."""
        ...

    def read_frame(self) -> Optional[Frame]:
        """Grab the current full-resolution frame, or None if unavailable."""
        ...

    def close(self) -> None:
        """Release the underlying device."""
        ...


class OpenCVCameraSource:
    """
    Camera source backed by cv2.VideoCapture.

    Attributes:
        camera_index: OpenCV device index
    """

    def __init__(self, camera_index: int = 0) -> None:
        """
        Open the camera.

        Args:
            camera_index: OpenCV device index

        Raises:
            CaptureError: If the device cannot be opened
        """
        self.camera_index = camera_index
        self._capture = cv2.VideoCapture(camera_index)
        self._closed = False

        if not self._capture.isOpened():
            self._capture.release()
            raise CaptureError(
                f"Could not open camera {camera_index}. Check that a camera is "
                f"connected, that no other application is using it, and that "
                f"this process has permission to access it."
            )

        logger.info(f"Camera {camera_index} opened")

    @property
    def is_active(self) -> bool:
        return not self._closed and self._capture.isOpened()

    def is_ready(self) -> bool:
        if not self.is_active:
            return False
        width = self._capture.get(cv2.CAP_PROP_FRAME_WIDTH)
        height = self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT)
        return width > 0 and height > 0

    def read_frame(self) -> Optional[Frame]:
        if not self.is_active:
            return None

        ok, pixels = self._capture.read()
        if not ok or pixels is None:
            logger.warning(f"Camera {self.camera_index} returned no frame")
            return None

        return Frame.from_array(pixels, timestamp=time.monotonic())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._capture.release()
        logger.info(f"Camera {self.camera_index} released")

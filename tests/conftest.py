"""
Test Configuration
==================

Pytest fixtures and fakes for VisualGuide.

Async code is driven with asyncio.run() inside plain test functions.
"""

import asyncio
from typing import List, Optional, Sequence, Union

import numpy as np
import pytest

from visual_guide.capture.frame import Frame
from visual_guide.client.narration import LoggingNarrator
from visual_guide.client.transport import GatewayError
from visual_guide.gateway.backend import BackendError
from visual_guide.models.analysis import (
    AnalysisKind,
    AnalysisResult,
    ResultEnvelope,
    Severity,
)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_frame(value: int = 0, width: int = 640, height: int = 480, timestamp: float = 0.0) -> Frame:
    """Solid-colour BGR frame."""
    pixels = np.full((height, width, 3), value, dtype=np.uint8)
    return Frame.from_array(pixels, timestamp=timestamp)


class FakeSource:
    """In-memory frame source."""

    def __init__(self, frame: Optional[Frame] = None) -> None:
        self.frame = frame if frame is not None else make_frame()
        self.ready = True
        self.active = True
        self.closed = False
        self.reads = 0

    @property
    def is_active(self) -> bool:
        return self.active

    def is_ready(self) -> bool:
        return self.ready

    def read_frame(self) -> Optional[Frame]:
        self.reads += 1
        return self.frame

    def close(self) -> None:
        self.closed = True
        self.active = False


class FakeBackend:
    """
    Inference backend that records payloads.

    Outcomes are consumed in order; the last one repeats. An outcome that is
    an exception instance is raised.
    """

    def __init__(
        self,
        outcomes: Optional[Sequence[Union[AnalysisResult, Exception]]] = None,
        delay: float = 0.0,
    ) -> None:
        self.outcomes = list(outcomes or [sample_result()])
        self.delay = delay
        self.payloads: List[bytes] = []

    @property
    def call_count(self) -> int:
        return len(self.payloads)

    async def analyze(self, image_payload: bytes) -> AnalysisResult:
        self.payloads.append(image_payload)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes[0] if len(self.outcomes) == 1 else self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeTransport:
    """
    Gateway transport with scripted envelopes.

    If `gate` is set, every call waits on it before answering.
    """

    def __init__(self, outcomes: Optional[Sequence[Union[ResultEnvelope, Exception]]] = None) -> None:
        self.outcomes = list(outcomes or [ResultEnvelope.wrap(sample_result())])
        self.payloads: List[bytes] = []
        self.gate: Optional[asyncio.Event] = None

    @property
    def call_count(self) -> int:
        return len(self.payloads)

    async def analyze(self, image_payload: bytes) -> ResultEnvelope:
        self.payloads.append(image_payload)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes[0] if len(self.outcomes) == 1 else self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        pass


def sample_result(
    kind: AnalysisKind = AnalysisKind.OBSTACLE,
    severity: Severity = Severity.WARNING,
    message: str = "Bicycle parked across the path",
    confidence: float = 0.9,
) -> AnalysisResult:
    return AnalysisResult(kind=kind, severity=severity, message=message, confidence=confidence)


@pytest.fixture
def clock():
    """Fake clock starting at t=0."""
    return FakeClock()


@pytest.fixture
def source():
    """Ready, active in-memory frame source."""
    return FakeSource()


@pytest.fixture
def narrator():
    """Narrator that records what it said."""
    return LoggingNarrator()


@pytest.fixture
def result():
    """A typical obstacle warning."""
    return sample_result()


@pytest.fixture
def backend_error():
    return BackendError("Backend API error: 500")


@pytest.fixture
def gateway_error():
    return GatewayError("Gateway request failed: connection refused")

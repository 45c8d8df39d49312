"""
Narration
=========

Output channel for spoken guidance.

Narration is fire-and-forget: speak() must not block the capture loop and
must not raise. LoggingNarrator writes to the log so the pipeline can run
headless; a text-to-speech implementation plugs in through the same
protocol.
"""

import logging
from enum import Enum
from collections import deque
from typing import Deque, Protocol, Tuple


logger = logging.getLogger(__name__)


class NarrationPriority(str, Enum):
    """How urgently a message should be voiced."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Narrator(Protocol):
    """Protocol for narration sinks."""

    def speak(self, text: str, priority: NarrationPriority) -> None:
        ...


_LOG_LEVELS = {
    NarrationPriority.HIGH: logging.WARNING,
    NarrationPriority.MEDIUM: logging.INFO,
    NarrationPriority.LOW: logging.INFO,
}


class LoggingNarrator:
    """Narrator that logs every message; high priority logs at WARNING."""

    def __init__(self, history: int = 50) -> None:
        self.spoken: Deque[Tuple[str, NarrationPriority]] = deque(maxlen=history)

    def speak(self, text: str, priority: NarrationPriority) -> None:
        self.spoken.append((text, priority))
        logger.log(_LOG_LEVELS[priority], f"[{priority.value}] {text}")

    @property
    def last(self) -> Tuple[str, NarrationPriority]:
        return self.spoken[-1]

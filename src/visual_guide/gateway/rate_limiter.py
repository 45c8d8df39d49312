"""
Rate Limiter
============

Per-client admission control for the analysis gateway.

Each client is tracked with a fixed window counter plus a minimum
spacing check. Both rules are enforced:
    - spacing stops bursts inside a short span
    - the window count stops sustained high rates across a longer span

Check Order:
    1. Window expired      -> reset window, allow
    2. Spacing too short   -> deny, wait = ceil(min_spacing - elapsed)
    3. Window count full   -> deny, wait = ceil(window - window_elapsed)
    4. Otherwise           -> count request, allow

Design Rules:
    - State is owned by one RateLimiter instance (no module globals)
    - Clock is injectable for deterministic tests
    - Client state is never destroyed (one interactive client per session)
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


@dataclass
class ClientThrottleState:
    """Fixed window state for a single client."""

    window_start: float
    request_count_in_window: int
    last_request_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of an admission check."""

    allowed: bool
    wait_seconds: Optional[int] = None


class RateLimiter:
    """
    Fixed window + minimum spacing rate limiter keyed by client id.

    Attributes:
        max_per_window: Maximum admitted requests per window
        window_seconds: Window length in seconds
        min_spacing_seconds: Minimum gap between admitted requests
    """

    def __init__(
        self,
        max_per_window: int = 3,
        window_seconds: float = 60.0,
        min_spacing_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            max_per_window: Maximum admitted requests per window (>= 1)
            window_seconds: Window length in seconds
            min_spacing_seconds: Minimum gap between admitted requests
            clock: Time source in seconds
        """
        if max_per_window < 1:
            raise ValueError("max_per_window must be >= 1")

        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self.min_spacing_seconds = min_spacing_seconds
        self._clock = clock

        self._clients: Dict[str, ClientThrottleState] = {}
        self._allowed_count: int = 0
        self._denied_count: int = 0

    def check(self, client_id: str) -> RateLimitDecision:
        """
        Check and record an admission attempt for a client.

        Args:
            client_id: Identifier of the requesting client

        Returns:
            RateLimitDecision with wait_seconds set when denied
        """
        now = self._clock()
        state = self._clients.get(client_id)

        if state is None:
            self._clients[client_id] = ClientThrottleState(
                window_start=now,
                request_count_in_window=1,
                last_request_at=now,
            )
            return self._allow()

        # 1. Window expired
        if now - state.window_start > self.window_seconds:
            state.window_start = now
            state.request_count_in_window = 1
            state.last_request_at = now
            return self._allow()

        # 2. Minimum spacing
        since_last = now - state.last_request_at
        if since_last < self.min_spacing_seconds:
            return self._deny(
                client_id,
                math.ceil(self.min_spacing_seconds - since_last),
                "spacing",
            )

        # 3. Window count
        if state.request_count_in_window >= self.max_per_window:
            window_elapsed = now - state.window_start
            return self._deny(
                client_id,
                math.ceil(self.window_seconds - window_elapsed),
                "window",
            )

        # 4. Admit
        state.request_count_in_window += 1
        state.last_request_at = now
        return self._allow()

    def get_state(self, client_id: str) -> Optional[ClientThrottleState]:
        """Current throttle state of a client, if any."""
        return self._clients.get(client_id)

    def _allow(self) -> RateLimitDecision:
        self._allowed_count += 1
        return RateLimitDecision(allowed=True)

    def _deny(self, client_id: str, wait: int, rule: str) -> RateLimitDecision:
        self._denied_count += 1
        wait = max(1, wait)
        logger.info(f"Rate limit ({rule}) for client {client_id}, wait {wait}s")
        return RateLimitDecision(allowed=False, wait_seconds=wait)

    @property
    def client_count(self) -> int:
        """Number of tracked clients."""
        return len(self._clients)

    def get_metrics(self) -> dict:
        """Get limiter metrics for observability."""
        return {
            "tracked_clients": len(self._clients),
            "allowed": self._allowed_count,
            "denied": self._denied_count,
            "max_per_window": self.max_per_window,
            "window_seconds": self.window_seconds,
            "min_spacing_seconds": self.min_spacing_seconds,
        }

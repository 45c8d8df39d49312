"""
Result Cache
============

Bounded, time-expiring cache of analysis results keyed by image fingerprint.

The cache is a cost-avoidance layer: a hit is returned before rate limiting
and queueing, so resubmitting the same frame never spends a backend call.

Eviction:
    - Age: entries older than ttl_seconds are dropped on lookup and by sweeps
    - Count: only the most recently STORED max_entries entries are kept
      (store time, not access time)

Sweeps are probabilistic (sweep_probability per request) rather than run on
every request.
"""

import logging
import random
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from visual_guide.models.analysis import AnalysisResult


logger = logging.getLogger(__name__)


def fingerprint(payload: bytes, prefix_bytes: int = 100) -> str:
    """
    Cheap, non-cryptographic cache key for an image payload.

    Combines a fixed-length prefix of the payload with its total length.
    Suitable for cache keying only, not for integrity or security.

    Args:
        payload: Raw image bytes
        prefix_bytes: Number of leading bytes to include

    Returns:
        Fingerprint string
    """
    return f"{payload[:prefix_bytes].hex()}:{len(payload)}"


@dataclass(frozen=True)
class CacheEntry:
    """Cached result with its store time."""

    result: AnalysisResult
    stored_at: float


class ResultCache:
    """
    TTL + max-entries cache of AnalysisResults.

    Attributes:
        ttl_seconds: Maximum age of a served entry
        max_entries: Maximum number of retained entries
        sweep_probability: Chance that maybe_sweep() runs a sweep
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 50,
        sweep_probability: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize result cache.

        Args:
            ttl_seconds: Entry time-to-live in seconds
            max_entries: Maximum retained entries (>= 1)
            sweep_probability: Probability in [0, 1] of sweeping per request
            clock: Time source in seconds
            rng: Random source for sweep sampling
        """
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.sweep_probability = sweep_probability
        self._clock = clock
        self._rng = rng or random.Random()

        # Ordered by store time, oldest first
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits: int = 0
        self._misses: int = 0
        self._evictions: int = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[AnalysisResult]:
        """
        Look up a fresh result.

        Args:
            key: Image fingerprint

        Returns:
            The cached result, or None on miss or expiry
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._clock() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            self._evictions += 1
            self._misses += 1
            return None

        self._hits += 1
        return entry.result

    def put(self, key: str, result: AnalysisResult) -> None:
        """
        Store a result, evicting the oldest entries beyond max_entries.

        Args:
            key: Image fingerprint
            result: Result to cache
        """
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = CacheEntry(result=result, stored_at=self._clock())
        self._trim()

    def maybe_sweep(self) -> bool:
        """
        Run a sweep with probability sweep_probability.

        Returns:
            True if a sweep ran
        """
        if self._rng.random() < self.sweep_probability:
            self.sweep()
            return True
        return False

    def sweep(self) -> int:
        """
        Remove expired entries and trim to max_entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if now - entry.stored_at >= self.ttl_seconds
        ]
        for key in expired:
            del self._entries[key]

        removed = len(expired) + self._trim()
        self._evictions += len(expired)

        if removed:
            logger.debug(f"Cache sweep removed {removed} entries, {len(self._entries)} left")
        return removed

    def clear(self) -> int:
        """Drop all entries. Returns the number cleared."""
        cleared = len(self._entries)
        self._entries.clear()
        return cleared

    def _trim(self) -> int:
        """Discard oldest-stored entries beyond max_entries."""
        dropped = 0
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            dropped += 1
        self._evictions += dropped
        return dropped

    def get_metrics(self) -> dict:
        """Get cache metrics for observability."""
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
        }

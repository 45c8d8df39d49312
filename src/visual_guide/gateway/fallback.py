"""
Fallback Results
================

Synthesized results returned when the gateway cannot run a fresh analysis.

Every message is safe and non-alarming: it asks the user to stay alert
without claiming anything about the scene.
"""

import random
from typing import Optional

from visual_guide.models.analysis import (
    AnalysisKind,
    AnalysisResult,
    ResultEnvelope,
    Severity,
)


FALLBACK_RESULTS = (
    AnalysisResult(
        kind=AnalysisKind.GENERAL,
        severity=Severity.SAFE,
        message="Continue with caution. The system is briefly paused.",
        confidence=0.8,
    ),
    AnalysisResult(
        kind=AnalysisKind.GENERAL,
        severity=Severity.WARNING,
        message="Stay aware of your surroundings while automatic analysis resumes.",
        confidence=0.7,
    ),
    AnalysisResult(
        kind=AnalysisKind.GENERAL,
        severity=Severity.SAFE,
        message="Walk slowly and stay alert. Analysis will resume shortly.",
        confidence=0.8,
    ),
)

BUSY_MESSAGE = "System temporarily busy. Stay alert while it recovers."


def random_fallback(rng: Optional[random.Random] = None) -> AnalysisResult:
    """Pick one of the fixed fallback results."""
    return (rng or random).choice(FALLBACK_RESULTS)


def rate_limited_envelope(wait_seconds: int) -> ResultEnvelope:
    """Envelope for a client that exceeded its admission limits."""
    return ResultEnvelope(
        kind=AnalysisKind.GENERAL,
        severity=Severity.WARNING,
        message=f"System paused. Retrying in {wait_seconds} seconds. Stay alert.",
        confidence=0.7,
        rate_limited=True,
        wait_seconds=wait_seconds,
    )


def saturated_envelope(rng: Optional[random.Random] = None) -> ResultEnvelope:
    """Envelope for a request turned away by queue backpressure."""
    return ResultEnvelope.wrap(random_fallback(rng), queue_saturated=True)


def system_error_envelope(
    rng: Optional[random.Random] = None,
    upstream_busy: bool = False,
) -> ResultEnvelope:
    """
    Envelope for a failed or timed-out analysis.

    Args:
        rng: Random source for message selection
        upstream_busy: Backend reported its own rate limit (HTTP 429)
    """
    result = random_fallback(rng)
    if upstream_busy:
        result = result.model_copy(update={"message": BUSY_MESSAGE})
    return ResultEnvelope.wrap(result, system_error=True)

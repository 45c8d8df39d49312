"""
Guidance Phrasing
=================

Turns analysis results into the sentences that are narrated.

Priority Mapping:
    danger  -> high
    warning -> medium
    safe    -> low
"""

from typing import Optional

from visual_guide.client.narration import NarrationPriority
from visual_guide.models.analysis import AnalysisKind, AnalysisResult, Severity


CONSERVATIVE_MESSAGE = "Conservative mode. Walk carefully while analysis resumes."
CONSERVATIVE_CONFIDENCE = 0.6

_OBJECT_CUES = ("i see", "there is", "there are", "detected")
_CLEAR_CUES = ("clear", "free", "open path")


def priority_for(severity: Severity) -> NarrationPriority:
    """Map a result severity to a narration priority."""
    if severity is Severity.DANGER:
        return NarrationPriority.HIGH
    if severity is Severity.WARNING:
        return NarrationPriority.MEDIUM
    return NarrationPriority.LOW


def _sentence(message: str) -> str:
    return message.rstrip().rstrip(".")


def guidance_for(result: AnalysisResult) -> str:
    """Phrase a result as spoken guidance."""
    message = _sentence(result.message)

    if result.kind is AnalysisKind.OBSTACLE:
        if result.severity is Severity.DANGER:
            return f"Careful! {message}. Stop now."
        if result.severity is Severity.WARNING:
            return f"Attention, {message}. Walk with caution."
        return f"{message}."

    if result.kind is AnalysisKind.CURRENCY:
        return f"{message}. Let me help you check it."

    lowered = message.lower()
    if any(cue in lowered for cue in _CLEAR_CUES):
        return f"{message}. Carry on calmly."
    if any(cue in lowered for cue in _OBJECT_CUES):
        return f"{message}. Stay alert while you walk."
    return f"{message}. Be careful around these things."


def throttled_message(last_good: Optional[AnalysisResult], wait_seconds: float) -> str:
    """Message narrated when the gateway declined to analyze."""
    if last_good is not None:
        return (
            f"Based on the previous analysis: {_sentence(last_good.message)}. "
            f"Resuming in {wait_seconds:.0f} seconds."
        )
    return f"Analysis paused. Walk with caution. Resuming in {wait_seconds:.0f} seconds."


def replay_message(last_good: AnalysisResult) -> str:
    """Message narrated while motion continues during the cooldown."""
    return f"Still similar to before: {_sentence(last_good.message)}."


def degraded_message(last_good: AnalysisResult) -> str:
    """Message used when the previous result is re-issued after a failure."""
    return f"Keeping the previous alert: {_sentence(last_good.message)}."


def conservative_result() -> AnalysisResult:
    """Result narrated when no analysis has succeeded yet and the gateway is unreachable."""
    return AnalysisResult(
        kind=AnalysisKind.GENERAL,
        severity=Severity.SAFE,
        message=CONSERVATIVE_MESSAGE,
        confidence=CONSERVATIVE_CONFIDENCE,
    )

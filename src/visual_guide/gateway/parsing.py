"""
Backend Payload Parsing
=======================

Single parsing function for whatever the vision backend returned.

The backend boundary is untyped: the model may answer with a JSON object,
with JSON wrapped in markdown fences or surrounding prose, or with plain
text. parse_analysis_payload() tries, in this fixed order:

    1. Structured mapping  -> field access
    2. Text with a JSON body (fenced or embedded) -> decode, then field access
    3. Text without any JSON body -> whole text becomes a general/warning message

Required fields: type, severity, message. A structured payload missing any
of them is a ParseFailure, as is an empty payload.

Confidence Policy:
    Missing, unparseable or below CONFIDENCE_THRESHOLD -> DEFAULT_CONFIDENCE.
    Above 1.0 -> 1.0. Unknown confidence is treated as moderate confidence
    rather than propagated.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from visual_guide.models.analysis import AnalysisKind, AnalysisResult, Severity


logger = logging.getLogger(__name__)


CONFIDENCE_THRESHOLD = 0.7
DEFAULT_CONFIDENCE = 0.8
RAW_TEXT_CONFIDENCE = 0.7

REQUIRED_FIELDS = ("type", "severity", "message")

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class ParseFailure:
    """Explicit parse failure with a short reason."""

    reason: str


def normalize_confidence(value: Any) -> float:
    """
    Default or clamp a backend confidence value into [0.7, 1.0].

    Args:
        value: Raw confidence from the backend (may be None or a string)

    Returns:
        Normalized confidence
    """
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE

    if confidence != confidence or confidence < CONFIDENCE_THRESHOLD:  # NaN
        return DEFAULT_CONFIDENCE
    return min(confidence, 1.0)


def _coerce_kind(value: Any) -> AnalysisKind:
    try:
        return AnalysisKind(str(value).strip().lower())
    except ValueError:
        logger.debug(f"Unknown result type {value!r}, using general")
        return AnalysisKind.GENERAL


def _coerce_severity(value: Any) -> Severity:
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        logger.debug(f"Unknown severity {value!r}, using warning")
        return Severity.WARNING


def _from_mapping(data: Mapping[str, Any]) -> Union[AnalysisResult, ParseFailure]:
    missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
    if missing:
        return ParseFailure(f"missing fields: {', '.join(missing)}")

    message = str(data["message"]).strip()
    if not message:
        return ParseFailure("empty message")

    return AnalysisResult(
        kind=_coerce_kind(data["type"]),
        severity=_coerce_severity(data["severity"]),
        message=message,
        confidence=normalize_confidence(data.get("confidence")),
    )


def _extract_json_body(text: str) -> Optional[str]:
    """Find a JSON object inside fenced or surrounding text."""
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def parse_analysis_payload(raw: Any) -> Union[AnalysisResult, ParseFailure]:
    """
    Parse a backend payload into an AnalysisResult.

    Args:
        raw: Mapping, JSON/markdown/plain text string, or bytes

    Returns:
        AnalysisResult on success, ParseFailure otherwise
    """
    if raw is None:
        return ParseFailure("empty payload")

    # 1. Structured payload
    if isinstance(raw, Mapping):
        return _from_mapping(raw)

    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")

    if not isinstance(raw, str):
        return ParseFailure(f"unsupported payload type: {type(raw).__name__}")

    text = raw.strip()
    if not text:
        return ParseFailure("empty payload")

    # 2. JSON body, possibly fenced or wrapped in prose
    body = _extract_json_body(text)
    if body is not None:
        try:
            decoded = json.loads(body)
        except json.JSONDecodeError as e:
            return ParseFailure(f"malformed JSON body: {e.msg}")
        if not isinstance(decoded, Mapping):
            return ParseFailure("JSON body is not an object")
        return _from_mapping(decoded)

    # 3. Plain text
    return AnalysisResult(
        kind=AnalysisKind.GENERAL,
        severity=Severity.WARNING,
        message=text,
        confidence=RAW_TEXT_CONFIDENCE,
    )

"""
Analysis Models
===============

Result and envelope contracts shared by the gateway and the client.

Wire Contract (POST /analyze-image response):
    {
        "type": "obstacle",
        "severity": "danger",
        "message": "Step down about 20 cm ahead, next to a metal door",
        "confidence": 0.9,
        "fromCache": false,
        "rateLimited": false,
        "waitTime": null,
        "queueSaturated": false,
        "systemError": false
    }

Design Rules:
    - Severity is assigned by the backend or by fallback policy, never
      derived from kind
    - At most one throttling flag (rateLimited, queueSaturated,
      systemError) is set per envelope
    - fromCache may accompany any result
"""

import base64
import binascii
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class AnalysisKind(str, Enum):
    """
    Category of an analysis result.

    Attributes:
        OBSTACLE: Something in the walking path
        CURRENCY: A banknote was identified
        OBJECTS: Description of the objects in view
        GENERAL: Anything else, including fallback messages
    """

    OBSTACLE = "obstacle"
    CURRENCY = "currency"
    OBJECTS = "objects"
    GENERAL = "general"


class Severity(str, Enum):
    """How urgently the user must react to a result."""

    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


class AnalysisResult(BaseModel):
    """
    Narration-ready classification of a single frame.

    Attributes:
        kind: Result category (wire name ``type``)
        severity: Urgency assigned by the backend or fallback policy
        message: Human-readable description to narrate
        confidence: Confidence in [0, 1]
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kind: AnalysisKind = Field(
        ...,
        alias="type",
        description="Result category",
    )

    severity: Severity = Field(
        ...,
        description="Urgency of the result",
    )

    message: str = Field(
        ...,
        min_length=1,
        description="Narration text",
    )

    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Confidence of the result",
    )

    def to_wire(self) -> dict:
        """Serialize using wire field names."""
        return self.model_dump(mode="json", by_alias=True)


class ResultEnvelope(AnalysisResult):
    """
    AnalysisResult plus transport metadata returned by the gateway.

    Attributes:
        from_cache: Result was served from the result cache
        rate_limited: Client exceeded its admission limits
        wait_seconds: Suggested delay before retrying (wire name ``waitTime``)
        queue_saturated: Backend queue was full, result is a fallback
        system_error: Backend failed or timed out, result is a fallback
    """

    from_cache: bool = Field(default=False, alias="fromCache")
    rate_limited: bool = Field(default=False, alias="rateLimited")
    wait_seconds: Optional[int] = Field(default=None, ge=0, alias="waitTime")
    queue_saturated: bool = Field(default=False, alias="queueSaturated")
    system_error: bool = Field(default=False, alias="systemError")

    @classmethod
    def wrap(cls, result: AnalysisResult, **flags) -> "ResultEnvelope":
        """Build an envelope around an existing result."""
        return cls(
            kind=result.kind,
            severity=result.severity,
            message=result.message,
            confidence=result.confidence,
            **flags,
        )

    @property
    def result(self) -> AnalysisResult:
        """The bare result without transport metadata."""
        return AnalysisResult(
            kind=self.kind,
            severity=self.severity,
            message=self.message,
            confidence=self.confidence,
        )

    @property
    def is_throttled(self) -> bool:
        """Whether the gateway declined to run a fresh analysis."""
        return self.rate_limited or self.queue_saturated

    def to_wire(self) -> dict:
        """Serialize using wire field names, omitting an empty waitTime."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AnalyzeImageRequest(BaseModel):
    """
    Request body for POST /analyze-image.

    The image is a base64 string, optionally wrapped in a data URL
    (``data:image/jpeg;base64,...``). ``imageData`` is accepted as an
    alias for older clients.
    """

    image: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("image", "imageData"),
        description="Base64 image or data URL",
    )

    def decode_payload(self) -> bytes:
        """
        Decode the image into raw bytes.

        Raises:
            ValueError: If the body is not valid base64
        """
        data = self.image
        if data.startswith("data:"):
            _, _, data = data.partition(",")
        try:
            payload = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 image: {e}") from e
        if not payload:
            raise ValueError("Empty image payload")
        return payload

"""
Data Models
===========

Data models shared by the VisualGuide gateway and client.

Models:
    Analysis:
        - AnalysisKind: Result category (obstacle, currency, objects, general)
        - Severity: Urgency (safe, warning, danger)
        - AnalysisResult: Narration-ready classification
        - ResultEnvelope: Result plus cache/throttle/queue metadata
        - AnalyzeImageRequest: Body of POST /analyze-image

    Motion:
        - MotionSample: Frame differencer output
"""

from visual_guide.models.analysis import (
    AnalysisKind,
    AnalysisResult,
    AnalyzeImageRequest,
    ResultEnvelope,
    Severity,
)
from visual_guide.models.motion import MotionSample

__all__ = [
    # Analysis
    "AnalysisKind",
    "Severity",
    "AnalysisResult",
    "ResultEnvelope",
    "AnalyzeImageRequest",
    # Motion
    "MotionSample",
]

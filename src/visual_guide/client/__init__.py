"""
Client Module
=============

Analysis client, gateway transport and narration.

Example:
    from visual_guide.client import AnalysisClient, GatewayTransport

    client = AnalysisClient(source, GatewayTransport("http://localhost:8010"))
    result = await client.analyze_and_narrate()
"""

from visual_guide.client.analysis_client import AnalysisClient
from visual_guide.client.guidance import guidance_for, priority_for
from visual_guide.client.narration import LoggingNarrator, NarrationPriority, Narrator
from visual_guide.client.transport import GatewayError, GatewayTransport

__all__ = [
    "AnalysisClient",
    "GatewayTransport",
    "GatewayError",
    "Narrator",
    "NarrationPriority",
    "LoggingNarrator",
    "guidance_for",
    "priority_for",
]

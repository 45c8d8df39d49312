"""
Gateway Module
==============

Server-side admission, caching and serialization of analysis requests.

Components:
    - RateLimiter: Per-client fixed window + minimum spacing
    - ResultCache: TTL + max-entries cache keyed by image fingerprint
    - AnalysisQueue: Single-flight, paced FIFO in front of the backend
    - InferenceBackend: Protocol for vision backends (mock, OpenAI)
    - AnalysisGateway: Composition of all of the above

Example:
    from visual_guide.gateway import AnalysisGateway, MockInferenceBackend

    gateway = AnalysisGateway(backend=MockInferenceBackend())
    envelope = await gateway.analyze(jpeg_bytes, client_id="10.0.0.7")
"""

from visual_guide.gateway.backend import (
    BackendError,
    InferenceBackend,
    MockInferenceBackend,
    OpenAIVisionBackend,
)
from visual_guide.gateway.cache import CacheEntry, ResultCache, fingerprint
from visual_guide.gateway.parsing import ParseFailure, parse_analysis_payload
from visual_guide.gateway.queue import (
    AnalysisQueue,
    QueueClosedError,
    QueueItem,
    QueueTimeoutError,
)
from visual_guide.gateway.rate_limiter import (
    ClientThrottleState,
    RateLimitDecision,
    RateLimiter,
)
from visual_guide.gateway.service import AnalysisGateway, AnalysisRequest, create_backend

__all__ = [
    "AnalysisGateway",
    "AnalysisRequest",
    "create_backend",
    "RateLimiter",
    "RateLimitDecision",
    "ClientThrottleState",
    "ResultCache",
    "CacheEntry",
    "fingerprint",
    "AnalysisQueue",
    "QueueItem",
    "QueueTimeoutError",
    "QueueClosedError",
    "InferenceBackend",
    "MockInferenceBackend",
    "OpenAIVisionBackend",
    "BackendError",
    "ParseFailure",
    "parse_analysis_payload",
]

"""
VisualGuide
===========

Continuous visual analysis pipeline for blind and low-vision navigation.

A capture client watches a camera, decides when the scene is worth
describing, and narrates the result. An analysis gateway sits in front of an
expensive vision backend and protects it with per-client rate limiting, a
result cache and a single-flight admission queue.

Components:
    - capture: Camera polling, motion scoring, trigger scheduling
    - client: Analysis client, gateway transport, narration
    - gateway: Rate limiter, cache, queue, backends, fallbacks
    - models: Wire contracts shared by both halves

Example:
    # Gateway
    uvicorn visual_guide.main:app --port 8010

    # Client
    visual-guide-client --gateway-url http://localhost:8010
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]

"""
Vision Inference Backends
=========================

Black-box vision backends called by the admission queue.

This module provides:
    - InferenceBackend: Protocol every backend implements
    - MockInferenceBackend: Deterministic backend for development and tests
    - OpenAIVisionBackend: Chat-completions vision API over HTTP

Design Rules:
    - Every failure (HTTP status, transport, malformed body, missing
      fields) is raised as BackendError, nothing else
    - Backends never cache, rate limit or retry; the gateway does that
    - Blocking HTTP runs in a worker thread via asyncio.to_thread
"""

import asyncio
import base64
import logging
import os
import zlib
from typing import Optional, Protocol

import requests

from visual_guide.gateway.parsing import ParseFailure, parse_analysis_payload
from visual_guide.models.analysis import AnalysisKind, AnalysisResult, Severity


logger = logging.getLogger(__name__)


ANALYSIS_PROMPT = """You are a visual assistant for a blind or low-vision person. \
Analyze this image IN REAL TIME.

ALWAYS name the SPECIFIC objects you see. Never answer only "all clear".

Highest priority, immediate dangers:
1. Dangerous obstacles: steps going down, holes, drops, sharp objects, moving
   vehicles nearby, people running toward the camera, wet or slippery floors.
2. Navigation obstacles: posts or columns in the path, street furniture,
   open doors, low windows, surface changes, crowds.
3. Banknotes: identify the denomination and flag anything that looks fake.
4. Objects: name every main object visible (people, animals, vehicles,
   furniture, appliances, tools, food, doors, windows, stairs).

Answer ONLY with this JSON:
{
  "type": "obstacle|currency|general|objects",
  "severity": "safe|warning|danger",
  "message": "Specific description of what you see, naming objects",
  "confidence": number between 0.7 and 1.0
}

Severity:
- "danger": steps, holes, traffic, sharp objects, fake banknotes
- "warning": minor obstacles, crowds, doubtful banknotes
- "safe": clear path plus the specific objects present, genuine banknotes"""


class BackendError(Exception):
    """Raised when the inference backend call fails for any reason."""
    pass


class InferenceBackend(Protocol):
    """
    Protocol for vision inference backends.

    All implementations must provide an async `analyze` method that takes
    the encoded image and returns an AnalysisResult, raising BackendError
    on failure.
    """

    async def analyze(self, image_payload: bytes) -> AnalysisResult:
        """
        Classify an image.

        Args:
            image_payload: Encoded image bytes (JPEG or PNG)

        Returns:
            AnalysisResult from the backend
        """
        ...


class MockInferenceBackend:
    """
    Deterministic mock backend for development and testing.

    The same payload always yields the same result, chosen from a small
    fixed set of scenes using a checksum of the payload.

    Attributes:
        latency_seconds: Simulated inference latency
        call_count: Number of analyze() calls
    """

    SCENES = (
        AnalysisResult(
            kind=AnalysisKind.OBJECTS,
            severity=Severity.SAFE,
            message="A wooden table with two blue chairs and a white mug on top",
            confidence=0.9,
        ),
        AnalysisResult(
            kind=AnalysisKind.OBSTACLE,
            severity=Severity.WARNING,
            message="Lamp post about one meter ahead with a bicycle leaning on it",
            confidence=0.85,
        ),
        AnalysisResult(
            kind=AnalysisKind.OBSTACLE,
            severity=Severity.DANGER,
            message="Step down of about 20 centimeters next to a metal door",
            confidence=0.92,
        ),
        AnalysisResult(
            kind=AnalysisKind.GENERAL,
            severity=Severity.SAFE,
            message="Clear concrete path with a metal bench and two large trees",
            confidence=0.88,
        ),
    )

    def __init__(self, latency_seconds: float = 0.0) -> None:
        self.latency_seconds = latency_seconds
        self.call_count: int = 0
        logger.info(f"MockInferenceBackend initialized: latency={latency_seconds}s")

    async def analyze(self, image_payload: bytes) -> AnalysisResult:
        self.call_count += 1
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)
        index = zlib.crc32(image_payload) % len(self.SCENES)
        return self.SCENES[index]


class OpenAIVisionBackend:
    """
    Vision backend using an OpenAI-compatible chat completions API.

    Sends the image as a data URL alongside a fixed task instruction and
    asks for a JSON object response.

    Attributes:
        api_url: Chat completions endpoint
        model: Vision-capable model name
        max_tokens: Completion token limit
        temperature: Sampling temperature
        timeout: HTTP timeout in seconds
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.openai.com/v1/chat/completions",
        model: str = "gpt-4o-mini",
        max_tokens: int = 200,
        temperature: float = 0.0,
        timeout: float = 25.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            api_key: Bearer token for the API
            api_url: Chat completions endpoint
            model: Model name
            max_tokens: Completion token limit
            temperature: Sampling temperature
            timeout: HTTP timeout in seconds
            session: Optional requests session (for connection reuse)

        Raises:
            BackendError: If no API key is configured
        """
        if not api_key:
            raise BackendError("API key not configured for OpenAIVisionBackend")

        self.api_url = api_url
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })
        self._call_count: int = 0
        self._error_count: int = 0

        logger.info(f"OpenAIVisionBackend initialized: model={model}, url={api_url}")

    @classmethod
    def from_env(cls, api_key_env: str = "OPENAI_API_KEY", **kwargs) -> "OpenAIVisionBackend":
        """Build the backend reading the API key from the environment."""
        return cls(api_key=os.environ.get(api_key_env, ""), **kwargs)

    async def analyze(self, image_payload: bytes) -> AnalysisResult:
        self._call_count += 1
        try:
            body = await asyncio.to_thread(self._post, image_payload)
            content = self._extract_content(body)
        except BackendError:
            self._error_count += 1
            raise

        parsed = parse_analysis_payload(content)
        if isinstance(parsed, ParseFailure):
            self._error_count += 1
            raise BackendError(f"Unusable backend response: {parsed.reason}")
        return parsed

    def _post(self, image_payload: bytes) -> dict:
        """Blocking HTTP call (runs in a worker thread)."""
        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": ANALYSIS_PROMPT},
                        {"type": "image_url", "image_url": {"url": to_data_url(image_payload)}},
                    ],
                }
            ],
            "response_format": {"type": "json_object"},
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        try:
            response = self._session.post(self.api_url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise BackendError(f"Backend request failed: {e}") from e

        if not response.ok:
            logger.error(f"Backend API error: {response.status_code} - {response.text[:200]}")
            raise BackendError(f"Backend API error: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Backend returned non-JSON body: {e}") from e

    @staticmethod
    def _extract_content(body: dict) -> object:
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise BackendError(f"Backend response missing content: {e}") from e
        if not content:
            raise BackendError("Backend response has empty content")
        return content

    def get_metrics(self) -> dict:
        """Get backend metrics for observability."""
        return {
            "model": self.model,
            "call_count": self._call_count,
            "error_count": self._error_count,
        }


def to_data_url(image_payload: bytes) -> str:
    """Wrap encoded image bytes in a base64 data URL."""
    mime = "image/png" if image_payload.startswith(b"\x89PNG") else "image/jpeg"
    encoded = base64.b64encode(image_payload).decode("ascii")
    return f"data:{mime};base64,{encoded}"

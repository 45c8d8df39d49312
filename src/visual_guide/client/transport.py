"""
Gateway Transport
=================

HTTP client for POST /analyze-image on the analysis gateway.

Design Rules:
    - Blocking requests calls run in a worker thread
    - Every failure (connection, timeout, HTTP status, malformed body) is
      raised as GatewayError; envelope flags are NOT failures
"""

import asyncio
import base64
import logging
from typing import Optional

import requests
from pydantic import ValidationError

from visual_guide.models.analysis import ResultEnvelope


logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when the gateway cannot be reached or returns an unusable body."""
    pass


class GatewayTransport:
    """
    Sends encoded images to the analysis gateway.

    Attributes:
        base_url: Gateway root URL
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 35.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/analyze-image"

    async def analyze(self, image_payload: bytes) -> ResultEnvelope:
        """
        Submit an image for analysis.

        Args:
            image_payload: JPEG bytes

        Returns:
            ResultEnvelope as returned by the gateway

        Raises:
            GatewayError: On any transport or decoding failure
        """
        return await asyncio.to_thread(self._post, image_payload)

    def _post(self, image_payload: bytes) -> ResultEnvelope:
        body = {"image": base64.b64encode(image_payload).decode("ascii")}

        try:
            response = self._session.post(self.endpoint, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise GatewayError(f"Gateway request failed: {e}") from e

        if not response.ok:
            raise GatewayError(f"Gateway returned HTTP {response.status_code}")

        try:
            return ResultEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise GatewayError(f"Malformed gateway response: {e}") from e

    def close(self) -> None:
        self._session.close()

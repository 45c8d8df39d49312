"""
VisualGuide Gateway Application
===============================

FastAPI entry point for the analysis gateway.

Endpoints:
    GET  /               - Service information
    GET  /health         - Liveness probe
    GET  /metrics        - Gateway counters (rate limiter, cache, queue)
    POST /analyze-image  - Analyze a base64 image

Response Codes (POST /analyze-image):
    200: Any analysis outcome, including throttled and fallback results
    400: Image is not valid base64
    422: Body is missing the image field
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from visual_guide.config import settings
from visual_guide.gateway import AnalysisGateway
from visual_guide.models.analysis import AnalyzeImageRequest


logger = logging.getLogger(__name__)


UNKNOWN_CLIENT = "unknown-client"


def client_id_from(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Order: first X-Forwarded-For entry, X-Real-IP, socket peer, fallback.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client is not None and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


def get_gateway(request: Request) -> AnalysisGateway:
    return request.app.state.gateway


# =============================================================================
# Application Factory
# =============================================================================

def create_app(gateway: Optional[AnalysisGateway] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        gateway: Pre-built gateway (built from settings on startup if None)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan: build the gateway, close it on shutdown."""
        app.state.started_at = time.time()
        logger.info(f"Starting {settings.service.name} {settings.service.version}")

        owned = gateway is None
        app.state.gateway = gateway or AnalysisGateway.from_settings(settings)

        yield

        logger.info("Shutting down gracefully...")
        if owned:
            await app.state.gateway.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="VisualGuide Gateway",
        description="Rate-limited, cached vision analysis for continuous guidance",
        version=settings.service.version,
        lifespan=lifespan,
    )

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "VisualGuide Gateway",
            "name": settings.service.name,
            "version": settings.service.version,
            "status": "running",
            "backend": settings.backend.kind,
        })

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Liveness probe. Always 200 while the process is up."""
        started_at = getattr(request.app.state, "started_at", time.time())
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - started_at, 1),
        })

    @app.get("/metrics")
    async def metrics(request: Request) -> JSONResponse:
        """Gateway counters for observability."""
        return JSONResponse(get_gateway(request).get_metrics())

    @app.post("/analyze-image")
    async def analyze_image(body: AnalyzeImageRequest, request: Request) -> JSONResponse:
        """
        Analyze one image.

        Throttling and backend failures still return 200 with a
        narration-ready fallback and the matching envelope flag.
        """
        try:
            payload = body.decode_payload()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        envelope = await get_gateway(request).analyze(payload, client_id_from(request))
        return JSONResponse(envelope.to_wire())

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the gateway with uvicorn."""
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "visual_guide.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()

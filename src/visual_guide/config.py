"""
VisualGuide Configuration
=========================

This module handles configuration loading for both halves of the pipeline:
the analysis gateway and the capture client.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    VISUAL_GUIDE_MAX_PER_WINDOW     -> rate_limit.max_per_window
    VISUAL_GUIDE_WINDOW_SECONDS     -> rate_limit.window_seconds
    VISUAL_GUIDE_MIN_SPACING        -> rate_limit.min_spacing_seconds
    VISUAL_GUIDE_CACHE_TTL          -> cache.ttl_seconds
    VISUAL_GUIDE_CACHE_MAX_ENTRIES  -> cache.max_entries
    VISUAL_GUIDE_QUEUE_PACING       -> queue.pacing_seconds
    VISUAL_GUIDE_QUEUE_SATURATION   -> queue.saturation_threshold
    VISUAL_GUIDE_BACKEND            -> backend.kind
    VISUAL_GUIDE_BACKEND_MODEL      -> backend.model
    VISUAL_GUIDE_BACKEND_URL        -> backend.api_url
    VISUAL_GUIDE_GATEWAY_URL        -> client.gateway_url
    VISUAL_GUIDE_CAMERA_INDEX       -> capture.camera_index
    VISUAL_GUIDE_PORT               -> server.port
    VISUAL_GUIDE_LOG_LEVEL          -> logging.level
    PORT                            -> server.port (Cloud Run)

Example:
    from visual_guide.config import settings

    print(settings.rate_limit.max_per_window)
    print(settings.capture.static_cooldown_seconds)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="visual-guide-gateway", description="Service name")
    version: str = Field(default="v0.1.0", description="Protocol version")


class RateLimitConfig(BaseModel):
    """Per-client admission limits."""

    max_per_window: int = Field(
        default=3,
        ge=1,
        description="Maximum admitted analyses per client per window",
    )
    window_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Length of the fixed rate-limit window",
    )
    min_spacing_seconds: float = Field(
        default=15.0,
        ge=0,
        description="Minimum time between two admitted analyses of a client",
    )


class CacheConfig(BaseModel):
    """Result cache configuration."""

    ttl_seconds: float = Field(default=300.0, gt=0, description="Entry time-to-live")
    max_entries: int = Field(default=50, ge=1, description="Maximum cached results")
    sweep_probability: float = Field(
        default=0.1,
        ge=0,
        le=1.0,
        description="Probability that a request triggers a cache sweep",
    )
    fingerprint_prefix_bytes: int = Field(
        default=100,
        ge=1,
        description="Payload prefix length used for fingerprints",
    )


class QueueConfig(BaseModel):
    """Admission and serialization queue configuration."""

    pacing_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Minimum gap between consecutive backend calls",
    )
    saturation_threshold: int = Field(
        default=5,
        ge=0,
        description="Queue depth above which requests get a fallback",
    )
    call_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Ceiling for a single backend call",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Ceiling for queue wait plus backend call",
    )


class BackendConfig(BaseModel):
    """Vision inference backend configuration."""

    kind: str = Field(
        default="mock",
        description="Inference backend: 'mock' or 'openai'",
    )
    api_url: str = Field(
        default="https://api.openai.com/v1/chat/completions",
        description="Chat completions endpoint",
    )
    model: str = Field(default="gpt-4o-mini", description="Vision model name")
    api_key_env: str = Field(
        default="OPENAI_API_KEY",
        description="Environment variable holding the API key",
    )
    max_tokens: int = Field(default=200, ge=1, description="Completion token limit")
    temperature: float = Field(default=0.0, ge=0, le=2.0)
    http_timeout_seconds: float = Field(default=25.0, gt=0)


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8010, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class CaptureConfig(BaseModel):
    """Client-side capture and trigger scheduling."""

    camera_index: int = Field(default=0, ge=0, description="OpenCV camera index")
    poll_interval_seconds: float = Field(
        default=0.5,
        gt=0,
        description="Interval between motion polls",
    )
    motion_width: int = Field(default=160, ge=8, description="Motion frame width")
    motion_height: int = Field(default=120, ge=8, description="Motion frame height")
    motion_threshold: float = Field(
        default=50.0,
        ge=0,
        description="Mean channel delta above which motion is significant",
    )
    sample_step: int = Field(
        default=8,
        ge=1,
        description="Compare every Nth pixel",
    )
    min_interval_between_analysis_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Cooldown between motion-triggered analyses",
    )
    static_cooldown_seconds: float = Field(
        default=8.0,
        gt=0,
        description="Re-analyze a static scene after this long",
    )
    replay_after_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Replay the last result only after this long since a trigger",
    )
    replay_interval_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Minimum gap between replays of the last result",
    )


class ClientConfig(BaseModel):
    """Analysis client configuration."""

    gateway_url: str = Field(
        default="http://localhost:8010",
        description="Base URL of the analysis gateway",
    )
    request_timeout_seconds: float = Field(default=35.0, gt=0)
    max_dimension: int = Field(
        default=320,
        ge=16,
        description="Largest side of the uploaded frame in pixels",
    )
    jpeg_quality: int = Field(default=30, ge=1, le=100)
    failure_confidence_decrement: float = Field(
        default=0.2,
        ge=0,
        le=1.0,
        description="Confidence lost per consecutive failure",
    )
    failure_confidence_floor: float = Field(
        default=0.5,
        ge=0,
        le=1.0,
        description="Lowest confidence of a replayed result",
    )
    default_retry_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Retry delay when the gateway gives no wait time",
    )


class Settings(BaseModel):
    """
    Main settings class for VisualGuide.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Rate limiting
    if env_max := os.environ.get("VISUAL_GUIDE_MAX_PER_WINDOW"):
        config_data.setdefault("rate_limit", {})["max_per_window"] = int(env_max)
    if env_window := os.environ.get("VISUAL_GUIDE_WINDOW_SECONDS"):
        config_data.setdefault("rate_limit", {})["window_seconds"] = float(env_window)
    if env_spacing := os.environ.get("VISUAL_GUIDE_MIN_SPACING"):
        config_data.setdefault("rate_limit", {})["min_spacing_seconds"] = float(env_spacing)

    # Cache
    if env_ttl := os.environ.get("VISUAL_GUIDE_CACHE_TTL"):
        config_data.setdefault("cache", {})["ttl_seconds"] = float(env_ttl)
    if env_entries := os.environ.get("VISUAL_GUIDE_CACHE_MAX_ENTRIES"):
        config_data.setdefault("cache", {})["max_entries"] = int(env_entries)

    # Queue
    if env_pacing := os.environ.get("VISUAL_GUIDE_QUEUE_PACING"):
        config_data.setdefault("queue", {})["pacing_seconds"] = float(env_pacing)
    if env_sat := os.environ.get("VISUAL_GUIDE_QUEUE_SATURATION"):
        config_data.setdefault("queue", {})["saturation_threshold"] = int(env_sat)

    # Backend
    if env_backend := os.environ.get("VISUAL_GUIDE_BACKEND"):
        config_data.setdefault("backend", {})["kind"] = env_backend
    if env_model := os.environ.get("VISUAL_GUIDE_BACKEND_MODEL"):
        config_data.setdefault("backend", {})["model"] = env_model
    if env_api := os.environ.get("VISUAL_GUIDE_BACKEND_URL"):
        config_data.setdefault("backend", {})["api_url"] = env_api

    # Client side
    if env_gateway := os.environ.get("VISUAL_GUIDE_GATEWAY_URL"):
        config_data.setdefault("client", {})["gateway_url"] = env_gateway
    if env_camera := os.environ.get("VISUAL_GUIDE_CAMERA_INDEX"):
        config_data.setdefault("capture", {})["camera_index"] = int(env_camera)

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("VISUAL_GUIDE_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    if env_log := os.environ.get("VISUAL_GUIDE_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)

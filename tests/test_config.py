"""
Configuration Tests
===================
"""

import pytest
from pydantic import ValidationError

from visual_guide.config import Settings, load_config


class TestLoadConfig:
    """Test YAML loading and environment overrides."""

    def test_defaults(self, tmp_path):
        settings = load_config(str(tmp_path / "missing.yaml"))

        assert settings.rate_limit.max_per_window == 3
        assert settings.rate_limit.min_spacing_seconds == 15
        assert settings.cache.ttl_seconds == 300
        assert settings.cache.max_entries == 50
        assert settings.queue.saturation_threshold == 5
        assert settings.capture.static_cooldown_seconds == 8
        assert settings.client.failure_confidence_floor == 0.5

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "rate_limit:\n"
            "  max_per_window: 10\n"
            "capture:\n"
            "  motion_threshold: 30\n"
        )

        settings = load_config(str(path))

        assert settings.rate_limit.max_per_window == 10
        assert settings.capture.motion_threshold == 30
        assert settings.rate_limit.window_seconds == 60

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("backend:\n  kind: mock\nserver:\n  port: 9000\n")
        monkeypatch.setenv("VISUAL_GUIDE_BACKEND", "openai")
        monkeypatch.setenv("VISUAL_GUIDE_MIN_SPACING", "5")
        monkeypatch.setenv("PORT", "8080")

        settings = load_config(str(path))

        assert settings.backend.kind == "openai"
        assert settings.rate_limit.min_spacing_seconds == 5.0
        assert settings.server.port == 8080

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"cache": {"sweep_probability": 1.5}})

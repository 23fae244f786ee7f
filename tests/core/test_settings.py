"""Tests for Settings."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from cluster_whisperer.settings import Settings, settings

_TRACING_ENV = (
    "OTEL_TRACING_ENABLED",
    "OTEL_EXPORTER_TYPE",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_CAPTURE_AI_PAYLOADS",
    "OTEL_SERVICE_NAME",
    "KUBECTL_TIMEOUT_SECONDS",
)


class TestSettings:
    """Test Settings configuration."""

    def test_default_values(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        """Defaults apply when no env vars or .env file are present."""
        monkeypatch.chdir(tmp_path)
        for name in _TRACING_ENV:
            monkeypatch.delenv(name, raising=False)

        s = Settings()

        assert s.otel_tracing_enabled is False
        assert s.otel_exporter_type == "console"
        assert s.otel_exporter_otlp_endpoint == ""
        assert s.otel_capture_ai_payloads is False
        assert s.otel_service_name == "cluster-whisperer"
        assert s.kubectl_timeout_seconds == 30.0

    @patch.dict(
        os.environ,
        {
            "OTEL_TRACING_ENABLED": "true",
            "OTEL_EXPORTER_TYPE": "otlp",
            "OTEL_EXPORTER_OTLP_ENDPOINT": "http://localhost:4318",
            "OTEL_CAPTURE_AI_PAYLOADS": "1",
            "OTEL_SERVICE_NAME": "whisperer-dev",
            "KUBECTL_TIMEOUT_SECONDS": "12.5",
        },
    )
    def test_env_variable_loading(self):
        """Test loading settings from environment variables."""
        s = Settings()
        assert s.otel_tracing_enabled is True
        assert s.otel_exporter_type == "otlp"
        assert s.otel_exporter_otlp_endpoint == "http://localhost:4318"
        assert s.otel_capture_ai_payloads is True
        assert s.otel_service_name == "whisperer-dev"
        assert s.kubectl_timeout_seconds == 12.5

    @patch.dict(os.environ, {"OTEL_TRACING_ENABLED": "true", "UNKNOWN_SETTING": "should-be-ignored"})
    def test_extra_env_ignored(self):
        """Unknown environment variables are ignored."""
        s = Settings()
        assert s.otel_tracing_enabled is True
        assert not hasattr(s, "unknown_setting")

    def test_env_file_loading(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        """Values are read from a .env file in the working directory."""
        monkeypatch.chdir(tmp_path)
        for name in _TRACING_ENV:
            monkeypatch.delenv(name, raising=False)
        (tmp_path / ".env").write_text("OTEL_TRACING_ENABLED=true\nOTEL_EXPORTER_TYPE=otlp\n")

        s = Settings()
        assert s.otel_tracing_enabled is True
        assert s.otel_exporter_type == "otlp"

    @patch.dict(os.environ, {"OTEL_TRACING_ENABLED": "not-a-bool"})
    def test_invalid_bool_rejected(self):
        with pytest.raises(ValidationError):
            Settings()

    def test_settings_frozen(self):
        s = Settings()
        with pytest.raises(ValidationError):
            s.otel_tracing_enabled = True  # type: ignore[misc]

    def test_module_instance(self):
        assert isinstance(settings, Settings)

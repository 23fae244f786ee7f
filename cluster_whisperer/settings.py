"""Core configuration settings for cluster-whisperer.

Settings are loaded from environment variables with .env file support via
pydantic-settings.

Environment variables:
    OTEL_TRACING_ENABLED: "true" to enable tracing (default: disabled)
    OTEL_EXPORTER_TYPE: "console" (default) or "otlp"
    OTEL_EXPORTER_OTLP_ENDPOINT: Collector URL, required when OTEL_EXPORTER_TYPE=otlp
    OTEL_CAPTURE_AI_PAYLOADS: "true" to record questions, tool input/output and answers
    OTEL_SERVICE_NAME: service.name resource attribute (default: cluster-whisperer)
    KUBECTL_TIMEOUT_SECONDS: Timeout for a single kubectl invocation (default: 30)

Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file in current directory
    3. Default values

Example:
    >>> from cluster_whisperer.settings import settings
    >>> settings.otel_tracing_enabled
    False

Note:
    Settings are loaded once at module import and frozen. The process must be
    restarted to pick up changes to environment variables or the .env file.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

ExporterType = Literal["console", "otlp"]


class Settings(BaseSettings):
    """Configuration for tracing and the kubectl collaborator.

    Attributes:
        otel_tracing_enabled: Master switch. When false the tracer is the no-op
            implementation and no context store entries are created.

        otel_exporter_type: Where finished spans go. "console" prints one JSON
            line per span, "otlp" batches spans to a collector.

        otel_exporter_otlp_endpoint: Collector base URL (e.g. http://localhost:4318).
            "/v1/traces" is appended when missing.

        otel_capture_ai_payloads: Content gating. Off by default because questions,
            tool arguments and answers may contain sensitive cluster data.

        otel_service_name: Value of the service.name resource attribute.

        kubectl_timeout_seconds: Upper bound for a single kubectl call.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Tracing
    otel_tracing_enabled: bool = False
    otel_exporter_type: str = "console"
    otel_exporter_otlp_endpoint: str = ""
    otel_capture_ai_payloads: bool = False
    otel_service_name: str = "cluster-whisperer"

    # kubectl collaborator
    kubectl_timeout_seconds: float = 30.0


settings = Settings()
"""Global settings instance, created at import time."""

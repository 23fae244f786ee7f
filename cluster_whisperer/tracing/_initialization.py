"""Tracing initialization.

Provides ``initialize_tracing()`` as the single entry point for building the
tracing bundle. There is no global tracer: the returned ``Tracing`` object is
passed to whatever needs to open spans.
"""

import subprocess
from collections.abc import Sequence
from typing import get_args

from opentelemetry.sdk.trace import SpanProcessor
from pydantic import BaseModel, ConfigDict

from cluster_whisperer.exceptions import TracingConfigError
from cluster_whisperer.logging import get_logger
from cluster_whisperer.settings import ExporterType, Settings, settings

from ._context_store import AnyContextStore, ContextStore, NoOpContextStore
from ._root import RootSpanManager
from ._sinks import ConsoleSink, OtlpSink, SpanSink
from ._subprocess import Runner, SubprocessSpanRecorder
from ._tool_definitions import ToolDefinition, ToolDefinitionsProcessor
from ._tracer import AnyTracer, NoOpTracer, Tracer

logger = get_logger(__name__)


class TracingConfig(BaseModel):
    """Configuration for the tracing bundle."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    exporter: str = "console"
    otlp_endpoint: str = ""
    capture_content: bool = False
    service_name: str = "cluster-whisperer"
    kubectl_timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "TracingConfig":
        """Build from framework Settings."""
        source = source or settings
        return cls(
            enabled=source.otel_tracing_enabled,
            exporter=source.otel_exporter_type,
            otlp_endpoint=source.otel_exporter_otlp_endpoint,
            capture_content=source.otel_capture_ai_payloads,
            service_name=source.otel_service_name,
            kubectl_timeout_seconds=source.kubectl_timeout_seconds,
        )


def build_sink(config: TracingConfig) -> SpanSink:
    """Create the exporter sink named by ``config.exporter``.

    Raises:
        TracingConfigError: Unknown exporter, or ``otlp`` without an endpoint.
    """
    exporter = config.exporter.strip().lower()
    if exporter not in get_args(ExporterType):
        raise TracingConfigError(
            f"Unknown exporter type {config.exporter!r}. Expected one of: {', '.join(get_args(ExporterType))}"
        )
    if exporter == "otlp":
        if not config.otlp_endpoint:
            raise TracingConfigError("OTEL_EXPORTER_OTLP_ENDPOINT is required when OTEL_EXPORTER_TYPE=otlp")
        return OtlpSink(config.otlp_endpoint)
    return ConsoleSink()


class Tracing:
    """Injected tracing bundle: tracer, context store and root span manager."""

    def __init__(
        self,
        tracer: AnyTracer,
        store: AnyContextStore,
        *,
        capture_content: bool = False,
        kubectl_timeout_seconds: float = 30.0,
    ) -> None:
        self.tracer = tracer
        self.store = store
        self.capture_content = capture_content
        self.kubectl_timeout_seconds = kubectl_timeout_seconds
        self.roots = RootSpanManager(tracer, store, capture_content=capture_content)

    @property
    def enabled(self) -> bool:
        return self.tracer.enabled

    def recorder(
        self,
        *,
        executable: str = "kubectl",
        timeout_seconds: float | None = None,
        runner: Runner = subprocess.run,
    ) -> SubprocessSpanRecorder:
        """Subprocess recorder sharing this bundle's tracer."""
        return SubprocessSpanRecorder(
            self.tracer,
            executable=executable,
            timeout_seconds=self.kubectl_timeout_seconds if timeout_seconds is None else timeout_seconds,
            runner=runner,
        )

    def flush(self, timeout_millis: int = 30000) -> bool:
        """Flush pending spans to the sink."""
        return self.tracer.flush(timeout_millis)

    def shutdown(self) -> None:
        """Flush pending spans and release sink resources."""
        self.tracer.shutdown()


def initialize_tracing(
    config: TracingConfig | None = None,
    *,
    sink: SpanProcessor | None = None,
    tool_definitions: Sequence[ToolDefinition] = (),
) -> Tracing:
    """Build the tracing bundle.

    Reads from Settings if no config is provided. When tracing is disabled the
    bundle holds a ``NoOpTracer`` and a ``NoOpContextStore``: no spans, no
    store entries, no exporter.

    Args:
        config: Tracing configuration.
        sink: Span processor to use instead of the one ``config.exporter`` names.
        tool_definitions: Tools whose schemas are attached to LLM chat spans.

    Raises:
        TracingConfigError: The enabled configuration names an unknown exporter
            or lacks a required endpoint.
    """
    if config is None:
        config = TracingConfig.from_settings()

    if not config.enabled:
        logger.debug("Tracing disabled")
        return Tracing(NoOpTracer(), NoOpContextStore(), kubectl_timeout_seconds=config.kubectl_timeout_seconds)

    if sink is None:
        sink = build_sink(config)
    processors = [ToolDefinitionsProcessor(tool_definitions)] if tool_definitions else []
    tracer = Tracer(sink, service_name=config.service_name, processors=processors)
    logger.info(f"Tracing enabled (exporter={config.exporter}, capture_content={config.capture_content})")
    return Tracing(
        tracer,
        ContextStore(),
        capture_content=config.capture_content,
        kubectl_timeout_seconds=config.kubectl_timeout_seconds,
    )

"""cluster-whisperer tracing core.

Hierarchical, causally-correct traces for AI Kubernetes investigations: one
root span per question (or per externally-triggered tool call), tool spans
nested under it, and kubectl spans nested under those. Parent links survive
reasoning loops that lose the ambient context, and concurrent investigations
never share trace state.

Quick Start:
    >>> from cluster_whisperer import initialize_tracing, build_kubectl_tools, KUBECTL_TOOL_DEFINITIONS
    >>>
    >>> tracing = initialize_tracing(tool_definitions=KUBECTL_TOOL_DEFINITIONS)
    >>> kubectl = build_kubectl_tools(tracing.recorder())
    >>>
    >>> async def run(investigation):
    ...     get = investigation.wrap_tool("kubectl_get", kubectl["kubectl_get"])
    ...     return await reasoning_loop(question, tools={"kubectl_get": get})
    >>>
    >>> answer = await tracing.roots.investigate(question, run)
    >>> tracing.shutdown()

Environment Variables:
    - OTEL_TRACING_ENABLED: "true" to enable tracing
    - OTEL_EXPORTER_TYPE: "console" or "otlp"
    - OTEL_EXPORTER_OTLP_ENDPOINT: Collector URL for the otlp exporter
    - OTEL_CAPTURE_AI_PAYLOADS: "true" to record questions, tool payloads and answers
"""

from .exceptions import ClusterWhispererError, ToolInputError, TracingConfigError
from .logging import get_logger, setup_logging
from .settings import Settings, settings
from .tools import KUBECTL_TOOL_DEFINITIONS, build_kubectl_tools
from .tracing import (
    ContextStore,
    Investigation,
    RootSpanManager,
    SubprocessSpanRecorder,
    ToolCallResult,
    Tracer,
    Tracing,
    TracingConfig,
    format_trace_output,
    initialize_tracing,
    trace_tool,
)

__version__ = "0.1.0"

__all__ = [
    "KUBECTL_TOOL_DEFINITIONS",
    "ClusterWhispererError",
    "ContextStore",
    "Investigation",
    "RootSpanManager",
    "Settings",
    "SubprocessSpanRecorder",
    "ToolCallResult",
    "ToolInputError",
    "Tracer",
    "Tracing",
    "TracingConfig",
    "TracingConfigError",
    "__version__",
    "build_kubectl_tools",
    "format_trace_output",
    "get_logger",
    "initialize_tracing",
    "settings",
    "setup_logging",
    "trace_tool",
]

"""Trace/span propagation core.

Produces one trace per investigation: a root span, the tool spans nested under
it, and the kubectl spans nested under those. Parent links survive reasoning
loops that drop the ambient OTel context, via the keyed ``ContextStore``.
"""

from cluster_whisperer.tracing._context_store import AnyContextStore, ContextStore, NoOpContextStore
from cluster_whisperer.tracing._initialization import Tracing, TracingConfig, build_sink, initialize_tracing
from cluster_whisperer.tracing._models import (
    SpanKind,
    SpanRecord,
    SpanRequest,
    SpanStatus,
    TextContent,
    ToolCallResult,
    TraceContext,
    new_child,
    new_root,
)
from cluster_whisperer.tracing._root import Investigation, RootSpanManager, format_trace_output
from cluster_whisperer.tracing._sinks import ConsoleSink, NoOpSink, OtlpSink, SpanSink, normalize_otlp_endpoint
from cluster_whisperer.tracing._subprocess import (
    CommandResult,
    SubprocessSpanRecorder,
    flag_value,
    positional_args,
    redact_args,
    span_name,
)
from cluster_whisperer.tracing._tool_definitions import ToolDefinition, ToolDefinitionsProcessor
from cluster_whisperer.tracing._tool_tracing import trace_tool
from cluster_whisperer.tracing._tracer import AnySpan, AnyTracer, NoOpSpan, NoOpTracer, Span, Tracer

__all__ = [
    "AnyContextStore",
    "AnySpan",
    "AnyTracer",
    "CommandResult",
    "ConsoleSink",
    "ContextStore",
    "Investigation",
    "NoOpContextStore",
    "NoOpSink",
    "NoOpSpan",
    "NoOpTracer",
    "OtlpSink",
    "RootSpanManager",
    "Span",
    "SpanKind",
    "SpanRecord",
    "SpanRequest",
    "SpanSink",
    "SpanStatus",
    "SubprocessSpanRecorder",
    "TextContent",
    "ToolCallResult",
    "ToolDefinition",
    "ToolDefinitionsProcessor",
    "TraceContext",
    "Tracer",
    "Tracing",
    "TracingConfig",
    "build_sink",
    "flag_value",
    "format_trace_output",
    "initialize_tracing",
    "new_child",
    "new_root",
    "normalize_otlp_endpoint",
    "positional_args",
    "redact_args",
    "span_name",
    "trace_tool",
]

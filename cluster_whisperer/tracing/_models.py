"""Span and trace value types, plus the attribute names used across the tracing core.

Nothing here performs I/O. Live spans are OpenTelemetry SDK spans owned by
``Tracer``; this module describes their identity (``TraceContext``,
``SpanRequest``) and their exported form (``SpanRecord``). Tool results
(``ToolCallResult``) live here too, since several span wrappers inspect them.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal

from opentelemetry import trace as otel_trace
from opentelemetry.context import Context
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.trace import NonRecordingSpan, SpanContext, StatusCode, TraceFlags
from pydantic import BaseModel, ConfigDict, Field

# --- Attribute names ---
# Domain keys live under "cluster_whisperer.*"; everything else follows the
# OpenTelemetry semantic conventions (or OpenLLMetry's "traceloop.*" keys).

ATTR_SERVICE_OPERATION = "cluster_whisperer.service.operation"
ATTR_USER_QUESTION = "cluster_whisperer.user.question"
ATTR_MCP_TOOL_NAME = "cluster_whisperer.mcp.tool.name"
ATTR_K8S_OPERATION = "cluster_whisperer.k8s.operation"
ATTR_K8S_RESOURCE = "cluster_whisperer.k8s.resource"
ATTR_K8S_ALL_NAMESPACES = "cluster_whisperer.k8s.all_namespaces"
ATTR_K8S_OUTPUT_SIZE = "cluster_whisperer.k8s.output_size_bytes"

ATTR_ENTITY_SPAN_KIND = "traceloop.span.kind"
ATTR_ENTITY_NAME = "traceloop.entity.name"
ATTR_ENTITY_INPUT = "traceloop.entity.input"
ATTR_ENTITY_OUTPUT = "traceloop.entity.output"

ATTR_GEN_AI_OPERATION = "gen_ai.operation.name"
ATTR_GEN_AI_TOOL_NAME = "gen_ai.tool.name"
ATTR_GEN_AI_TOOL_TYPE = "gen_ai.tool.type"
ATTR_GEN_AI_TOOL_CALL_ID = "gen_ai.tool.call.id"
ATTR_GEN_AI_TOOL_ARGUMENTS = "gen_ai.tool.call.arguments"
ATTR_GEN_AI_TOOL_INPUT = "gen_ai.tool.input"
ATTR_GEN_AI_TOOL_OUTPUT = "gen_ai.tool.output"
ATTR_GEN_AI_TOOL_DURATION = "gen_ai.tool.duration_ms"
ATTR_GEN_AI_TOOL_SUCCESS = "gen_ai.tool.success"
ATTR_GEN_AI_TOOL_DEFINITIONS = "gen_ai.tool.definitions"

ATTR_PROCESS_EXECUTABLE = "process.executable.name"
ATTR_PROCESS_ARGS = "process.command_args"
ATTR_PROCESS_EXIT_CODE = "process.exit.code"
ATTR_K8S_NAMESPACE = "k8s.namespace.name"
ATTR_ERROR_TYPE = "error.type"


class SpanKind(StrEnum):
    """Span kinds used by the tracing core."""

    INTERNAL = "INTERNAL"  # reasoning and tool logic
    CLIENT = "CLIENT"  # outbound call to an external process

    def to_otel(self) -> otel_trace.SpanKind:
        """Return the matching OpenTelemetry span kind."""
        return otel_trace.SpanKind[self.value]


class SpanStatus(StrEnum):
    """Final outcome of a span."""

    UNSET = "UNSET"
    OK = "OK"
    ERROR = "ERROR"

    def to_otel(self) -> StatusCode:
        """Return the matching OpenTelemetry status code."""
        return StatusCode[self.value]

    @classmethod
    def from_otel(cls, code: StatusCode) -> "SpanStatus":
        """Map an OpenTelemetry status code back to SpanStatus."""
        return cls(code.name)


@dataclass(frozen=True, slots=True)
class TraceContext:
    """The minimum needed to parent a new span: ``(trace_id, active span_id)``."""

    trace_id: int
    span_id: int

    @property
    def is_valid(self) -> bool:
        """Both ids non-zero, as OpenTelemetry requires."""
        return self.trace_id != 0 and self.span_id != 0

    @property
    def trace_id_hex(self) -> str:
        """32-char lowercase hex trace id, as used on the wire."""
        return format(self.trace_id, "032x")

    @property
    def span_id_hex(self) -> str:
        """16-char lowercase hex span id, as used on the wire."""
        return format(self.span_id, "016x")

    def to_otel_context(self, context: Context | None = None) -> Context:
        """Return an OTel context whose current span carries these ids.

        The span placed in the context is non-recording; it only exists so the
        SDK parents new spans under it.
        """
        span_context = SpanContext(
            trace_id=self.trace_id,
            span_id=self.span_id,
            is_remote=False,
            trace_flags=TraceFlags(TraceFlags.SAMPLED),
        )
        return otel_trace.set_span_in_context(NonRecordingSpan(span_context), context)

    @classmethod
    def from_span_context(cls, span_context: SpanContext | None) -> "TraceContext | None":
        """Build from an OTel span context; ``None`` for an invalid one."""
        if span_context is None or not span_context.is_valid:
            return None
        return cls(trace_id=span_context.trace_id, span_id=span_context.span_id)

    @classmethod
    def current(cls, context: Context | None = None) -> "TraceContext | None":
        """Return the ambient trace context, or ``None`` outside any span."""
        return cls.from_span_context(otel_trace.get_current_span(context).get_span_context())


@dataclass(frozen=True, slots=True)
class SpanRequest:
    """Identity plan for a span about to be opened by a Tracer."""

    name: str
    kind: SpanKind = SpanKind.INTERNAL
    parent: TraceContext | None = None

    @property
    def is_root(self) -> bool:
        """Whether the span will open a new trace."""
        return self.parent is None

    @property
    def trace_id(self) -> int | None:
        """Inherited trace id; ``None`` for a root, whose id is allocated on open."""
        return self.parent.trace_id if self.parent is not None else None

    def parent_context(self) -> Context:
        """OTel context to open the span in. Roots get an empty context so ambient spans are ignored."""
        if self.parent is None:
            return Context()
        return self.parent.to_otel_context()


def new_root(name: str, kind: SpanKind = SpanKind.INTERNAL) -> SpanRequest:
    """Plan a root span. The tracer allocates a fresh trace id when it opens it."""
    return SpanRequest(name=name, kind=kind, parent=None)


def new_child(parent: TraceContext, name: str, kind: SpanKind = SpanKind.INTERNAL) -> SpanRequest:
    """Plan a child span inheriting ``parent.trace_id`` with ``parent_span_id = parent.span_id``."""
    return SpanRequest(name=name, kind=kind, parent=parent)


# --- Exported record ---


class SpanEventRecord(BaseModel):
    """A timestamped event attached to an exported span."""

    model_config = ConfigDict(frozen=True)

    name: str
    timestamp: int
    attributes: dict[str, Any] = Field(default_factory=dict)


class SpanRecord(BaseModel):
    """Wire/console form of a finished span.

    Ids are lowercase hex as in OTLP JSON. Times are nanoseconds since the
    epoch as reported by the SDK.
    """

    model_config = ConfigDict(frozen=True)

    trace_id: str
    span_id: str
    parent_span_id: str | None = None
    name: str
    kind: str
    start_time: int
    end_time: int
    attributes: dict[str, Any] = Field(default_factory=dict)
    status: SpanStatus = SpanStatus.UNSET
    status_message: str | None = None
    events: tuple[SpanEventRecord, ...] = ()

    @property
    def duration_ms(self) -> float:
        """Span duration in milliseconds."""
        return max(0, self.end_time - self.start_time) / 1_000_000

    @property
    def is_root(self) -> bool:
        """Whether this span has no parent."""
        return self.parent_span_id is None

    @classmethod
    def from_readable_span(cls, span: ReadableSpan) -> "SpanRecord":
        """Build a record from a finished SDK span.

        Raises:
            ValueError: The span carries no span context.
        """
        ctx = span.get_span_context()
        if ctx is None:
            raise ValueError(f"Span {span.name!r} has no span context")
        parent = span.parent
        return cls(
            trace_id=format(ctx.trace_id, "032x"),
            span_id=format(ctx.span_id, "016x"),
            parent_span_id=format(parent.span_id, "016x") if parent is not None else None,
            name=span.name,
            kind=span.kind.name,
            start_time=span.start_time or 0,
            end_time=span.end_time or 0,
            attributes={k: _plain_value(v) for k, v in (span.attributes or {}).items()},
            status=SpanStatus.from_otel(span.status.status_code),
            status_message=span.status.description,
            events=tuple(
                SpanEventRecord(
                    name=event.name,
                    timestamp=event.timestamp,
                    attributes={k: _plain_value(v) for k, v in (event.attributes or {}).items()},
                )
                for event in span.events
            ),
        )


def _plain_value(value: Any) -> Any:
    """Turn OTel attribute sequences (tuples) into lists for JSON output."""
    if isinstance(value, tuple):
        return list(value)
    return value


# --- Tool results ---


class TextContent(BaseModel):
    """One text block of a tool result."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolCallResult(BaseModel):
    """Result of a protocol-tool invocation: content blocks plus an error flag.

    ``is_error`` signals a logical failure (kubectl exited non-zero, bad input)
    reported as text rather than raised.
    """

    model_config = ConfigDict(frozen=True)

    content: tuple[TextContent, ...] = ()
    is_error: bool = False

    @property
    def text(self) -> str:
        """Non-empty text blocks joined by newlines."""
        return "\n".join(block.text for block in self.content if block.text)

    @classmethod
    def success(cls, text: str) -> "ToolCallResult":
        return cls(content=(TextContent(text=text),))

    @classmethod
    def failure(cls, text: str) -> "ToolCallResult":
        return cls(content=(TextContent(text=text),), is_error=True)


def result_is_error(result: Any) -> bool:
    """Whether a tool result reports a logical failure via an ``is_error`` flag."""
    if isinstance(result, Mapping):
        return bool(result.get("is_error") or result.get("isError"))
    return bool(getattr(result, "is_error", False))


def result_text(result: Any) -> str:
    """Best-effort text rendering of a tool result for span attributes."""
    if isinstance(result, str):
        return result
    if isinstance(result, ToolCallResult):
        return result.text
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    try:
        return json.dumps(result, default=str)
    except (TypeError, ValueError):
        return str(result)

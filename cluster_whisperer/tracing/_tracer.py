"""Tracer: opens spans on a private OpenTelemetry provider and hands them to a sink.

A ``Tracer`` is an injected dependency. It never touches the global OTel tracer
provider, so several tracers (or a test tracer next to a production one) can
live in one process. ``NoOpTracer`` has the same interface and does nothing.
"""

from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager, nullcontext
from typing import Any

from opentelemetry import trace as otel_trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.trace import Status

from cluster_whisperer.logging import get_logger

from ._models import SpanKind, SpanRequest, SpanStatus, TraceContext, new_child, new_root

logger = get_logger(__name__)

INSTRUMENTATION_NAME = "cluster_whisperer"

AttributeValue = str | bool | int | float
CloseFn = Callable[[], None]


def _clean_attributes(attributes: Mapping[str, Any] | None) -> dict[str, AttributeValue]:
    """Drop ``None`` values, which OpenTelemetry rejects with a warning."""
    if not attributes:
        return {}
    return {k: v for k, v in attributes.items() if v is not None}


class Span:
    """Handle on one live span.

    Wraps an SDK span so callers only see the operations the tracing core
    needs. Mutations after the span has ended are ignored by the SDK.
    """

    __slots__ = ("_span",)

    def __init__(self, otel_span: otel_trace.Span) -> None:
        self._span = otel_span

    @property
    def otel_span(self) -> otel_trace.Span:
        """The underlying OpenTelemetry span."""
        return self._span

    @property
    def context(self) -> TraceContext | None:
        """Trace context for parenting children of this span."""
        return TraceContext.from_span_context(self._span.get_span_context())

    @property
    def status(self) -> SpanStatus:
        status: Status | None = getattr(self._span, "status", None)
        return SpanStatus.UNSET if status is None else SpanStatus.from_otel(status.status_code)

    @property
    def is_recording(self) -> bool:
        return self._span.is_recording()

    @property
    def ended(self) -> bool:
        return getattr(self._span, "end_time", None) is not None

    def set_attribute(self, key: str, value: AttributeValue | None) -> None:
        """Set one attribute. ``None`` values are skipped."""
        if value is not None:
            self._span.set_attribute(key, value)

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        self._span.set_attributes(_clean_attributes(attributes))

    def set_status(self, status: SpanStatus, message: str | None = None) -> None:
        """Set the span status. A message is only kept for ``ERROR``."""
        description = message if status is SpanStatus.ERROR else None
        self._span.set_status(Status(status.to_otel(), description))

    def record_error(self, exc: BaseException, message: str | None = None) -> None:
        """Mark the span ``ERROR`` and attach an exception event."""
        self.set_status(SpanStatus.ERROR, message or str(exc) or type(exc).__name__)
        self._span.record_exception(exc)

    def add_event(self, name: str, attributes: Mapping[str, Any] | None = None) -> None:
        self._span.add_event(name, attributes=_clean_attributes(attributes))


def _make_close(span: Span) -> CloseFn:
    """Build the close function for ``span``: ends it once, ``UNSET`` becomes ``OK``."""
    closed = False

    def close() -> None:
        nonlocal closed
        if closed:
            return
        closed = True
        if span.status is SpanStatus.UNSET:
            span.set_status(SpanStatus.OK)
        span.otel_span.end()

    return close


class Tracer:
    """Creates spans, parents them, and forwards finished spans to a sink.

    Args:
        sink: Span processor receiving every finished span (an exporter sink,
            or any OTel ``SpanProcessor`` such as a ``SimpleSpanProcessor``).
        service_name: ``service.name`` resource attribute.
        processors: Extra processors registered before the sink (e.g. the
            tool definitions processor).
    """

    enabled = True

    def __init__(
        self,
        sink: SpanProcessor,
        *,
        service_name: str = "cluster-whisperer",
        processors: Sequence[SpanProcessor] = (),
    ) -> None:
        self._provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
        for processor in processors:
            self._provider.add_span_processor(processor)
        self._provider.add_span_processor(sink)
        self._sink = sink
        self._tracer = self._provider.get_tracer(INSTRUMENTATION_NAME)

    @property
    def sink(self) -> SpanProcessor:
        return self._sink

    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: TraceContext | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> tuple[Span, CloseFn]:
        """Open a span and return it with its close function.

        With an explicit ``parent`` the span is its child. Without one the
        ambient OTel context decides: child of the current span, or a new root
        when there is none. The store is never consulted here.
        """
        if parent is None:
            parent = TraceContext.current()
        request = new_root(name, kind) if parent is None else new_child(parent, name, kind)
        return self._open(request, attributes)

    def start_root_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> tuple[Span, CloseFn]:
        """Open a span that starts a new trace regardless of the ambient context."""
        return self._open(new_root(name, kind), attributes)

    def _open(self, request: SpanRequest, attributes: Mapping[str, Any] | None) -> tuple[Span, CloseFn]:
        otel_span = self._tracer.start_span(
            request.name,
            context=request.parent_context(),
            kind=request.kind.to_otel(),
            attributes=_clean_attributes(attributes),
        )
        span = Span(otel_span)
        return span, _make_close(span)

    @contextmanager
    def activate(self, span: Span) -> Iterator[Span]:
        """Make ``span`` the ambient span for the block. Does not end it."""
        with otel_trace.use_span(
            span.otel_span,
            end_on_exit=False,
            record_exception=False,
            set_status_on_exception=False,
        ):
            yield span

    @contextmanager
    def span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: TraceContext | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> Iterator[Span]:
        """Open, activate and close a span around a block.

        An exception escaping the block marks the span ``ERROR`` with an
        exception event before it is re-raised.
        """
        span, close = self.start_span(name, kind, parent=parent, attributes=attributes)
        try:
            with self.activate(span):
                yield span
        except BaseException as e:
            span.record_error(e)
            raise
        finally:
            close()

    def flush(self, timeout_millis: int = 30000) -> bool:
        """Flush every processor. Returns False if the timeout elapsed."""
        return self._provider.force_flush(timeout_millis)

    def shutdown(self) -> None:
        """Flush and shut down the provider and its processors."""
        try:
            self._provider.shutdown()
        except Exception as e:
            logger.warning(f"Tracer shutdown failed: {e}")


class NoOpSpan:
    """Span handle whose every operation does nothing."""

    __slots__ = ()

    otel_span = otel_trace.INVALID_SPAN
    context = None
    status = SpanStatus.UNSET
    is_recording = False
    ended = False

    def set_attribute(self, key: str, value: AttributeValue | None) -> None:
        pass

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        pass

    def set_status(self, status: SpanStatus, message: str | None = None) -> None:
        pass

    def record_error(self, exc: BaseException, message: str | None = None) -> None:
        pass

    def add_event(self, name: str, attributes: Mapping[str, Any] | None = None) -> None:
        pass


_NOOP_SPAN = NoOpSpan()


def _noop_close() -> None:
    pass


class NoOpTracer:
    """Tracer used when tracing is disabled. Creates and exports nothing."""

    enabled = False

    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: TraceContext | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> tuple[NoOpSpan, CloseFn]:
        return _NOOP_SPAN, _noop_close

    def start_root_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> tuple[NoOpSpan, CloseFn]:
        return _NOOP_SPAN, _noop_close

    def activate(self, span: Span | NoOpSpan) -> nullcontext[Span | NoOpSpan]:
        return nullcontext(span)

    def span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: TraceContext | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> nullcontext[NoOpSpan]:
        return nullcontext(_NOOP_SPAN)

    def flush(self, timeout_millis: int = 30000) -> bool:
        return True

    def shutdown(self) -> None:
        pass


AnyTracer = Tracer | NoOpTracer
AnySpan = Span | NoOpSpan

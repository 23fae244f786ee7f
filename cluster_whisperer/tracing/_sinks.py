"""Exporter sinks: where finished spans go.

Each sink is an OpenTelemetry ``SpanProcessor`` registered on the tracer's own
provider, so closing a span hands the finished ``ReadableSpan`` to
``SpanSink.export``. Export is best-effort: a broken export path is logged and
never propagates into the investigation being traced.
"""

import asyncio
import contextlib
import sys
from abc import ABC, abstractmethod
from threading import Event, Lock, Thread
from typing import TextIO

from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from cluster_whisperer.logging import get_logger

from ._models import SpanRecord

logger = get_logger(__name__)

_SENTINEL = object()

OTLP_TRACES_PATH = "/v1/traces"


def normalize_otlp_endpoint(endpoint: str) -> str:
    """Return the OTLP/HTTP traces URL for a collector base URL.

    Trailing slashes are stripped and ``/v1/traces`` is appended unless the
    endpoint already ends with it.
    """
    base = endpoint.rstrip("/")
    return base if base.endswith(OTLP_TRACES_PATH) else f"{base}{OTLP_TRACES_PATH}"


class SpanSink(SpanProcessor, ABC):
    """Base class for exporter sinks.

    Subclasses implement ``export``. Any exception it raises is logged and
    swallowed here.
    """

    def on_end(self, span: ReadableSpan) -> None:
        try:
            self.export(span)
        except Exception as e:
            logger.warning(f"Failed to export span {span.name!r}: {e}")

    @abstractmethod
    def export(self, span: ReadableSpan) -> None:
        """Hand one finished span to the destination."""
        ...

    def shutdown(self) -> None:
        """Release sink resources. Default: nothing to release."""

    def force_flush(self, timeout_millis: int = 30000) -> bool:  # noqa: PLR6301
        """Flush buffered spans. Default: nothing is buffered."""
        _ = timeout_millis
        return True


class NoOpSink(SpanSink):
    """Discards every span."""

    def export(self, span: ReadableSpan) -> None:
        pass


class ConsoleSink(SpanSink):
    """Writes one JSON object per finished span to a text stream.

    Intended for local development. Defaults to stdout, resolved at write time
    so test harnesses that swap ``sys.stdout`` still capture the output.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._lock = Lock()

    def export(self, span: ReadableSpan) -> None:
        line = SpanRecord.from_readable_span(span).model_dump_json()
        stream = self._stream or sys.stdout
        with self._lock:
            stream.write(line + "\n")
            stream.flush()


class OtlpSink(SpanSink):
    """Batches spans to an OTLP/HTTP collector from a background writer thread.

    The writer thread owns its own asyncio loop and queue, so every transport
    write is serialized in one place and span-closing callers never block on
    the network. The blocking exporter call runs in the loop's default
    executor, leaving the loop free to take new spans while a send is in
    flight.

    At most ``max_queue_size`` spans wait for the writer. Past that, new spans
    are dropped and counted in ``dropped_spans`` until the writer catches up.
    A batch that fails to send is retried ``max_retries`` times with
    exponential backoff, then dropped with a warning.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        exporter: SpanExporter | None = None,
        batch_size: int = 256,
        max_queue_size: int = 2048,
        flush_interval_seconds: float = 2.0,
        max_retries: int = 3,
        retry_base_delay: float = 0.5,
        export_timeout_seconds: float = 10.0,
    ) -> None:
        """Store config. The writer thread starts on first export or ``start()``."""
        self.endpoint = normalize_otlp_endpoint(endpoint)
        self._exporter = exporter or OTLPSpanExporter(endpoint=self.endpoint, timeout=export_timeout_seconds)
        self._batch_size = batch_size
        self._max_queue_size = max_queue_size
        self._flush_interval = flush_interval_seconds
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[ReadableSpan | Event | object] | None = None
        self._thread: Thread | None = None
        self._start_lock = Lock()
        self._shutdown = False
        self._ready = Event()

        # Spans handed to the loop but not yet taken by the writer. Guarded by _count_lock.
        self._count_lock = Lock()
        self._queued = 0
        self._overflowing = False
        self.dropped_spans = 0

    def start(self) -> None:
        """Start the background writer thread (idempotent)."""
        with self._start_lock:
            if self._thread is not None or self._shutdown:
                return
            self._thread = Thread(target=self._thread_main, name="otlp-span-writer", daemon=True)
            self._thread.start()
        if not self._ready.wait(timeout=10.0):
            logger.warning("OTLP span writer thread did not start within 10 seconds")

    def _thread_main(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._queue = asyncio.Queue()
        self._ready.set()
        try:
            self._loop.run_until_complete(self._run())
            self._loop.run_until_complete(self._loop.shutdown_default_executor())
        finally:
            self._loop.close()
            self._loop = None

    async def _run(self) -> None:
        """Drain the queue, sending on batch size, flush interval, barrier or sentinel."""
        assert self._queue is not None, "_run() must be called after _queue is initialized"
        pending: list[ReadableSpan] = []

        while True:
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=self._flush_interval)
            except TimeoutError:
                await self._send(pending)
                continue

            if item is _SENTINEL:
                await self._send(pending)
                break
            if isinstance(item, Event):
                await self._send(pending)
                item.set()
                continue

            self._release_slot()
            pending.append(item)  # type: ignore[arg-type]
            if len(pending) >= self._batch_size:
                await self._send(pending)

    async def _send(self, pending: list[ReadableSpan]) -> None:
        """Export and clear ``pending``, retrying with backoff before dropping."""
        if not pending:
            return
        batch = list(pending)
        pending.clear()

        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                result = await asyncio.to_thread(self._exporter.export, batch)
                reason = f"exporter returned {result.name}"
            except Exception as e:
                result = SpanExportResult.FAILURE
                reason = str(e)
            if result is SpanExportResult.SUCCESS:
                return
            if attempt < attempts - 1:
                delay = self._retry_base_delay * (2**attempt)
                logger.warning(f"OTLP export attempt {attempt + 1}/{attempts} failed ({reason}). Retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
            else:
                with self._count_lock:
                    self.dropped_spans += len(batch)
                logger.warning(f"Dropping {len(batch)} spans after {attempts} failed OTLP export attempts: {reason}")

    def _reserve_slot(self) -> bool:
        """Claim room for one span, or count it as dropped when the queue is full."""
        with self._count_lock:
            if self._queued < self._max_queue_size:
                self._queued += 1
                self._overflowing = False
                return True
            self.dropped_spans += 1
            first_drop = not self._overflowing
            self._overflowing = True
        if first_drop:
            logger.warning(f"OTLP span queue is full ({self._max_queue_size} spans), dropping new spans")
        return False

    def _release_slot(self) -> None:
        with self._count_lock:
            self._queued -= 1

    def export(self, span: ReadableSpan) -> None:
        """Enqueue a span. Thread-safe, non-blocking, drops when the queue is full."""
        if self._shutdown:
            return
        if self._thread is None:
            self.start()
        if self._loop is None or self._queue is None:
            return
        if not self._reserve_slot():
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, span)
        except RuntimeError:
            self._release_slot()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Block until every span queued so far has been sent or dropped."""
        if self._shutdown or self._loop is None or self._queue is None:
            return True
        barrier = Event()
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, barrier)
        except RuntimeError:
            return True
        return barrier.wait(timeout=timeout_millis / 1000)

    def shutdown(self, timeout: float = 30.0) -> None:
        """Send what is queued, stop the writer thread and the exporter."""
        if self._shutdown:
            return
        self._shutdown = True
        if self._loop is not None and self._queue is not None:
            with contextlib.suppress(RuntimeError):
                self._loop.call_soon_threadsafe(self._queue.put_nowait, _SENTINEL)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        with contextlib.suppress(Exception):
            self._exporter.shutdown()

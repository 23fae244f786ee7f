"""Context Store: explicit, keyed side channel for the active trace context.

The reasoning loop that drives tools schedules work in ways that lose the
ambient OTel context (fresh ``contextvars.Context`` objects, executor threads,
callbacks run from foreign tasks). Spans opened on the far side of such a
boundary would otherwise start new, disconnected traces.

The store sidesteps this. A root span records its context under a key unique
to its investigation *before* control enters the loop. A tool handler bound to
that key reads it back *after* control returns, whatever happened to the
ambient context in between.

Usage:
    >>> store = ContextStore()
    >>> key = store.new_key()
    >>> store.store(key, root_span.context)
    >>> store.run_with(key, handler, payload)  # handler sees the root as ambient
    >>> store.delete(key)

Concurrency:
    There is no lock. Every investigation owns its own key, so concurrent
    investigations never read or write each other's entry, and single dict
    operations are atomic under the interpreter.
"""

from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar
from uuid import uuid4

from opentelemetry import context as otel_context

from ._models import TraceContext

P = ParamSpec("P")
R = TypeVar("R")


class ContextStore:
    """Maps investigation keys to the trace context that new spans should parent under."""

    def __init__(self) -> None:
        self._entries: dict[str, TraceContext] = {}

    @staticmethod
    def new_key() -> str:
        """Return a fresh key for one top-level invocation."""
        return uuid4().hex

    def store(self, key: str, context: TraceContext | None) -> None:
        """Record the active trace context for ``key``. ``None`` is ignored."""
        if context is not None:
            self._entries[key] = context

    def retrieve(self, key: str) -> TraceContext | None:
        """Return the context stored under ``key``, or ``None``."""
        return self._entries.get(key)

    def delete(self, key: str) -> None:
        """Remove the entry for ``key``. Missing keys are fine."""
        self._entries.pop(key, None)

    @contextmanager
    def activate(self, key: str) -> Iterator[TraceContext | None]:
        """Make the stored context ambient for the block.

        Does nothing when no context is stored. The previous ambient context
        is always restored on exit.
        """
        stored = self.retrieve(key)
        if stored is None:
            yield None
            return
        token = otel_context.attach(stored.to_otel_context())
        try:
            yield stored
        finally:
            otel_context.detach(token)

    def run_with(self, key: str, fn: Callable[P, R], /, *args: P.args, **kwargs: P.kwargs) -> R:
        """Call ``fn`` with the context stored under ``key`` made ambient."""
        with self.activate(key):
            return fn(*args, **kwargs)

    async def arun_with(self, key: str, fn: Callable[P, Awaitable[R]], /, *args: P.args, **kwargs: P.kwargs) -> R:
        """Await ``fn`` with the context stored under ``key`` made ambient."""
        with self.activate(key):
            return await fn(*args, **kwargs)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class NoOpContextStore:
    """Store used when tracing is disabled: records nothing, runs callables directly."""

    @staticmethod
    def new_key() -> str:
        return uuid4().hex

    def store(self, key: str, context: TraceContext | None) -> None:
        pass

    def retrieve(self, key: str) -> TraceContext | None:
        return None

    def delete(self, key: str) -> None:
        pass

    @contextmanager
    def activate(self, key: str) -> Iterator[TraceContext | None]:
        yield None

    def run_with(self, key: str, fn: Callable[P, R], /, *args: P.args, **kwargs: P.kwargs) -> R:
        return fn(*args, **kwargs)

    async def arun_with(self, key: str, fn: Callable[P, Awaitable[R]], /, *args: P.args, **kwargs: P.kwargs) -> R:
        return await fn(*args, **kwargs)

    def __len__(self) -> int:
        return 0

    def __contains__(self, key: object) -> bool:
        return False


AnyContextStore = ContextStore | NoOpContextStore

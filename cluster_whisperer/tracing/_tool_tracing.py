"""Tool span wrapper.

``trace_tool`` wraps a tool handler so each call opens a span parented under
the investigation's stored context, with that span ambient while the handler
runs. Subprocess spans opened inside the handler therefore nest under the tool
span without any lookup of their own.

Tool outcome vs. span status:
    - Handler returns a result with ``is_error=True`` (kubectl failed, bad
      input): ``gen_ai.tool.success = false``, span status stays ``OK``. The
      tool itself worked.
    - Handler raises: span ``ERROR`` with the exception recorded, re-raised.
"""

import inspect
import json
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar, cast

from pydantic import BaseModel

from ._context_store import AnyContextStore
from ._models import (
    ATTR_GEN_AI_TOOL_ARGUMENTS,
    ATTR_GEN_AI_TOOL_DURATION,
    ATTR_GEN_AI_TOOL_INPUT,
    ATTR_GEN_AI_TOOL_NAME,
    ATTR_GEN_AI_TOOL_OUTPUT,
    ATTR_GEN_AI_TOOL_SUCCESS,
    SpanKind,
    SpanStatus,
    result_is_error,
    result_text,
)
from ._tracer import AnySpan, AnyTracer, CloseFn

P = ParamSpec("P")
R = TypeVar("R")


def _serialize_input(args: tuple[Any, ...], kwargs: dict[str, Any]) -> str:
    """JSON for the handler's input: the single argument, or all of them."""
    if len(args) == 1 and not kwargs:
        payload: Any = args[0]
    elif not args:
        payload = kwargs
    else:
        payload = {"args": list(args), "kwargs": kwargs}
    if isinstance(payload, BaseModel):
        return payload.model_dump_json()
    try:
        return json.dumps(payload, default=str)
    except (TypeError, ValueError):
        return str(payload)


def _elapsed_ms(start: float) -> int:
    return round((time.monotonic() - start) * 1000)


def trace_tool(
    name: str,
    handler: Callable[P, R],
    *,
    tracer: AnyTracer,
    store: AnyContextStore,
    key: str,
    capture_content: bool = False,
) -> Callable[P, R]:
    """Return ``handler`` wrapped in a tool span.

    The wrapper has the same shape as ``handler`` (sync or async, same
    signature). It is bound to ``key``, so it finds its parent even when the
    caller runs it in a context where the ambient span was lost.

    Args:
        name: Tool name, used as span name and ``gen_ai.tool.name``.
        handler: The tool implementation.
        tracer: Tracer opening the span.
        store: Context store holding the investigation's root context.
        key: Investigation key the root context is stored under.
        capture_content: Record input and output JSON on the span.
    """

    def _open(args: tuple[Any, ...], kwargs: dict[str, Any]) -> tuple[AnySpan, CloseFn]:
        span, close = tracer.start_span(name, SpanKind.INTERNAL, parent=store.retrieve(key))
        span.set_attribute(ATTR_GEN_AI_TOOL_NAME, name)
        if capture_content and span.is_recording:
            input_json = _serialize_input(args, kwargs)
            span.set_attribute(ATTR_GEN_AI_TOOL_INPUT, input_json)
            span.set_attribute(ATTR_GEN_AI_TOOL_ARGUMENTS, input_json)
        return span, close

    def _finish(span: AnySpan, start: float, result: Any) -> None:
        span.set_attribute(ATTR_GEN_AI_TOOL_DURATION, _elapsed_ms(start))
        span.set_attribute(ATTR_GEN_AI_TOOL_SUCCESS, not result_is_error(result))
        if capture_content and span.is_recording:
            span.set_attribute(ATTR_GEN_AI_TOOL_OUTPUT, result_text(result))
        span.set_status(SpanStatus.OK)

    def _fail(span: AnySpan, start: float, exc: BaseException) -> None:
        span.set_attribute(ATTR_GEN_AI_TOOL_DURATION, _elapsed_ms(start))
        span.set_attribute(ATTR_GEN_AI_TOOL_SUCCESS, False)
        span.record_error(exc)

    @wraps(handler)
    def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        span, close = _open(args, kwargs)
        start = time.monotonic()
        try:
            with tracer.activate(span):  # type: ignore[arg-type]
                result = handler(*args, **kwargs)
        except BaseException as e:
            _fail(span, start, e)
            raise
        else:
            _finish(span, start, result)
            return result
        finally:
            close()

    @wraps(handler)
    async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        span, close = _open(args, kwargs)
        start = time.monotonic()
        try:
            with tracer.activate(span):  # type: ignore[arg-type]
                result = await handler(*args, **kwargs)  # type: ignore[misc]
        except BaseException as e:
            _fail(span, start, e)
            raise
        else:
            _finish(span, start, result)
            return result
        finally:
            close()

    wrapper = async_wrapper if inspect.iscoroutinefunction(handler) else sync_wrapper
    return cast(Callable[P, R], wrapper)

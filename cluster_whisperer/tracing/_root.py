"""Root span manager: the top-level span of an investigation.

Two entry variants with disjoint attribute schemas:

``investigate``
    One natural-language question asked directly. Span
    ``cluster-whisperer.investigate``; errors are recorded and re-raised.

``invoke_tool``
    This system driven as a tool by another agent. Span
    ``cluster-whisperer.mcp.<tool>`` with GenAI ``execute_tool`` attributes;
    errors are recorded and converted into a failed ``ToolCallResult``.

Both variants store the root context under a fresh key and run the reasoning
loop with the root span ambient, so log records and spans opened directly in
the loop land on it. The key is deleted unconditionally when the span closes.

Trace hierarchy:
    cluster-whisperer.investigate            (root, this module)
    └── kubectl_get                          (tool span, trace_tool)
        └── get pods                         (CLIENT span, SubprocessSpanRecorder)
"""

import json
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, ParamSpec, TypeVar
from uuid import uuid4

from cluster_whisperer.logging import get_logger

from ._context_store import AnyContextStore
from ._models import (
    ATTR_ENTITY_INPUT,
    ATTR_ENTITY_NAME,
    ATTR_ENTITY_OUTPUT,
    ATTR_ENTITY_SPAN_KIND,
    ATTR_GEN_AI_OPERATION,
    ATTR_GEN_AI_TOOL_CALL_ID,
    ATTR_GEN_AI_TOOL_NAME,
    ATTR_GEN_AI_TOOL_TYPE,
    ATTR_MCP_TOOL_NAME,
    ATTR_SERVICE_OPERATION,
    ATTR_USER_QUESTION,
    SpanStatus,
    ToolCallResult,
    result_text,
)
from ._tool_tracing import trace_tool
from ._tracer import AnySpan, AnyTracer

logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

INVESTIGATE_SPAN_NAME = "cluster-whisperer.investigate"
TOOL_SPAN_PREFIX = "cluster-whisperer.mcp."


def format_trace_output(answer: str, thinking: str | None = None) -> str:
    """Text recorded as the investigation output.

    With reasoning text present, both are kept under section headers so a
    trace viewer shows how the answer was reached.
    """
    if not thinking:
        return answer
    return f"=== Thinking ===\n{thinking}\n\n=== Answer ===\n{answer}"


class Investigation:
    """Handle given to the reasoning loop for one investigation.

    Tools must be wrapped through ``wrap_tool`` so their spans find this
    investigation's root via the context store, whatever the loop does to the
    ambient context.
    """

    def __init__(self, key: str, *, tracer: AnyTracer, store: AnyContextStore, capture_content: bool) -> None:
        self.key = key
        self._tracer = tracer
        self._store = store
        self._capture_content = capture_content
        self._output: str | None = None

    @property
    def output(self) -> str | None:
        """Output set with ``set_output``, if any."""
        return self._output

    def wrap_tool(self, name: str, handler: Callable[P, R]) -> Callable[P, R]:
        """Wrap a tool handler in a span bound to this investigation."""
        return trace_tool(
            name,
            handler,
            tracer=self._tracer,
            store=self._store,
            key=self.key,
            capture_content=self._capture_content,
        )

    def set_output(self, text: str) -> None:
        """Override the output recorded on the root span (e.g. thinking plus answer)."""
        self._output = text


class RootSpanManager:
    """Opens, stores and closes root spans.

    Args:
        tracer: Tracer opening the spans.
        store: Context store receiving the root context.
        capture_content: Record question, input and output text on the root.
    """

    def __init__(self, tracer: AnyTracer, store: AnyContextStore, *, capture_content: bool = False) -> None:
        self._tracer = tracer
        self._store = store
        self._capture_content = capture_content

    def _begin(self, name: str, attributes: dict[str, Any]) -> tuple[AnySpan, Callable[[], None], Investigation]:
        span, close = self._tracer.start_root_span(name, attributes=attributes)
        key = self._store.new_key()
        self._store.store(key, span.context)
        investigation = Investigation(
            key,
            tracer=self._tracer,
            store=self._store,
            capture_content=self._capture_content,
        )
        return span, close, investigation

    def _record_output(self, span: AnySpan, output: str) -> None:
        if self._capture_content and output:
            span.set_attribute(ATTR_ENTITY_OUTPUT, output)

    async def investigate(self, question: str, run: Callable[[Investigation], Awaitable[R]]) -> R:
        """Run one direct investigation under a root span.

        Args:
            question: The user's question. Recorded only with content capture.
            run: Reasoning loop. Receives the ``Investigation`` handle and
                returns the answer.

        Returns:
            Whatever ``run`` returns.

        Raises:
            Whatever ``run`` raises, after it is recorded on the root span.
        """
        attributes: dict[str, Any] = {
            ATTR_SERVICE_OPERATION: "investigate",
            ATTR_ENTITY_SPAN_KIND: "workflow",
            ATTR_ENTITY_NAME: "investigate",
        }
        if self._capture_content:
            attributes[ATTR_USER_QUESTION] = question
            attributes[ATTR_ENTITY_INPUT] = question

        span, close, investigation = self._begin(INVESTIGATE_SPAN_NAME, attributes)
        try:
            with self._tracer.activate(span):  # type: ignore[arg-type]
                answer = await run(investigation)
        except BaseException as e:
            span.record_error(e)
            raise
        else:
            output = investigation.output if investigation.output is not None else result_text(answer)
            self._record_output(span, output)
            span.set_status(SpanStatus.OK)
            return answer
        finally:
            self._store.delete(investigation.key)
            close()

    async def invoke_tool(
        self,
        tool_name: str,
        arguments: Mapping[str, Any],
        run: Callable[[Investigation], Awaitable[ToolCallResult]],
    ) -> ToolCallResult:
        """Run one externally-triggered tool invocation under a root span.

        An ``is_error`` result marks the span ``ERROR`` with the result text.
        An exception from ``run`` is recorded and returned as a failed result;
        cancellation is recorded and re-raised.
        """
        attributes: dict[str, Any] = {
            ATTR_SERVICE_OPERATION: tool_name,
            ATTR_ENTITY_SPAN_KIND: "workflow",
            ATTR_ENTITY_NAME: tool_name,
            ATTR_MCP_TOOL_NAME: tool_name,
            ATTR_GEN_AI_OPERATION: "execute_tool",
            ATTR_GEN_AI_TOOL_NAME: tool_name,
            ATTR_GEN_AI_TOOL_TYPE: "function",
            ATTR_GEN_AI_TOOL_CALL_ID: str(uuid4()),
        }
        if self._capture_content:
            attributes[ATTR_ENTITY_INPUT] = json.dumps(dict(arguments), default=str)

        span, close, investigation = self._begin(f"{TOOL_SPAN_PREFIX}{tool_name}", attributes)
        try:
            try:
                with self._tracer.activate(span):  # type: ignore[arg-type]
                    result = await run(investigation)
            except Exception as e:
                span.record_error(e)
                logger.warning(f"Tool {tool_name!r} failed: {e}")
                return ToolCallResult.failure(f"Error executing {tool_name}: {e}")
            except BaseException as e:
                span.record_error(e)
                raise

            if result.is_error:
                span.set_status(SpanStatus.ERROR, result.text or "Tool returned an error")
            else:
                span.set_status(SpanStatus.OK)
            self._record_output(span, investigation.output if investigation.output is not None else result.text)
            return result
        finally:
            self._store.delete(investigation.key)
            close()

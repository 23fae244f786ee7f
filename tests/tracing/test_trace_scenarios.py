"""End-to-end traces: root span, kubectl tool span, kubectl process span."""

from typing import Any

import pytest

from cluster_whisperer.tools import build_kubectl_tools
from cluster_whisperer.tracing import (
    ContextStore,
    Investigation,
    RootSpanManager,
    SpanStatus,
    SubprocessSpanRecorder,
    ToolCallResult,
    format_trace_output,
)
from tests.support.tracing_helpers import (
    FakeRunner,
    all_attribute_text,
    assert_well_formed_tree,
    finished_records,
    record_named,
)

pytestmark = pytest.mark.integration

QUESTION = "why is checkout-api in payments crashlooping?"
POD_TABLE = "NAME                 READY   STATUS\ncheckout-api-7f9c   0/1     CrashLoopBackOff\n"


def _single_tool_loop(arguments: dict[str, Any]):
    async def run(inv: Investigation, tools: dict[str, Any]) -> str:
        get = inv.wrap_tool("kubectl_get", tools["kubectl_get"])
        result: ToolCallResult = get(arguments)
        answer = "The pod is crashlooping." if not result.is_error else "kubectl failed, cannot tell."
        inv.set_output(format_trace_output(answer, thinking=f"kubectl said: {result.text}"))
        return answer

    return run


async def _investigate(
    otel_env,
    runner: FakeRunner,
    *,
    capture_content: bool,
    arguments: dict[str, Any] | None = None,
) -> str:
    tracer, _ = otel_env
    roots = RootSpanManager(tracer, ContextStore(), capture_content=capture_content)
    tools = build_kubectl_tools(SubprocessSpanRecorder(tracer, runner=runner))
    run = _single_tool_loop(arguments or {"resource": "pods", "namespace": "payments"})
    return await roots.investigate(QUESTION, lambda inv: run(inv, tools))


class TestSuccessfulInvestigation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("capture_content", [False, True])
    async def test_three_level_tree(self, otel_env, capture_content: bool) -> None:
        _, exporter = otel_env

        answer = await _investigate(otel_env, FakeRunner(stdout=POD_TABLE), capture_content=capture_content)

        assert answer == "The pod is crashlooping."
        records = finished_records(exporter)
        assert [r.name for r in records] == ["get pods", "kubectl_get", "cluster-whisperer.investigate"]
        assert_well_formed_tree(records)
        assert len({r.trace_id for r in records}) == 1

        kubectl = record_named(records, "get pods")
        tool = record_named(records, "kubectl_get")
        root = record_named(records, "cluster-whisperer.investigate")
        assert root.is_root
        assert tool.parent_span_id == root.span_id
        assert kubectl.parent_span_id == tool.span_id
        assert [r.status for r in records] == [SpanStatus.OK] * 3
        assert kubectl.attributes["k8s.namespace.name"] == "payments"

        if capture_content:
            assert root.attributes["traceloop.entity.output"].endswith("=== Answer ===\nThe pod is crashlooping.")
            assert "CrashLoopBackOff" in tool.attributes["gen_ai.tool.output"]
        else:
            assert "traceloop.entity.output" not in root.attributes
            assert "gen_ai.tool.output" not in tool.attributes


class TestFailingCollaborator:
    @pytest.mark.asyncio
    async def test_non_zero_exit_is_tool_output_not_exception(self, otel_env) -> None:
        _, exporter = otel_env
        runner = FakeRunner(stderr='Error from server (Forbidden): pods is forbidden\n', returncode=1)

        answer = await _investigate(otel_env, runner, capture_content=False)

        assert answer == "kubectl failed, cannot tell."
        records = finished_records(exporter)
        assert_well_formed_tree(records)
        kubectl = record_named(records, "get pods")
        assert kubectl.status is SpanStatus.ERROR
        assert kubectl.attributes["process.exit.code"] == 1
        assert kubectl.attributes["error.type"] == "non_zero_exit"

        tool = record_named(records, "kubectl_get")
        assert tool.status is SpanStatus.OK
        assert tool.attributes["gen_ai.tool.success"] is False
        assert record_named(records, "cluster-whisperer.investigate").status is SpanStatus.OK

    @pytest.mark.asyncio
    async def test_throwing_handler_leaves_closed_error_span(self, otel_env) -> None:
        tracer, exporter = otel_env
        roots = RootSpanManager(tracer, ContextStore())

        def broken(params: dict[str, Any]) -> ToolCallResult:
            raise RuntimeError("handler bug")

        async def run(inv: Investigation) -> str:
            tool = inv.wrap_tool("broken_tool", broken)
            try:
                tool({})
            except RuntimeError:
                return "recovered"
            return "unreachable"

        assert await roots.investigate(QUESTION, run) == "recovered"

        records = finished_records(exporter)
        assert_well_formed_tree(records)
        assert all(r.end_time > 0 for r in records)
        assert record_named(records, "broken_tool").status is SpanStatus.ERROR
        assert record_named(records, "cluster-whisperer.investigate").status is SpanStatus.OK


class TestContentGating:
    @pytest.mark.asyncio
    async def test_no_content_anywhere_without_capture(self, otel_env) -> None:
        _, exporter = otel_env

        await _investigate(otel_env, FakeRunner(stdout=POD_TABLE), capture_content=False)

        text = all_attribute_text(finished_records(exporter))
        assert QUESTION not in text
        assert "CrashLoopBackOff" not in text
        assert "checkout-api-7f9c" not in text
        assert '"resource"' not in text
        assert "The pod is crashlooping." not in text

    @pytest.mark.asyncio
    async def test_content_present_with_capture(self, otel_env) -> None:
        _, exporter = otel_env

        await _investigate(otel_env, FakeRunner(stdout=POD_TABLE), capture_content=True)

        text = all_attribute_text(finished_records(exporter))
        assert QUESTION in text
        assert "CrashLoopBackOff" in text
        assert '"resource"' in text

    @pytest.mark.asyncio
    async def test_rejected_input_stays_off_spans_without_capture(self, otel_env) -> None:
        _, exporter = otel_env
        runner = FakeRunner(stdout=POD_TABLE)

        answer = await _investigate(
            otel_env,
            runner,
            capture_content=False,
            arguments={"resource": "pods", "label": "SECRET_USER_VALUE"},
        )

        assert answer == "kubectl failed, cannot tell."
        assert runner.calls == []
        records = finished_records(exporter)
        assert "SECRET_USER_VALUE" not in all_attribute_text(records)
        tool = record_named(records, "kubectl_get")
        assert tool.attributes["gen_ai.tool.success"] is False
        (event,) = [e for e in tool.events if e.name == "log"]
        assert "label" in event.attributes["log.message"]

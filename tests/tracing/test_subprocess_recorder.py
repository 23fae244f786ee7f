"""Tests for the kubectl subprocess span recorder."""

import subprocess

import pytest

from cluster_whisperer.tracing import (
    CommandResult,
    NoOpTracer,
    SpanStatus,
    SubprocessSpanRecorder,
    flag_value,
    positional_args,
    redact_args,
    span_name,
)
from tests.support.tracing_helpers import FakeRunner, finished_records


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner(stdout="NAME   READY\nweb-0  1/1\n")


@pytest.fixture
def recorder(otel_env, runner: FakeRunner) -> SubprocessSpanRecorder:
    tracer, _ = otel_env
    return SubprocessSpanRecorder(tracer, timeout_seconds=5, runner=runner)


class TestArgumentParsing:
    @pytest.mark.parametrize(
        ("args", "expected"),
        [
            (["get", "pods", "-n", "default"], ["get", "pods"]),
            (["-n", "default", "describe", "pod", "web-0"], ["describe", "pod", "web-0"]),
            (["logs", "web-0", "--tail=50", "-c", "app"], ["logs", "web-0"]),
            (["get", "pods", "-A", "-o", "wide"], ["get", "pods"]),
            (["--all-namespaces"], []),
        ],
    )
    def test_positional_args(self, args: list[str], expected: list[str]) -> None:
        assert positional_args(args) == expected

    def test_flag_value_forms(self) -> None:
        assert flag_value(["get", "pods", "-n", "kube-system"], ("-n", "--namespace")) == "kube-system"
        assert flag_value(["get", "pods", "--namespace=prod"], ("-n", "--namespace")) == "prod"
        assert flag_value(["get", "pods"], ("-n", "--namespace")) is None
        assert flag_value(["get", "pods", "-n"], ("-n", "--namespace")) is None

    def test_span_name(self) -> None:
        assert span_name(["get", "pods", "-n", "default"]) == "get pods"
        assert span_name(["version"]) == "version"
        assert span_name(["--help"]) == "kubectl"
        assert span_name([], executable="helm") == "helm"

    def test_redaction_keeps_flag_names(self) -> None:
        args = ["get", "pods", "--token", "s3cret", "--password=hunter2", "--namespace", "default"]
        assert redact_args(args) == [
            "get",
            "pods",
            "--token",
            "[REDACTED]",
            "--password=[REDACTED]",
            "--namespace",
            "default",
        ]


class TestExecute:
    def test_success_span(self, recorder: SubprocessSpanRecorder, runner: FakeRunner, otel_env) -> None:
        _, exporter = otel_env

        result = recorder.execute(["get", "pods", "-n", "default"])

        assert result == CommandResult(output="NAME   READY\nweb-0  1/1\n", exit_code=0, is_error=False)
        (span,) = finished_records(exporter)
        assert span.name == "get pods"
        assert span.kind == "CLIENT"
        assert span.status is SpanStatus.OK
        assert span.attributes["process.executable.name"] == "kubectl"
        assert span.attributes["process.command_args"] == ["kubectl", "get", "pods", "-n", "default"]
        assert span.attributes["cluster_whisperer.k8s.operation"] == "get"
        assert span.attributes["cluster_whisperer.k8s.resource"] == "pods"
        assert span.attributes["k8s.namespace.name"] == "default"
        assert span.attributes["process.exit.code"] == 0
        assert span.attributes["cluster_whisperer.k8s.output_size_bytes"] == len(runner.stdout.encode())
        assert "error.type" not in span.attributes
        assert "cluster_whisperer.k8s.all_namespaces" not in span.attributes

    def test_runs_without_shell(self, recorder: SubprocessSpanRecorder, runner: FakeRunner) -> None:
        recorder.execute(["get", "pods; rm -rf /"])

        ((cmd, kwargs),) = runner.calls
        assert cmd == ["kubectl", "get", "pods; rm -rf /"]
        assert kwargs["capture_output"] is True
        assert kwargs["text"] is True
        assert kwargs["timeout"] == 5
        assert kwargs["check"] is False
        assert not kwargs.get("shell", False)

    def test_all_namespaces(self, recorder: SubprocessSpanRecorder, otel_env) -> None:
        _, exporter = otel_env
        recorder.execute(["get", "pods", "-A"])
        (span,) = finished_records(exporter)
        assert span.attributes["cluster_whisperer.k8s.all_namespaces"] is True
        assert "k8s.namespace.name" not in span.attributes

    def test_output_size_counts_utf8_bytes(self, otel_env) -> None:
        tracer, exporter = otel_env
        recorder = SubprocessSpanRecorder(tracer, runner=FakeRunner(stdout="ü"))
        recorder.execute(["get", "cm"])
        assert finished_records(exporter)[0].attributes["cluster_whisperer.k8s.output_size_bytes"] == 2

    def test_sensitive_values_never_reach_attributes(self, recorder: SubprocessSpanRecorder, otel_env) -> None:
        _, exporter = otel_env
        recorder.execute(["get", "pods", "--token", "s3cret", "--kubeconfig=/home/me/.kube/config"])
        (span,) = finished_records(exporter)
        args = span.attributes["process.command_args"]
        assert "s3cret" not in args
        assert "--kubeconfig=[REDACTED]" in args
        assert "--token" in args

    def test_non_zero_exit(self, otel_env) -> None:
        tracer, exporter = otel_env
        runner = FakeRunner(stderr='Error from server (NotFound): pods "nope" not found\n', returncode=1)
        recorder = SubprocessSpanRecorder(tracer, runner=runner)

        result = recorder.execute(["get", "pod", "nope"])

        assert result.is_error
        assert result.exit_code == 1
        assert result.output == (
            'Error executing "kubectl get pod nope": Error from server (NotFound): pods "nope" not found\n'
        )
        (span,) = finished_records(exporter)
        assert span.status is SpanStatus.ERROR
        assert span.status_message == 'Error from server (NotFound): pods "nope" not found'
        assert span.attributes["process.exit.code"] == 1
        assert span.attributes["error.type"] == "non_zero_exit"
        assert "cluster_whisperer.k8s.output_size_bytes" not in span.attributes

    def test_non_zero_exit_without_stderr(self, otel_env) -> None:
        tracer, exporter = otel_env
        recorder = SubprocessSpanRecorder(tracer, runner=FakeRunner(returncode=2))
        result = recorder.execute(["get", "pods"])
        assert result.output == 'Error executing "kubectl get pods": Unknown error'
        assert finished_records(exporter)[0].status_message == "Unknown error"

    def test_error_text_is_redacted(self, otel_env) -> None:
        tracer, _ = otel_env
        recorder = SubprocessSpanRecorder(tracer, runner=FakeRunner(stderr="denied", returncode=1))
        result = recorder.execute(["get", "pods", "--token", "s3cret"])
        assert "s3cret" not in result.output

    def test_spawn_error(self, otel_env) -> None:
        tracer, exporter = otel_env
        runner = FakeRunner(raises=FileNotFoundError(2, "No such file or directory", "kubectl"))
        recorder = SubprocessSpanRecorder(tracer, runner=runner)

        result = recorder.execute(["get", "pods"])

        assert result.is_error
        assert result.exit_code is None
        assert result.output.startswith('Error executing "kubectl get pods": ')
        (span,) = finished_records(exporter)
        assert span.status is SpanStatus.ERROR
        assert span.attributes["error.type"] == "spawn_error"
        assert "process.exit.code" not in span.attributes
        assert [e.name for e in span.events] == ["exception"]

    def test_timeout(self, otel_env) -> None:
        tracer, exporter = otel_env
        runner = FakeRunner(raises=subprocess.TimeoutExpired(["kubectl", "logs", "web-0"], 1.5))
        recorder = SubprocessSpanRecorder(tracer, timeout_seconds=1.5, runner=runner)

        result = recorder.execute(["logs", "web-0"])

        assert result == CommandResult(
            output='Error executing "kubectl logs web-0": timed out after 1.5 seconds',
            exit_code=None,
            is_error=True,
        )
        (span,) = finished_records(exporter)
        assert span.status is SpanStatus.ERROR
        assert span.attributes["error.type"] == "timeout"

    def test_unexpected_exception_propagates(self, otel_env) -> None:
        tracer, exporter = otel_env
        recorder = SubprocessSpanRecorder(tracer, runner=FakeRunner(raises=KeyboardInterrupt()))
        with pytest.raises(KeyboardInterrupt):
            recorder.execute(["get", "pods"])
        (span,) = finished_records(exporter)
        assert span.status is SpanStatus.ERROR
        assert span.end_time > 0

    def test_parents_to_ambient_span(self, recorder: SubprocessSpanRecorder, otel_env) -> None:
        tracer, exporter = otel_env
        with tracer.span("tool") as tool:
            recorder.execute(["get", "pods"])
        records = finished_records(exporter)
        kubectl = next(r for r in records if r.kind == "CLIENT")
        assert kubectl.parent_span_id == tool.context.span_id_hex

    def test_custom_executable(self, otel_env) -> None:
        tracer, exporter = otel_env
        runner = FakeRunner(stdout="ok")
        SubprocessSpanRecorder(tracer, executable="/usr/local/bin/kubectl", runner=runner).execute(["version"])
        assert runner.calls[0][0] == ["/usr/local/bin/kubectl", "version"]
        assert finished_records(exporter)[0].attributes["process.executable.name"] == "/usr/local/bin/kubectl"


class TestDisabledRecorder:
    def test_noop_tracer_still_runs_command(self) -> None:
        runner = FakeRunner(stdout="pods")
        result = SubprocessSpanRecorder(NoOpTracer(), runner=runner).execute(["get", "pods"])
        assert result.output == "pods"
        assert len(runner.calls) == 1

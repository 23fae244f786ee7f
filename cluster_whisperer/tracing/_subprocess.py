"""Subprocess span recorder for the kubectl collaborator.

Every kubectl invocation gets one ``CLIENT`` span whose lifetime brackets the
process call exactly. The span opens on the ambient context, which inside a
traced tool handler is the tool span.

Attributes recorded:

| Attribute                                 | When          |
|-------------------------------------------|---------------|
| process.executable.name                   | always        |
| process.command_args                      | always (redacted) |
| cluster_whisperer.k8s.operation           | verb present  |
| cluster_whisperer.k8s.resource            | target present |
| k8s.namespace.name                        | -n/--namespace |
| cluster_whisperer.k8s.all_namespaces      | -A            |
| process.exit.code                         | process ran   |
| cluster_whisperer.k8s.output_size_bytes   | exit code 0   |
| error.type                                | failure       |

Failures never raise. They come back as ``CommandResult(is_error=True)`` whose
text the reasoning loop reads like any other tool output.
"""

import subprocess
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict

from cluster_whisperer.logging import get_logger

from ._models import (
    ATTR_ERROR_TYPE,
    ATTR_K8S_ALL_NAMESPACES,
    ATTR_K8S_NAMESPACE,
    ATTR_K8S_OPERATION,
    ATTR_K8S_OUTPUT_SIZE,
    ATTR_K8S_RESOURCE,
    ATTR_PROCESS_ARGS,
    ATTR_PROCESS_EXECUTABLE,
    ATTR_PROCESS_EXIT_CODE,
    SpanKind,
    SpanStatus,
)
from ._tracer import AnyTracer

logger = get_logger(__name__)

REDACTED = "[REDACTED]"

SENSITIVE_FLAGS = frozenset({
    "--token",
    "--password",
    "--username",
    "--client-key",
    "--client-certificate",
    "--certificate-authority",
    "--kubeconfig",
})

# Flags whose next argument is their value, not a positional argument.
VALUE_FLAGS = SENSITIVE_FLAGS | {
    "-n",
    "--namespace",
    "-o",
    "--output",
    "-l",
    "--selector",
    "-c",
    "--container",
    "--context",
    "--cluster",
    "--user",
    "--server",
    "-s",
    "--field-selector",
    "--sort-by",
    "--tail",
    "--since",
    "--since-time",
    "--request-timeout",
}

NAMESPACE_FLAGS = ("-n", "--namespace")
ALL_NAMESPACES_FLAGS = ("-A", "--all-namespaces")

ERROR_SPAWN = "spawn_error"
ERROR_NON_ZERO_EXIT = "non_zero_exit"
ERROR_TIMEOUT = "timeout"

Runner = Callable[..., subprocess.CompletedProcess[str]]


class CommandResult(BaseModel):
    """Outcome of one collaborator invocation.

    ``exit_code`` is ``None`` when the process never ran to completion
    (could not start, or timed out).
    """

    model_config = ConfigDict(frozen=True)

    output: str
    exit_code: int | None
    is_error: bool


def redact_args(args: Sequence[str]) -> list[str]:
    """Replace values of sensitive flags with ``[REDACTED]``, keeping the flag names.

    Handles both ``--flag value`` and ``--flag=value``.

    >>> redact_args(["get", "pods", "--token", "abc", "--kubeconfig=/home/me/.kube"])
    ['get', 'pods', '--token', '[REDACTED]', '--kubeconfig=[REDACTED]']
    """
    redacted: list[str] = []
    redact_next = False
    for arg in args:
        if redact_next:
            redacted.append(REDACTED)
            redact_next = False
            continue
        flag, sep, _ = arg.partition("=")
        if flag in SENSITIVE_FLAGS:
            if sep:
                redacted.append(f"{flag}={REDACTED}")
            else:
                redacted.append(arg)
                redact_next = True
            continue
        redacted.append(arg)
    return redacted


def positional_args(args: Sequence[str]) -> list[str]:
    """Arguments that are neither flags nor flag values."""
    positionals: list[str] = []
    skip_next = False
    for arg in args:
        if skip_next:
            skip_next = False
            continue
        if arg.startswith("-"):
            skip_next = "=" not in arg and arg in VALUE_FLAGS
            continue
        positionals.append(arg)
    return positionals


def flag_value(args: Sequence[str], names: Sequence[str]) -> str | None:
    """Value of the first flag in ``names`` (``-n ns`` or ``--namespace=ns``)."""
    for i, arg in enumerate(args):
        flag, sep, value = arg.partition("=")
        if flag not in names:
            continue
        if sep:
            return value
        if i + 1 < len(args):
            return args[i + 1]
    return None


def span_name(args: Sequence[str], executable: str = "kubectl") -> str:
    """``"<verb> <target>"`` from the first two positional arguments."""
    positionals = positional_args(args)[:2]
    return " ".join(positionals) if positionals else executable


class SubprocessSpanRecorder:
    """Runs the collaborator CLI inside a ``CLIENT`` span.

    Args:
        tracer: Tracer opening the spans (``NoOpTracer`` when disabled).
        executable: Program to run. Always invoked with an argument list,
            never through a shell.
        timeout_seconds: Kill the process after this long.
        runner: ``subprocess.run``-compatible callable, replaceable in tests.
    """

    def __init__(
        self,
        tracer: AnyTracer,
        *,
        executable: str = "kubectl",
        timeout_seconds: float = 30.0,
        runner: Runner = subprocess.run,
    ) -> None:
        self._tracer = tracer
        self.executable = executable
        self.timeout_seconds = timeout_seconds
        self._runner = runner

    def _pre_attributes(self, args: Sequence[str]) -> dict[str, Any]:
        positionals = positional_args(args)
        attributes: dict[str, Any] = {
            ATTR_PROCESS_EXECUTABLE: self.executable,
            ATTR_PROCESS_ARGS: [self.executable, *redact_args(args)],
        }
        if positionals:
            attributes[ATTR_K8S_OPERATION] = positionals[0]
        if len(positionals) > 1:
            attributes[ATTR_K8S_RESOURCE] = positionals[1]
        if namespace := flag_value(args, NAMESPACE_FLAGS):
            attributes[ATTR_K8S_NAMESPACE] = namespace
        if any(arg in ALL_NAMESPACES_FLAGS for arg in args):
            attributes[ATTR_K8S_ALL_NAMESPACES] = True
        return attributes

    def execute(self, args: Sequence[str]) -> CommandResult:
        """Run ``executable *args`` and return its output or an error text."""
        args = list(args)
        command = " ".join([self.executable, *redact_args(args)])
        span, close = self._tracer.start_span(
            span_name(args, self.executable),
            SpanKind.CLIENT,
            attributes=self._pre_attributes(args),
        )
        try:
            logger.debug(f"Running {command}")
            try:
                completed = self._runner(
                    [self.executable, *args],
                    capture_output=True,
                    text=True,
                    timeout=self.timeout_seconds,
                    check=False,
                )
            except subprocess.TimeoutExpired as e:
                span.set_attribute(ATTR_ERROR_TYPE, ERROR_TIMEOUT)
                span.record_error(e)
                return CommandResult(
                    output=f'Error executing "{command}": timed out after {self.timeout_seconds:g} seconds',
                    exit_code=None,
                    is_error=True,
                )
            except OSError as e:
                span.set_attribute(ATTR_ERROR_TYPE, ERROR_SPAWN)
                span.record_error(e)
                return CommandResult(output=f'Error executing "{command}": {e}', exit_code=None, is_error=True)
            except BaseException as e:
                span.record_error(e)
                raise

            span.set_attribute(ATTR_PROCESS_EXIT_CODE, completed.returncode)
            if completed.returncode != 0:
                error_message = completed.stderr or "Unknown error"
                span.set_attribute(ATTR_ERROR_TYPE, ERROR_NON_ZERO_EXIT)
                span.set_status(SpanStatus.ERROR, error_message.strip() or "Unknown error")
                logger.info(f'"{command}" exited with code {completed.returncode}')
                return CommandResult(
                    output=f'Error executing "{command}": {error_message}',
                    exit_code=completed.returncode,
                    is_error=True,
                )

            output = completed.stdout or ""
            span.set_attribute(ATTR_K8S_OUTPUT_SIZE, len(output.encode("utf-8")))
            span.set_status(SpanStatus.OK)
            return CommandResult(output=output, exit_code=0, is_error=False)
        finally:
            close()

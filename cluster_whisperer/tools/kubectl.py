"""kubectl tool cores: input models, argument builders and handlers.

Each tool validates its input with a pydantic model, builds a kubectl argument
list and runs it through a ``SubprocessSpanRecorder``. Handlers return a
``ToolCallResult``: kubectl failures come back as error text the reasoning
loop can read and act on, never as exceptions.

Example:
    >>> tracing = initialize_tracing(tool_definitions=KUBECTL_TOOL_DEFINITIONS)
    >>> tools = build_kubectl_tools(tracing.recorder())
    >>> tools["kubectl_get"]({"resource": "pods", "namespace": "all"})
"""

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cluster_whisperer.exceptions import ToolInputError
from cluster_whisperer.logging import get_logger
from cluster_whisperer.tracing import SubprocessSpanRecorder, TextContent, ToolCallResult, ToolDefinition

logger = get_logger(__name__)

ALL_NAMESPACES = "all"

KUBECTL_GET = "kubectl_get"
KUBECTL_DESCRIBE = "kubectl_describe"
KUBECTL_LOGS = "kubectl_logs"


class KubectlGetInput(BaseModel):
    """Input for ``kubectl_get``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    resource: str = Field(
        description="The type of Kubernetes resource to list (e.g., 'pods', 'deployments', 'services', 'nodes')"
    )
    namespace: str | None = Field(
        default=None,
        description="The namespace to query. Omit to use the current context's default namespace, "
        "or use 'all' for all namespaces",
    )
    name: str | None = Field(
        default=None,
        description="Specific resource name to get. Omit to list all resources of this type",
    )


class KubectlDescribeInput(BaseModel):
    """Input for ``kubectl_describe``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    resource: str = Field(description="The type of Kubernetes resource (e.g., 'pod', 'deployment', 'service', 'node')")
    name: str = Field(
        description="The name of the specific resource to describe "
        "(required - use kubectl_get first to find resource names)"
    )
    namespace: str | None = Field(
        default=None,
        description="The namespace containing the resource. Omit to use the current context's default namespace",
    )


class KubectlLogsInput(BaseModel):
    """Input for ``kubectl_logs``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pod: str = Field(description="The pod name to get logs from (use kubectl_get to find pod names first)")
    namespace: str = Field(description="The namespace containing the pod (required for logs)")
    args: tuple[str, ...] = Field(
        default=(),
        description='Optional flags: ["--previous"] for crashed containers, ["--tail=50"] to limit lines, '
        '["-c", "container-name"] for multi-container pods',
    )


KUBECTL_GET_DESCRIPTION = """List Kubernetes resources in TABLE FORMAT (compact, one line per resource).

Returns columns like NAME, STATUS, READY, AGE. Use this to:
- See what resources exist in a namespace or cluster
- Check basic status (Running, Pending, CrashLoopBackOff, etc.)
- Find resources that need further investigation

For detailed information about a specific resource (events, configuration,
conditions), use kubectl_describe instead.

Common resources: pods, deployments, services, nodes, configmaps, namespaces."""

KUBECTL_DESCRIBE_DESCRIPTION = """Get DETAILED information about a specific Kubernetes resource.

Shows configuration, current state, conditions and recent Events. Events are
usually where the cause of a problem shows up: failed scheduling, image pull
errors, failing probes, OOM kills, back-off restarts.

Use kubectl_get first to find the resource name."""

KUBECTL_LOGS_DESCRIPTION = """Get container logs from a pod. Shows the APPLICATION's perspective.

While kubectl_describe shows Kubernetes events (scheduling, image pulls, restarts),
logs show what's happening INSIDE the container: application errors, stack traces,
startup messages, request handling.

CRITICAL: Use --previous flag for crashed/restarted containers. When a pod is in
CrashLoopBackOff, the current container may have just started (empty logs). The
--previous flag gets logs from the crashed instance - where the actual error is.

Other useful flags:
- --tail=N: Limit to last N lines (for verbose apps)
- -c <name>: Specify container in multi-container pods"""

KUBECTL_TOOL_DEFINITIONS = (
    ToolDefinition(KUBECTL_GET, KUBECTL_GET_DESCRIPTION, KubectlGetInput),
    ToolDefinition(KUBECTL_DESCRIBE, KUBECTL_DESCRIBE_DESCRIPTION, KubectlDescribeInput),
    ToolDefinition(KUBECTL_LOGS, KUBECTL_LOGS_DESCRIPTION, KubectlLogsInput),
)


def kubectl_get_args(params: KubectlGetInput) -> list[str]:
    """``get <resource> [-A | -n <ns>] [<name>]``."""
    args = ["get", params.resource]
    if params.namespace == ALL_NAMESPACES:
        args.append("-A")
    elif params.namespace:
        args.extend(["-n", params.namespace])
    if params.name:
        args.append(params.name)
    return args


def kubectl_describe_args(params: KubectlDescribeInput) -> list[str]:
    """``describe <resource> <name> [-n <ns>]``."""
    args = ["describe", params.resource, params.name]
    if params.namespace:
        args.extend(["-n", params.namespace])
    return args


def kubectl_logs_args(params: KubectlLogsInput) -> list[str]:
    """``logs <pod> -n <ns> [args...]``.

    Raises:
        ToolInputError: ``args`` tries to set the namespace itself.
    """
    for arg in params.args:
        if arg in {"-n", "--namespace"} or arg.startswith("--namespace="):
            raise ToolInputError("Do not pass -n/--namespace in args; use the namespace parameter instead.")
    return ["logs", params.pod, "-n", params.namespace, *params.args]


ToolHandler = Callable[[Mapping[str, Any] | BaseModel], ToolCallResult]


def _invalid_fields(error: ValidationError) -> str:
    """Dotted locations of the failing fields. Input values are left out."""
    return ", ".join(".".join(str(part) for part in err["loc"]) or "<root>" for err in error.errors(include_input=False))


def _make_handler(
    recorder: SubprocessSpanRecorder,
    input_model: type[BaseModel],
    build_args: Callable[[Any], list[str]],
) -> ToolHandler:
    def handler(params: Mapping[str, Any] | BaseModel) -> ToolCallResult:
        # The log bridge copies INFO records onto the tool span, so these
        # messages must not carry the input itself.
        try:
            validated = params if isinstance(params, input_model) else input_model.model_validate(params)
        except ValidationError as e:
            logger.info(f"Rejected {input_model.__name__}: {e.error_count()} invalid field(s) ({_invalid_fields(e)})")
            return ToolCallResult.failure(f"Error: {e}")
        try:
            args = build_args(validated)
        except ToolInputError as e:
            logger.info(f"Rejected {input_model.__name__}: {e}")
            return ToolCallResult.failure(f"Error: {e}")
        result = recorder.execute(args)
        return ToolCallResult(content=(TextContent(text=result.output),), is_error=result.is_error)

    return handler


def build_kubectl_tools(recorder: SubprocessSpanRecorder) -> dict[str, ToolHandler]:
    """kubectl handlers keyed by tool name.

    Each returns a ``ToolCallResult`` whose text is kubectl output or an error
    message, with ``is_error`` set when kubectl failed or the input was rejected.
    """
    return {
        KUBECTL_GET: _make_handler(recorder, KubectlGetInput, kubectl_get_args),
        KUBECTL_DESCRIBE: _make_handler(recorder, KubectlDescribeInput, kubectl_describe_args),
        KUBECTL_LOGS: _make_handler(recorder, KubectlLogsInput, kubectl_logs_args),
    }

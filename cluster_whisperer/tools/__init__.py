"""Tools offered to the reasoning loop."""

from cluster_whisperer.tools.kubectl import (
    KUBECTL_TOOL_DEFINITIONS,
    KubectlDescribeInput,
    KubectlGetInput,
    KubectlLogsInput,
    build_kubectl_tools,
)

__all__ = [
    "KUBECTL_TOOL_DEFINITIONS",
    "KubectlDescribeInput",
    "KubectlGetInput",
    "KubectlLogsInput",
    "build_kubectl_tools",
]

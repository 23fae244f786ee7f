"""Exception hierarchy for cluster-whisperer.

All exceptions inherit from ClusterWhispererError. Tracing never raises into an
investigation at runtime; only configuration and input validation raise.
"""


class ClusterWhispererError(Exception):
    """Base exception for all cluster-whisperer errors."""


class TracingConfigError(ClusterWhispererError):
    """Raised when the tracing configuration is invalid (unknown exporter, missing endpoint)."""


class ToolInputError(ClusterWhispererError):
    """Raised when a tool receives input it cannot turn into a kubectl invocation."""

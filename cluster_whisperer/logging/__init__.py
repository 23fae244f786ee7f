"""Logging infrastructure for cluster-whisperer.

Key components:
    get_logger: Factory for component loggers (attaches the span-event bridge)
    setup_logging: Apply the default or a YAML logging configuration
    LoggingConfig: Configuration loader

Example:
    >>> from cluster_whisperer.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Processing started")

Note:
    Never call logging.getLogger() directly in cluster-whisperer modules.
    Always use get_logger() so records reach the active span.
"""

from .logging_config import LoggingConfig, get_logger, setup_logging

__all__ = [
    "LoggingConfig",
    "get_logger",
    "setup_logging",
]

"""Centralized logging configuration for cluster-whisperer.

Supports YAML-based configuration and programmatic setup with defaults.

Usage:
    >>> from cluster_whisperer.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Investigation started")

Environment variables:
    CLUSTER_WHISPERER_LOGGING_CONFIG: Path to a custom logging.yml
    CLUSTER_WHISPERER_LOG_LEVEL: Default log level (INFO, DEBUG, etc.)
"""

import logging  # noqa: TID251
import logging.config  # noqa: TID251
import os
from pathlib import Path
from typing import Any

import yaml

from ._span_bridge import attach_span_bridge

ROOT_LOGGER_NAME = "cluster_whisperer"

DEFAULT_LOG_LEVELS = {
    "cluster_whisperer": "INFO",
    "cluster_whisperer.tracing": "INFO",
    "cluster_whisperer.tools": "INFO",
}


class LoggingConfig:
    """Manages logging configuration for cluster-whisperer.

    Configuration precedence:
        1. Explicit config_path parameter
        2. CLUSTER_WHISPERER_LOGGING_CONFIG environment variable
        3. Default configuration

    Example:
        >>> config = LoggingConfig()
        >>> config.apply()
        >>> config = LoggingConfig(Path("custom_logging.yml"))
        >>> config.apply()
    """

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path or self._get_default_config_path()
        self._config: dict[str, Any] | None = None

    @staticmethod
    def _get_default_config_path() -> Path | None:
        if env_path := os.environ.get("CLUSTER_WHISPERER_LOGGING_CONFIG"):
            return Path(env_path)
        return None

    def load_config(self) -> dict[str, Any]:
        """Load logging configuration from file or defaults.

        The result is cached after the first load. Create a new LoggingConfig
        instance to reload from disk.

        Returns:
            Dictionary in logging.config.dictConfig format.
        """
        if self._config is None:
            if self.config_path and self.config_path.exists():
                with open(self.config_path) as f:
                    self._config = yaml.safe_load(f)
            else:
                self._config = self._get_default_config()
        assert self._config is not None
        return self._config

    @staticmethod
    def _get_default_config() -> dict[str, Any]:
        """Default configuration: stderr console handler, INFO for our loggers.

        Logs go to stderr so stdout stays free for console span output and answers.
        """
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s.%(msecs)03d | %(levelname)-7s | %(name)s - %(message)s",
                    "datefmt": "%H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "stream": "ext://sys.stderr",
                },
            },
            "loggers": {
                ROOT_LOGGER_NAME: {
                    "level": os.environ.get("CLUSTER_WHISPERER_LOG_LEVEL", "INFO"),
                    "handlers": ["console"],
                    "propagate": False,
                },
            },
            "root": {
                "level": "WARNING",
                "handlers": ["console"],
            },
        }

    def apply(self) -> None:
        """Apply the configuration with logging.config.dictConfig."""
        logging.config.dictConfig(self.load_config())


_logging_config: LoggingConfig | None = None


def setup_logging(config_path: Path | None = None, level: str | None = None) -> None:
    """Configure logging for cluster-whisperer.

    Args:
        config_path: Optional path to a YAML logging configuration file.
        level: Optional level override applied to all cluster-whisperer loggers.

    Example:
        >>> setup_logging()
        >>> setup_logging(level="DEBUG")
    """
    global _logging_config  # noqa: PLW0603

    _logging_config = LoggingConfig(config_path)
    _logging_config.apply()

    if level:
        for logger_name in DEFAULT_LOG_LEVELS:
            logging.getLogger(logger_name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger for a cluster-whisperer component.

    Configures logging on first use and attaches the span-event bridge, so
    records logged while a span is recording also land on that span.

    Args:
        name: Logger name, typically ``__name__``.
    """
    if _logging_config is None:
        setup_logging()

    return attach_span_bridge(logging.getLogger(name))

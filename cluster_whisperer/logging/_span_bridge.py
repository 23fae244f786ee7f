"""Log records as ``log`` events on the ambient span.

``get_logger()`` calls ``attach_span_bridge`` on every logger it returns. The
handler is inert unless the ambient span is recording, so it costs nothing
when tracing is disabled.

Event attributes:
    log.level       record level name
    log.message     the formatted message, without timestamp or logger prefix
    log.logger      logger name
    code.function   function that logged
    code.lineno     line that logged
    exception.type  qualified exception class, when the record carries exc_info

Exception messages and tracebacks stay off the span: they can echo tool input
or kubectl output, which is only recorded with content capture on.
"""

import logging  # noqa: TID251

from opentelemetry import trace as otel_trace

BRIDGE_LEVEL = logging.INFO
_BRIDGED_ATTR = "_cluster_whisperer_bridged"


def _exception_type(record: logging.LogRecord) -> str | None:
    if not record.exc_info or record.exc_info[0] is None:
        return None
    exc_type = record.exc_info[0]
    return f"{exc_type.__module__}.{exc_type.__qualname__}"


class SpanEventHandler(logging.Handler):
    """Adds one ``log`` event per record to the current recording span.

    A record seen by several bridged loggers on its way up the hierarchy is
    written on the first and skipped afterwards.
    """

    def __init__(self, level: int = BRIDGE_LEVEL) -> None:
        super().__init__(level=level)

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(record, _BRIDGED_ATTR, False):
            return
        span = otel_trace.get_current_span()
        if not span.is_recording():
            return
        try:
            attributes: dict[str, str | int] = {
                "log.level": record.levelname,
                "log.message": record.getMessage(),
                "log.logger": record.name,
                "code.function": record.funcName,
                "code.lineno": record.lineno,
            }
            if exc_type := _exception_type(record):
                attributes["exception.type"] = exc_type
            span.add_event("log", attributes=attributes)
        except Exception:
            self.handleError(record)
        else:
            setattr(record, _BRIDGED_ATTR, True)


def attach_span_bridge(logger: logging.Logger) -> logging.Logger:
    """Give ``logger`` a span-event handler unless it already has one."""
    if not any(isinstance(handler, SpanEventHandler) for handler in logger.handlers):
        logger.addHandler(SpanEventHandler())
    return logger

"""Python logging handler adapter for houdini.

This adapter bridges Python's standard library logging module to the
EventCollector, so application log records become ``log`` telemetry items.
Level gating is left to the collector (``logs.enabled`` and ``logs.levels``).
"""

import logging
import traceback
from typing import Any

from houdini.adapters.logging_context import get_log_context, in_delivery
from houdini.core.collector import EventCollector

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


# Default attributes to extract from LogRecord
_DEFAULT_INCLUDE_ATTRS = ["module", "funcName", "lineno", "pathname"]

# Records from these loggers are houdini's own diagnostics
_INTERNAL_LOGGER_PREFIX = "houdini"

# Python level names mapped to the lowercase names used in logs.levels
_LEVEL_NAMES = {
    "CRITICAL": "critical",
    "ERROR": "error",
    "WARNING": "warning",
    "INFO": "info",
    "DEBUG": "debug",
}


class HoudiniLogHandler(logging.Handler):
    """Logging handler that records log records through an EventCollector.

    Example:
        ```python
        from houdini import HoudiniLogHandler, create_collector

        collector = create_collector(config)
        logging.getLogger().addHandler(HoudiniLogHandler(collector))
        ```
    """

    def __init__(
        self,
        collector: EventCollector,
        include_attrs: list[str] | None = None,
        level: int = logging.NOTSET,
    ) -> None:
        """Initialize the handler with a collector.

        Args:
            collector: Collector receiving the log items.
            include_attrs: List of LogRecord attributes to include. Defaults to
                ["module", "funcName", "lineno", "pathname"].
            level: Minimum level handled, as for any logging.Handler.
        """
        super().__init__(level)
        self._collector = collector
        self._include_attrs = include_attrs or _DEFAULT_INCLUDE_ATTRS

    def filter(self, record: logging.LogRecord) -> bool:
        """Reject houdini's own diagnostics and anything logged during delivery.

        ``httpx`` logs every delivery request at INFO.
        """
        if in_delivery():
            return False
        name = record.name
        if name == _INTERNAL_LOGGER_PREFIX or name.startswith(
            _INTERNAL_LOGGER_PREFIX + "."
        ):
            return False
        return bool(super().filter(record))

    def emit(self, record: logging.LogRecord) -> None:
        """Record a log item built from ``record``.

        Args:
            record: The log record to emit.
        """
        try:
            self._collector.record_log(
                _LEVEL_NAMES.get(record.levelname, record.levelname.lower()),
                record.getMessage(),
                self._build_context(record),
            )
        except Exception:
            self.handleError(record)

    def _build_context(self, record: logging.LogRecord) -> dict[str, Any]:
        # Map of attribute names to their values from LogRecord
        attr_mapping: dict[str, str | int | float | bool] = {
            "module": record.name,
            "funcName": record.funcName or "",
            "lineno": record.lineno,
            "pathname": record.pathname,
        }

        context: dict[str, Any] = get_log_context()
        context.update(
            {key: attr_mapping[key] for key in self._include_attrs if key in attr_mapping}
        )

        # Add any extra attributes passed via logging call
        for key, value in record.__dict__.items():
            if key not in _STANDARD_LOGRECORD_ATTRS and isinstance(
                value, (str, int, float, bool)
            ):
                context[key] = value

        # Extract exception info if present
        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None:
                context["exc_type"] = exc_type.__name__
            if exc_value is not None:
                context["exc_message"] = str(exc_value)
            if exc_tb is not None:
                context["exc_traceback"] = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )
        return context

"""Event collector: builds telemetry items, buffers them and flushes them.

The collector is the single entry point for producing telemetry. Every
recording method builds one item, appends it to an in-memory pending list
and, with ``auto_flush`` enabled, flushes straight away. A flush swaps the
pending list for an empty one under a lock and hands the removed batch to a
dispatcher, which delivers it off the caller's thread.

Thread Safety:
    One collector may be shared by every request handled by the process.
    The pending list is the only shared mutable state and is guarded by
    ``_lock``, which also guards span completion and the closed flag.
    Ownership of a flushed batch moves to the dispatcher, so a batch is
    never mutated while it is being serialized or sent. ``close`` waits for
    flushes still handing a batch over before shutting the dispatcher down.

Failure handling:
    No method raises into the caller. Any error while building or handing
    off an item is logged and the item is dropped.
"""

from __future__ import annotations

import functools
import logging
import random
import threading
import time
import traceback
from collections.abc import Callable, Mapping
from typing import Any

from houdini.core.config import TelemetryConfig
from houdini.core.models import (
    BreadcrumbPayload,
    CapturedErrorPayload,
    ErrorMessagePayload,
    ExceptionPayload,
    ExtraContextPayload,
    HttpRequestPayload,
    ItemMetadata,
    LogPayload,
    MessagePayload,
    MetricPayload,
    Payload,
    TagPayload,
    TelemetryItem,
    TraceSpan,
    UserContextPayload,
)
from houdini.core.ports import DispatcherPort
from houdini.core.sanitize import sanitize_headers

logger = logging.getLogger(__name__)

_LEVEL_NUMBERS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}


def _guarded(method: Callable[..., Any]) -> Callable[..., Any]:
    """Log and swallow any error raised by a recording method."""

    @functools.wraps(method)
    def wrapper(self: EventCollector, *args: Any, **kwargs: Any) -> Any:
        try:
            return method(self, *args, **kwargs)
        except Exception:
            logger.exception("Telemetry call %s failed", method.__name__)
            return None

    return wrapper


def _exception_origin(exception: BaseException) -> tuple[str, int, str]:
    """Return (file, line, formatted stack) for the frame that raised."""
    frames = traceback.extract_tb(exception.__traceback__)
    if frames:
        origin = frames[-1]
        file, line = origin.filename, origin.lineno or 0
    else:
        file, line = "", 0
    stack = "".join(
        traceback.format_exception(type(exception), exception, exception.__traceback__)
    )
    return file, line, stack


class EventCollector:
    """Central API for producing telemetry.

    Example:
        >>> collector = EventCollector(config, dispatcher)
        >>> span = collector.start_trace("GET /orders/42", {"http.method": "GET"})
        >>> collector.finish_trace(span, {"http.status_code": 200})
        >>> collector.close()
    """

    def __init__(
        self,
        config: TelemetryConfig,
        dispatcher: DispatcherPort,
        sampler: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the collector.

        Args:
            config: Resolved configuration.
            dispatcher: Receives every flushed batch.
            sampler: Returns a float in [0, 1); a span is kept when the value
                is below ``traces.sample_rate``.
            clock: Wall clock used for item timestamps.
        """
        self._config = config
        self._dispatcher = dispatcher
        self._sampler = sampler
        self._clock = clock
        self._pending: list[TelemetryItem] = []
        self._lock = threading.Lock()
        # Signalled when a flush finishes handing its batch to the dispatcher
        self._submitted = threading.Condition(self._lock)
        self._submitting = 0
        self._closed = False

    @property
    def config(self) -> TelemetryConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled and not self._closed

    # === Traces ===

    @_guarded
    def start_trace(
        self, operation_name: str, attributes: Mapping[str, Any] | None = None
    ) -> TraceSpan | None:
        """Start a span.

        Returns:
            The span, or None when traces are disabled or the span was
            sampled out. None is accepted by ``finish_trace`` as a no-op.
        """
        if not self.enabled or not self._config.traces.enabled:
            return None
        sample_rate = self._config.traces.sample_rate
        if sample_rate < 1.0 and self._sampler() >= sample_rate:
            return None
        return TraceSpan.start(operation_name, dict(attributes or {}), clock=self._clock)

    @_guarded
    def finish_trace(
        self,
        span: TraceSpan | None,
        extra_attributes: Mapping[str, Any] | None = None,
    ) -> None:
        """Finish a span and enqueue it as a trace item.

        Finish-time attributes override start-time attributes with the same
        key. A span is consumed by the first call; later calls are ignored.
        """
        if span is None or not self._config.traces.enabled:
            return
        with self._lock:
            already_finished = span.finished
            span.finished = True
        if already_finished:
            logger.warning(
                "Span already finished, ignoring",
                extra={"operation_name": span.operation_name, "span_id": span.span_id},
            )
            return
        self._enqueue(span.to_payload(self._clock(), dict(extra_attributes or {})))

    # === Metrics and logs ===

    @_guarded
    def record_metric(
        self, name: str, value: float, attributes: Mapping[str, Any] | None = None
    ) -> None:
        """Record one metric observation (counts use 1.0 per event)."""
        if not self._config.metrics.enabled:
            return
        self._enqueue(
            MetricPayload(name=name, value=float(value), attributes=dict(attributes or {}))
        )

    @_guarded
    def record_log(
        self, level: str, message: str, context: Mapping[str, Any] | None = None
    ) -> None:
        """Record a log item if logs are enabled and ``level`` is accepted."""
        logs = self._config.logs
        if not logs.enabled or not logs.accepts(level):
            return
        self._enqueue(LogPayload(level=level, message=message, context=dict(context or {})))

    # === Exceptions and requests (never gated by category flags) ===

    @_guarded
    def record_exception(
        self, exception: BaseException, context: Mapping[str, Any] | None = None
    ) -> None:
        """Record an exception with its origin and stack."""
        file, line, stack = _exception_origin(exception)
        self._enqueue(
            ExceptionPayload(
                exception_class=type(exception).__name__,
                message=str(exception),
                file=file,
                line=line,
                trace=stack,
                context=dict(context or {}),
            )
        )

    @_guarded
    def record_http_request(
        self,
        method: str,
        url: str,
        status_code: int,
        duration: float,
        headers: Mapping[str, Any] | None = None,
    ) -> None:
        """Record a served HTTP request. Credential headers are redacted."""
        self._enqueue(
            HttpRequestPayload(
                method=method,
                url=url,
                status_code=status_code,
                duration=duration,
                headers=sanitize_headers(headers),
            )
        )

    # === Manual capture API ===

    @_guarded
    def capture_message(
        self,
        message: str,
        level: str = "info",
        context: Mapping[str, Any] | None = None,
    ) -> None:
        """Capture a free-form message, also logging it when its level is accepted."""
        context = dict(context or {})
        self._enqueue(MessagePayload(message=message, level=level, context=context))
        logs = self._config.logs
        if logs.enabled and logs.accepts(level):
            logger.log(
                _LEVEL_NUMBERS.get(level.lower(), logging.INFO),
                message,
                extra={"houdini_context": context},
            )

    @_guarded
    def capture_error(
        self, error: BaseException, context: Mapping[str, Any] | None = None
    ) -> None:
        """Capture a handled exception and count it as a captured error."""
        context = dict(context or {})
        file, line, stack = _exception_origin(error)
        self._enqueue(
            CapturedErrorPayload(
                exception_class=type(error).__name__,
                message=str(error),
                file=file,
                line=line,
                trace=stack,
                context=context,
            )
        )
        self.record_metric(
            "errors.captured.count",
            1.0,
            {"exception_class": type(error).__name__, "manually_captured": True},
        )
        logger.error(
            "Manually captured error: %s",
            error,
            exc_info=(type(error), error, error.__traceback__),
            extra={"houdini_context": context},
        )

    @_guarded
    def capture_error_message(
        self, error_message: str, context: Mapping[str, Any] | None = None
    ) -> None:
        """Capture an error described only by a message."""
        context = dict(context or {})
        self._enqueue(ErrorMessagePayload(message=error_message, context=context))
        self.record_metric(
            "errors.captured.count",
            1.0,
            {"type": "error_message", "manually_captured": True},
        )
        logger.error(
            "Manually captured error message: %s",
            error_message,
            extra={"houdini_context": context},
        )

    @_guarded
    def capture_breadcrumb(
        self,
        message: str,
        category: str = "default",
        level: str = "info",
        data: Mapping[str, Any] | None = None,
    ) -> None:
        self._enqueue(
            BreadcrumbPayload(
                message=message, category=category, level=level, data=dict(data or {})
            )
        )

    @_guarded
    def set_user_context(self, user_data: Mapping[str, Any]) -> None:
        self._enqueue(UserContextPayload(user_data=dict(user_data)))

    @_guarded
    def set_extra_context(self, key: str, value: Any) -> None:
        self._enqueue(ExtraContextPayload(key=key, value=value))

    @_guarded
    def set_tag(self, key: str, value: str) -> None:
        self._enqueue(TagPayload(key=key, value=str(value)))

    # === Buffering ===

    def _enqueue(self, payload: Payload) -> None:
        if not self.enabled:
            return
        item = TelemetryItem(
            project_id=self._config.project_id,
            payload=payload,
            metadata=ItemMetadata(
                service_name=self._config.service_name,
                service_version=self._config.service_version,
                timestamp=self._clock(),
            ),
        )
        with self._lock:
            if self._closed:
                return
            self._pending.append(item)
        if self._config.auto_flush:
            self.flush()

    def pending_count(self) -> int:
        """Return the number of items waiting for the next flush."""
        with self._lock:
            return len(self._pending)

    def flush(self) -> bool:
        """Hand every pending item to the dispatcher.

        Returns immediately without waiting for delivery. Items recorded
        while a flush is in progress go into the fresh pending list and are
        picked up by the next flush.

        Returns:
            Always True.
        """
        with self._lock:
            if not self._pending:
                return True
            batch, self._pending = self._pending, []
            self._submitting += 1
        try:
            self._submit(batch)
        finally:
            with self._lock:
                self._submitting -= 1
                self._submitted.notify_all()
        return True

    def _submit(self, batch: list[TelemetryItem]) -> None:
        if not batch:
            return
        try:
            accepted = self._dispatcher.submit(batch)
        except Exception as e:
            logger.error(
                "Dispatcher failed to accept telemetry batch",
                extra={"error": str(e), "batch_size": len(batch)},
            )
            return
        if not accepted:
            logger.debug("Telemetry batch dropped", extra={"batch_size": len(batch)})

    def close(self) -> None:
        """Flush the last batch and shut the dispatcher down.

        Waits for flushes already handing a batch to the dispatcher. Items
        recorded once close has started are dropped. Safe to call more than
        once.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            batch, self._pending = self._pending, []
            self._submitted.wait_for(lambda: self._submitting == 0)
        self._submit(batch)
        self._dispatcher.close(wait=True)

    def __enter__(self) -> EventCollector:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

"""Framework-neutral request lifecycle.

Framework adapters translate their own request objects into a
``RequestInfo`` and drive a ``RequestLifecycle``:

    context = lifecycle.start(info)      # request start
    lifecycle.fail(context, exc)         # unhandled exception, if any
    lifecycle.finish(context, 200, 512)  # response sent

The ``RequestContext`` returned by ``start`` is owned by the adapter for the
duration of the request and carries the span directly.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from houdini.core.collector import EventCollector
from houdini.core.models import TraceSpan

logger = logging.getLogger(__name__)

UNKNOWN_ROUTE = "unknown"


@dataclass(frozen=True)
class RequestInfo:
    """What the lifecycle needs to know about an incoming request."""

    method: str
    path: str
    url: str
    route: str = UNKNOWN_ROUTE
    headers: dict[str, str] = field(default_factory=dict)
    remote_addr: str | None = None

    @property
    def user_agent(self) -> str:
        for name, value in self.headers.items():
            if name.lower() == "user-agent":
                return value
        return ""


@dataclass
class RequestContext:
    """Per-request state, from start to finish.

    Attributes:
        request: The request being observed.
        span: The request span, None when traces are off or sampled out.
        started_at: ``time.perf_counter()`` at request start.
        finished: Set once ``finish`` has run.
    """

    request: RequestInfo
    span: TraceSpan | None
    started_at: float
    finished: bool = False

    def elapsed(self) -> float:
        return time.perf_counter() - self.started_at


class RequestLifecycle:
    """Turns request lifecycle signals into collector calls."""

    def __init__(self, collector: EventCollector) -> None:
        self.collector = collector

    def start(self, request: RequestInfo) -> RequestContext:
        """Start the request span."""
        span = self.collector.start_trace(
            f"{request.method} {request.path}",
            {
                "http.method": request.method,
                "http.url": request.url,
                "http.route": request.route,
                "http.user_agent": request.user_agent,
                "http.remote_addr": request.remote_addr,
            },
        )
        return RequestContext(request=request, span=span, started_at=time.perf_counter())

    def finish(
        self,
        context: RequestContext,
        status_code: int,
        response_size: int,
        route: str | None = None,
    ) -> None:
        """Finish the span and record the request and its duration.

        A context is finished at most once; later calls do nothing.

        Args:
            context: Context returned by ``start``.
            status_code: Response status code.
            response_size: Response body size in bytes.
            route: Route resolved while handling the request, when the
                framework only knows it after routing.
        """
        if context.finished:
            return
        context.finished = True
        duration = context.elapsed()
        request = context.request
        route = route or request.route

        self.collector.finish_trace(
            context.span,
            {"http.status_code": status_code, "http.response_size": response_size},
        )
        context.span = None
        self.collector.record_http_request(
            request.method, request.url, status_code, duration, request.headers
        )
        self.collector.record_metric(
            "http.request.duration",
            duration,
            {"method": request.method, "status_code": status_code, "route": route},
        )

    def fail(
        self,
        context: RequestContext,
        exception: BaseException,
        route: str | None = None,
    ) -> None:
        """Record an unhandled exception raised while serving the request."""
        request = context.request
        route = route or request.route
        self.collector.record_exception(
            exception,
            {
                "request_uri": request.url,
                "request_method": request.method,
                "request_route": route,
                "user_agent": request.user_agent,
                "remote_addr": request.remote_addr,
            },
        )
        self.collector.record_metric(
            "errors.count",
            1.0,
            {
                "exception_class": type(exception).__name__,
                "request_method": request.method,
                "request_route": route,
            },
        )


def describe_request(context: RequestContext) -> dict[str, Any]:
    """Fields put into the request log context."""
    fields: dict[str, Any] = {
        "http.method": context.request.method,
        "http.route": context.request.route,
    }
    if context.span is not None:
        fields["trace_id"] = context.span.trace_id
        fields["span_id"] = context.span.span_id
    return fields

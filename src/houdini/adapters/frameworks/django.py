"""Django middleware for request lifecycle telemetry.

Add ``"houdini.adapters.frameworks.django.HoudiniDjangoMiddleware"`` near the
top of ``MIDDLEWARE`` and describe the collector in ``settings.HOUDINI``::

    HOUDINI = {
        "dsn": "https://collector.example.com/ingest",
        "service_name": "shop",
        "logs": {"levels": ["error", "warning"]},
    }

Without ``settings.HOUDINI`` the ``HOUDINI_*`` environment variables are used.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from django.conf import settings
from django.http import HttpRequest, HttpResponse

from houdini.adapters.frameworks.lifecycle import (
    UNKNOWN_ROUTE,
    RequestContext,
    RequestInfo,
    RequestLifecycle,
    describe_request,
)
from houdini.adapters.logging_context import clear_log_context, set_log_context
from houdini.core.collector import EventCollector
from houdini.core.config import TelemetryConfig
from houdini.factory import create_collector

logger = logging.getLogger(__name__)

CONTEXT_ATTR = "houdini_context"

_collector: EventCollector | None = None
_collector_lock = threading.Lock()


def get_collector() -> EventCollector:
    """Return the process-wide collector built from Django settings."""
    global _collector
    with _collector_lock:
        if _collector is None:
            options = getattr(settings, "HOUDINI", None)
            config = (
                TelemetryConfig.from_dict(options)
                if options is not None
                else TelemetryConfig.from_env()
            )
            _collector = create_collector(config)
        return _collector


def _resolve_route(request: HttpRequest) -> str:
    match = getattr(request, "resolver_match", None)
    if match is None:
        return UNKNOWN_ROUTE
    return match.route or match.view_name or UNKNOWN_ROUTE


def request_info_from_django(request: HttpRequest) -> RequestInfo:
    """Build a RequestInfo from a Django request."""
    return RequestInfo(
        method=request.method or "GET",
        path=request.path_info,
        url=request.build_absolute_uri(),
        route=_resolve_route(request),
        headers=dict(request.headers),
        remote_addr=request.META.get("REMOTE_ADDR"),
    )


def _response_size(response: HttpResponse) -> int:
    if getattr(response, "streaming", False):
        return 0
    return len(response.content)


class HoudiniDjangoMiddleware:
    """Records a span, request and metrics for every request Django serves.

    The request context is stored on the request itself
    (``request.houdini_context``) so ``process_exception`` can reach it.
    """

    sync_capable = True
    async_capable = False

    def __init__(
        self,
        get_response: Callable[[HttpRequest], HttpResponse],
        collector: EventCollector | None = None,
    ) -> None:
        self.get_response = get_response
        self.collector = collector if collector is not None else get_collector()
        self.lifecycle = RequestLifecycle(self.collector)

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if not self.collector.enabled:
            return self.get_response(request)

        context = self._start(request)
        try:
            response = self.get_response(request)
        finally:
            clear_log_context()
        if context is not None:
            self._finish(request, context, response)
        return response

    def process_exception(self, request: HttpRequest, exception: Exception) -> None:
        """Record the exception; Django still builds the error response."""
        context: RequestContext | None = getattr(request, CONTEXT_ATTR, None)
        if context is None:
            return None
        try:
            self.lifecycle.fail(context, exception, route=_resolve_route(request))
        except Exception:
            logger.exception("Failed to record request exception")
        return None

    def _start(self, request: HttpRequest) -> RequestContext | None:
        try:
            context = self.lifecycle.start(request_info_from_django(request))
            setattr(request, CONTEXT_ATTR, context)
            set_log_context(**describe_request(context))
            return context
        except Exception:
            logger.exception("Failed to start request telemetry")
            return None

    def _finish(
        self, request: HttpRequest, context: RequestContext, response: Any
    ) -> None:
        try:
            self.lifecycle.finish(
                context,
                response.status_code,
                _response_size(response),
                route=_resolve_route(request),
            )
        except Exception:
            logger.exception("Failed to finish request telemetry")

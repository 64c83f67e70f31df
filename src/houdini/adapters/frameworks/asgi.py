"""ASGI middleware feeding request lifecycle telemetry to an EventCollector.

This middleware works with any ASGI application (Starlette, FastAPI, Django's
ASGI handler, plain callables) and any ASGI server (uvicorn, hypercorn,
daphne) without depending on a particular framework.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import uuid
from collections.abc import Callable, Coroutine
from typing import Any

from houdini.adapters.frameworks.lifecycle import (
    UNKNOWN_ROUTE,
    RequestContext,
    RequestInfo,
    RequestLifecycle,
    describe_request,
)
from houdini.adapters.logging_context import clear_log_context, set_log_context
from houdini.core.collector import EventCollector

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]


def _decode_headers(scope: Scope) -> dict[str, str]:
    """Decode raw ASGI headers; repeated names are joined with a comma."""
    headers: dict[str, str] = {}
    raw: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for name, value in raw:
        key = name.decode("latin-1")
        text = value.decode("latin-1")
        headers[key] = f"{headers[key]}, {text}" if key in headers else text
    return headers


def _extract_request_id(headers: dict[str, str], header_name: str) -> str:
    """Return the request ID header value, or a new UUID when absent."""
    wanted = header_name.lower()
    for name, value in headers.items():
        if name.lower() == wanted:
            return value
    return str(uuid.uuid4())


def _build_url(scope: Scope, headers: dict[str, str]) -> str:
    """Rebuild the absolute request URL from the scope."""
    scheme = scope.get("scheme", "http")
    host = headers.get("host")
    if host is None:
        server = scope.get("server")
        if server:
            server_host, port = server
            default_port = {"http": 80, "https": 443}.get(scheme)
            host = server_host if port in (None, default_port) else f"{server_host}:{port}"
        else:
            host = "localhost"
    url = f"{scheme}://{host}{scope.get('root_path', '')}{scope['path']}"
    query = scope.get("query_string", b"")
    if query:
        url = f"{url}?{query.decode('latin-1')}"
    return url


def _resolve_route(scope: Scope) -> str:
    """Return the matched route template (Starlette sets ``scope["route"]``)."""
    route = scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) and path else UNKNOWN_ROUTE


def request_info_from_scope(scope: Scope) -> RequestInfo:
    """Build a RequestInfo from an HTTP scope."""
    headers = _decode_headers(scope)
    client = scope.get("client")
    return RequestInfo(
        method=scope["method"],
        path=scope["path"],
        url=_build_url(scope, headers),
        route=_resolve_route(scope),
        headers=headers,
        remote_addr=client[0] if client else None,
    )


class HoudiniMiddleware:
    """ASGI middleware that records a span, request and metrics per request.

    Unhandled exceptions are recorded, the request is finished as a 500 and
    the exception is re-raised. Telemetry problems are logged and never
    change what the wrapped app returns.
    """

    def __init__(
        self,
        app: ASGIApp,
        collector: EventCollector,
        exclude_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
        close_on_shutdown: bool = True,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application to wrap.
            collector: Collector receiving the telemetry.
            exclude_paths: Paths to leave uninstrumented. Supports exact
                matches and wildcard patterns (e.g., "/internal/*").
            request_id_header: Header carrying the request ID put into the
                log context.
            close_on_shutdown: Close the collector when the server reports
                ``lifespan.shutdown.complete``.
        """
        self.app = app
        self.collector = collector
        self.lifecycle = RequestLifecycle(collector)
        self.exclude_paths = exclude_paths or []
        self.request_id_header = request_id_header
        self.close_on_shutdown = close_on_shutdown

    def _path_excluded(self, path: str) -> bool:
        """Check if path matches any pattern in exclude_paths."""
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return
        if (
            scope["type"] != "http"
            or not self.collector.enabled
            or self._path_excluded(scope["path"])
        ):
            await self.app(scope, receive, send)
            return

        context = self._start(scope)
        if context is None:
            await self.app(scope, receive, send)
            return

        captured: dict[str, Any] = {"status": None, "body_size": 0}

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
            elif message["type"] == "http.response.body":
                captured["body_size"] += len(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive, wrapped_send)
        except Exception as e:
            self._fail(scope, context, e)
            self._finish(scope, context, 500, captured["body_size"])
            raise
        finally:
            clear_log_context()
        self._finish(scope, context, captured["status"] or 500, captured["body_size"])

    def _start(self, scope: Scope) -> RequestContext | None:
        try:
            info = request_info_from_scope(scope)
            context = self.lifecycle.start(info)
            set_log_context(
                request_id=_extract_request_id(info.headers, self.request_id_header),
                **describe_request(context),
            )
            return context
        except Exception:
            logger.exception("Failed to start request telemetry")
            return None

    def _finish(
        self, scope: Scope, context: RequestContext, status: int, body_size: int
    ) -> None:
        try:
            self.lifecycle.finish(context, status, body_size, route=_resolve_route(scope))
        except Exception:
            logger.exception("Failed to finish request telemetry")

    def _fail(self, scope: Scope, context: RequestContext, exc: Exception) -> None:
        try:
            self.lifecycle.fail(context, exc, route=_resolve_route(scope))
        except Exception:
            logger.exception("Failed to record request exception")

    async def _handle_lifespan(self, scope: Scope, receive: Receive, send: Send) -> None:
        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "lifespan.shutdown.complete" and self.close_on_shutdown:
                await asyncio.to_thread(self.collector.close)
            await send(message)

        await self.app(scope, receive, wrapped_send)

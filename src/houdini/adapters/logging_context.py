"""Request-scoped log context.

Lifecycle adapters set the context when a request starts and clear it when
the request ends. ``HoudiniLogHandler`` merges it into every log item
recorded while the request is running. The context lives in a
``ContextVar``, so concurrent requests on threads or asyncio tasks each see
their own values.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_log_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "houdini_log_context", default=None
)


def set_log_context(**fields: Any) -> None:
    """Replace the current context with ``fields``."""
    _log_context.set(dict(fields))


def update_log_context(**fields: Any) -> None:
    """Add or overwrite fields in the current context."""
    _log_context.set({**(_log_context.get() or {}), **fields})


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current context (empty outside a request)."""
    return dict(_log_context.get() or {})


def clear_log_context() -> None:
    _log_context.set(None)


_delivering: ContextVar[bool] = ContextVar("houdini_delivering", default=False)


@contextmanager
def delivery_scope() -> Iterator[None]:
    """Mark the enclosed code as telemetry delivery.

    Log records emitted inside the scope, including those of the HTTP client
    libraries, are rejected by ``HoudiniLogHandler``.
    """
    token = _delivering.set(True)
    try:
        yield
    finally:
        _delivering.reset(token)


def in_delivery() -> bool:
    """Return True while running inside ``delivery_scope``."""
    return _delivering.get()

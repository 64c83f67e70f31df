"""FastAPI adapter for request lifecycle telemetry."""

from fastapi import FastAPI

from houdini.adapters.frameworks.asgi import HoudiniMiddleware
from houdini.core.collector import EventCollector


def instrument_app(
    app: FastAPI,
    collector: EventCollector,
    exclude_paths: list[str] | None = None,
) -> FastAPI:
    """Add the houdini middleware to a FastAPI application.

    The middleware is registered last, so it wraps every other middleware
    and sees the final status code. The collector is closed when the
    application shuts down.

    Args:
        app: Application to instrument.
        collector: Collector receiving the telemetry.
        exclude_paths: Paths to leave uninstrumented (fnmatch patterns).

    Returns:
        The same application, for chaining.
    """
    app.add_middleware(
        HoudiniMiddleware,
        collector=collector,
        exclude_paths=exclude_paths,
    )
    return app

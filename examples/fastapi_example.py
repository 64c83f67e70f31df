"""Example FastAPI application reporting request telemetry to a collector.

Run with:
    HOUDINI_DSN=http://localhost:9000/ingest HOUDINI_SERVICE_NAME=shop \
        uvicorn examples.fastapi_example:app --reload

Every request produces a trace, an http_request item and an
``http.request.duration`` metric. ``/error`` also produces an exception
item and an ``errors.count`` metric. Application logs at the configured
levels are forwarded as log items, tagged with the request's trace ID.
"""

import asyncio
import logging

from fastapi import FastAPI

from houdini import HoudiniLogHandler, TelemetryConfig, create_collector
from houdini.adapters.frameworks.fastapi import instrument_app

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("shop")

# Read HOUDINI_* environment variables
config = TelemetryConfig.from_env(service_version="1.0.0")
collector = create_collector(config)
logging.getLogger().addHandler(HoudiniLogHandler(collector))

app = FastAPI(title="Telemetry Example")
instrument_app(app, collector, exclude_paths=["/health"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint; the middleware records it automatically."""
    await asyncio.sleep(0.01)
    logger.info("Served the root endpoint")
    return {"message": "Hello! Check your collector for telemetry."}


@app.get("/orders/{order_id}")
async def get_order(order_id: int) -> dict[str, object]:
    """Order lookup with manual breadcrumbs and tags."""
    collector.capture_breadcrumb("order lookup", category="orders", data={"id": order_id})
    collector.set_tag("orders.region", "eu-west")
    await asyncio.sleep(0.05)
    return {"id": order_id, "items": 3}


@app.get("/checkout")
async def checkout() -> dict[str, str]:
    """Handled error reported through the manual capture API."""
    try:
        raise ConnectionError("payment provider unreachable")
    except ConnectionError as e:
        collector.capture_error(e, {"provider": "acme-pay"})
    return {"status": "deferred"}


@app.get("/error")
async def error_endpoint() -> dict[str, str]:
    """Unhandled error, recorded by the middleware and answered with a 500."""
    raise ValueError("Intentional error for demonstration")


@app.get("/health")
async def health() -> dict[str, str]:
    """Excluded from telemetry."""
    return {"status": "ok"}

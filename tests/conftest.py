"""Shared test fixtures for all test modules."""

from collections.abc import Callable, Iterator
from typing import Any

import httpx
import pytest

from houdini.adapters.dispatch import InlineDispatcher
from houdini.adapters.transport import HttpTransport, InMemoryTransport
from houdini.core.collector import EventCollector
from houdini.core.config import TelemetryConfig
from tests.fakes import COLLECTOR_URL, FakeBackend


@pytest.fixture
def config() -> TelemetryConfig:
    """Configuration pointing at the fake collector endpoint."""
    return TelemetryConfig(
        dsn=COLLECTOR_URL,
        project_id="proj-1",
        service_name="shop",
        service_version="1.0.0",
    )


@pytest.fixture
def transport() -> InMemoryTransport:
    """Transport recording every item it is asked to send."""
    return InMemoryTransport()


@pytest.fixture
def make_collector(
    config: TelemetryConfig, transport: InMemoryTransport
) -> Callable[..., EventCollector]:
    """Factory fixture for collectors delivering inline to ``transport``.

    Keyword arguments override top-level config fields.

    Usage:
        def test_something(make_collector):
            collector = make_collector(auto_flush=False)
    """

    def _make(**overrides: Any) -> EventCollector:
        cfg = config.with_overrides(**overrides) if overrides else config
        return EventCollector(cfg, InlineDispatcher(transport))

    return _make


@pytest.fixture
def collector(make_collector: Callable[..., EventCollector]) -> EventCollector:
    """Collector with the default test configuration."""
    return make_collector()


# === Fake collector backend ===


@pytest.fixture
def backend() -> FakeBackend:
    """Collector endpoint answering 200 to everything."""
    return FakeBackend()


@pytest.fixture
def make_http_transport(
    config: TelemetryConfig,
) -> Iterator[Callable[..., HttpTransport]]:
    """Factory fixture creating an HttpTransport bound to a FakeBackend.

    Retries do not sleep; the requested delays are collected in
    ``transport.sleeps``.
    """
    created: list[tuple[HttpTransport, httpx.Client]] = []

    def _make(
        backend: FakeBackend, cfg: TelemetryConfig | None = None
    ) -> HttpTransport:
        client = httpx.Client(transport=httpx.MockTransport(backend))
        sleeps: list[float] = []
        transport = HttpTransport(cfg or config, client=client, sleep=sleeps.append)
        transport.sleeps = sleeps  # type: ignore[attr-defined]
        created.append((transport, client))
        return transport

    yield _make
    for transport, client in created:
        transport.close()
        client.close()


# === ASGI Test Fixtures ===


@pytest.fixture
def basic_asgi_app():
    """Basic ASGI app fixture that returns 200 OK."""
    from houdini.adapters.frameworks.asgi import Receive, Scope, Send

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        """Simple ASGI app that returns 200 OK."""
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI HTTP scope dicts."""
    from houdini.adapters.frameworks.asgi import Scope

    def _scope(
        method: str = "GET",
        path: str = "/test",
        headers: dict[str, str] | None = None,
        query_string: bytes = b"",
    ) -> Scope:
        raw_headers = [(b"host", b"shop.test")]
        raw_headers += [
            (k.lower().encode(), v.encode()) for k, v in (headers or {}).items()
        ]
        return {
            "type": "http",
            "method": method,
            "scheme": "http",
            "path": path,
            "query_string": query_string,
            "headers": raw_headers,
            "client": ("10.0.0.7", 51234),
            "server": ("shop.test", 80),
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture."""
    responses: list[dict[str, object]] = []

    async def send(message: dict[str, object]) -> None:
        """Capture ASGI messages."""
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_receive():
    """Receive callable returning an empty request body."""

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b""}

    return receive

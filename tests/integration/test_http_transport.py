"""Tests for HttpTransport delivery, retries and failure reporting.

The collector endpoint is an httpx.MockTransport, so the real request
building, streaming and error mapping of httpx are exercised.
"""

import logging
import time
from collections.abc import Callable, Iterator

import httpx
import pytest

from houdini.adapters.transport import HttpTransport, build_headers
from houdini.adapters.transport.http import is_retryable
from houdini.core.config import HttpClientConfig, TelemetryConfig
from houdini.core.errors import BackendRejection, TransportFailure
from houdini.core.models import (
    ExtraContextPayload,
    ItemMetadata,
    MetricPayload,
    TelemetryItem,
)
from houdini.core.sanitize import REDACTED
from tests.fakes import COLLECTOR_URL, FakeBackend

pytestmark = [pytest.mark.integration, pytest.mark.transport, pytest.mark.tier(2)]

MakeTransport = Callable[..., HttpTransport]


def _item(payload=None) -> TelemetryItem:
    return TelemetryItem(
        project_id="proj-1",
        payload=payload or MetricPayload(name="orders.created", value=1.0),
        metadata=ItemMetadata(service_name="shop", service_version="1.0.0", timestamp=2.0),
    )


class TestBuildHeaders:
    def test_json_headers_without_key(self) -> None:
        assert build_headers("") == {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def test_api_key_and_extras(self) -> None:
        headers = build_headers("secret", {"X-Env": "prod"})
        assert headers["X-Api-Key"] == "secret"
        assert headers["X-Env"] == "prod"


class TestSend:
    def test_success_is_one_attempt(
        self, make_http_transport: MakeTransport, backend: FakeBackend
    ) -> None:
        transport = make_http_transport(backend)

        assert transport.send(_item()) is True
        assert backend.attempts == 1
        assert transport.sleeps == []

    def test_posts_json_to_dsn(
        self, make_http_transport: MakeTransport, backend: FakeBackend
    ) -> None:
        transport = make_http_transport(backend)

        transport.send(_item())

        request = backend.requests[0]
        assert request.method == "POST"
        assert str(request.url) == COLLECTOR_URL
        assert request.headers["content-type"] == "application/json"
        assert request.headers["accept"] == "application/json"
        assert backend.payloads()[0]["telemetry_data"]["name"] == "orders.created"

    def test_api_key_header(
        self,
        make_http_transport: MakeTransport,
        backend: FakeBackend,
        config: TelemetryConfig,
    ) -> None:
        transport = make_http_transport(backend, config.with_overrides(api_key="k-123"))

        transport.send(_item())

        assert backend.requests[0].headers["x-api-key"] == "k-123"

    def test_no_api_key_header_when_empty(
        self, make_http_transport: MakeTransport, backend: FakeBackend
    ) -> None:
        make_http_transport(backend).send(_item())
        assert "x-api-key" not in backend.requests[0].headers

    def test_without_dsn_nothing_is_sent(
        self,
        make_http_transport: MakeTransport,
        backend: FakeBackend,
        config: TelemetryConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        transport = make_http_transport(backend, config.with_overrides(dsn=""))

        with caplog.at_level(logging.WARNING, logger="houdini"):
            assert transport.send(_item()) is False

        assert backend.attempts == 0
        assert "DSN is not configured" in caplog.text
        assert transport.is_configured() is False

    def test_unserializable_item_is_not_sent(
        self,
        make_http_transport: MakeTransport,
        backend: FakeBackend,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        transport = make_http_transport(backend)

        with caplog.at_level(logging.ERROR, logger="houdini"):
            sent = transport.send(_item(ExtraContextPayload(key="k", value=object())))

        assert sent is False
        assert backend.attempts == 0
        assert "Failed to encode" in caplog.text


class TestRetries:
    def test_server_error_retried_once(
        self, make_http_transport: MakeTransport, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A 5xx answer gets one retry after a one second pause."""
        backend = FakeBackend(statuses=[500], body="internal failure")
        transport = make_http_transport(backend)

        with caplog.at_level(logging.DEBUG, logger="houdini"):
            assert transport.send(_item()) is False

        assert backend.attempts == 2
        assert transport.sleeps == [1.0]
        assert "Retrying in 1.0 second..." in caplog.messages
        rejections = [
            r for r in caplog.records if r.getMessage().startswith("Backend returned")
        ]
        assert [r.response_body for r in rejections] == ["internal failure"] * 2

    def test_retry_can_succeed(self, make_http_transport: MakeTransport) -> None:
        backend = FakeBackend(statuses=[503, 200])
        transport = make_http_transport(backend)

        assert transport.send(_item()) is True
        assert backend.attempts == 2

    def test_client_error_not_retried(self, make_http_transport: MakeTransport) -> None:
        backend = FakeBackend(statuses=[400], body='{"error": "bad payload"}')
        transport = make_http_transport(backend)

        assert transport.send(_item()) is False
        assert backend.attempts == 1
        assert transport.sleeps == []

    @pytest.mark.parametrize("status", [408, 429])
    def test_throttling_is_retried(
        self, make_http_transport: MakeTransport, status: int
    ) -> None:
        backend = FakeBackend(statuses=[status, 202])
        assert make_http_transport(backend).send(_item()) is True
        assert backend.attempts == 2

    def test_connection_error_retried(
        self, make_http_transport: MakeTransport, caplog: pytest.LogCaptureFixture
    ) -> None:
        backend = FakeBackend(statuses=[httpx.ConnectError("connection refused")])
        transport = make_http_transport(backend)

        with caplog.at_level(logging.ERROR, logger="houdini"):
            assert transport.send(_item()) is False

        assert backend.attempts == 2
        assert "Transport error" in caplog.text
        assert "Failed to send telemetry data after attempts" in caplog.text

    def test_timeout_is_transport_failure(self, make_http_transport: MakeTransport) -> None:
        backend = FakeBackend(statuses=[httpx.ReadTimeout("timed out"), 200])
        assert make_http_transport(backend).send(_item()) is True
        assert backend.attempts == 2

    def test_retries_capped_at_one(self, make_http_transport: MakeTransport, config) -> None:
        """Large retry_attempts values still mean a single retry."""
        backend = FakeBackend(statuses=[500])
        cfg = config.with_overrides(http_client=HttpClientConfig(retry_attempts=10))

        make_http_transport(backend, cfg).send(_item())

        assert backend.attempts == 2

    def test_zero_retries(self, make_http_transport: MakeTransport, config) -> None:
        backend = FakeBackend(statuses=[500])
        cfg = config.with_overrides(http_client=HttpClientConfig(retry_attempts=0))

        transport = make_http_transport(backend, cfg)
        transport.send(_item())

        assert transport.max_attempts == 1
        assert backend.attempts == 1
        assert transport.sleeps == []


class TestDescribe:
    def test_timeout_capped_and_credentials_redacted(
        self, make_http_transport: MakeTransport, backend: FakeBackend, config
    ) -> None:
        cfg = config.with_overrides(
            api_key="k-123", http_client=HttpClientConfig(timeout=30)
        )

        description = make_http_transport(backend, cfg).describe()

        assert description["timeout"] == 5.0
        assert description["ceiling"] == 6.0
        assert description["max_attempts"] == 2
        assert description["headers"]["X-Api-Key"] == REDACTED

    def test_short_timeout_kept(
        self, make_http_transport: MakeTransport, backend: FakeBackend, config
    ) -> None:
        cfg = config.with_overrides(http_client=HttpClientConfig(timeout=2))
        assert make_http_transport(backend, cfg).describe()["timeout"] == 2.0


class TestClientOwnership:
    def test_injected_client_left_open(self, backend: FakeBackend, config) -> None:
        client = httpx.Client(transport=httpx.MockTransport(backend))
        HttpTransport(config, client=client).close()

        assert client.is_closed is False
        client.close()

    def test_own_client_closed(self, config) -> None:
        transport = HttpTransport(config)
        transport.close()
        assert transport._client.is_closed is True


class TrickleStream(httpx.SyncByteStream):
    """Response body sent in small chunks with a pause before each one."""

    def __init__(self, chunks: int, interval: float) -> None:
        self.chunks = chunks
        self.interval = interval

    def __iter__(self) -> Iterator[bytes]:
        for _ in range(self.chunks):
            time.sleep(self.interval)
            yield b"x" * 100


class TestCeiling:
    def test_trickling_answer_stopped_at_ceiling(
        self, config: TelemetryConfig, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A slow error body cannot keep one attempt past timeout + 1 s."""
        cfg = config.with_overrides(
            http_client=HttpClientConfig(timeout=1, retry_attempts=0)
        )
        client = httpx.Client(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(500, stream=TrickleStream(10, 0.9))
            )
        )
        transport = HttpTransport(cfg, client=client)

        started = time.monotonic()
        with caplog.at_level(logging.ERROR, logger="houdini"):
            sent = transport.send(_item())
        elapsed = time.monotonic() - started

        transport.close()
        client.close()
        assert sent is False
        assert transport.ceiling == 2.0
        assert elapsed < transport.ceiling + 0.5
        (failure,) = [r for r in caplog.records if r.getMessage().startswith("Transport error")]
        assert "delivery time ceiling" in failure.error

    def test_fast_answer_unaffected(
        self, make_http_transport: MakeTransport, config: TelemetryConfig
    ) -> None:
        backend = FakeBackend(statuses=[502], body="bad gateway")
        cfg = config.with_overrides(
            http_client=HttpClientConfig(timeout=1, retry_attempts=0)
        )

        assert make_http_transport(backend, cfg).send(_item()) is False
        assert backend.attempts == 1


class TestIsRetryable:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (TransportFailure("ConnectError: refused"), True),
            (BackendRejection(500, ""), True),
            (BackendRejection(503, ""), True),
            (BackendRejection(408, ""), True),
            (BackendRejection(429, ""), True),
            (BackendRejection(400, ""), False),
            (BackendRejection(404, ""), False),
            (ValueError("unexpected"), False),
        ],
    )
    def test_classification(self, error: BaseException, expected: bool) -> None:
        assert is_retryable(error) is expected

"""HTTP transport that posts one telemetry item per request.

Each attempt is bounded by a short per-attempt timeout and a hard
ceiling one second above it. The ceiling covers the whole attempt: the
request runs on a small worker pool and the caller stops waiting once the
ceiling has passed. There is at most one retry, after a fixed one second
pause, driven by tenacity. Every outcome is reported through the
``houdini.adapters.transport`` loggers and ``send`` only ever returns a boolean.
"""

from __future__ import annotations

import contextvars
import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from houdini.core.config import TelemetryConfig
from houdini.core.encoding.json import encode_item
from houdini.core.errors import (
    BackendRejection,
    ConfigurationMissing,
    SerializationFailure,
    TransportFailure,
)
from houdini.core.models import TelemetryItem
from houdini.core.sanitize import sanitize_headers

logger = logging.getLogger(__name__)

# Upper bound on the per-attempt timeout, whatever the configuration says
MAX_TIMEOUT_SECONDS = 5.0
# Extra time allowed on top of the timeout for a whole attempt
CEILING_MARGIN_SECONDS = 1.0
RETRY_DELAY_SECONDS = 1.0
MAX_RETRIES = 1
RESPONSE_SNIPPET_CHARS = 500


def build_headers(api_key: str, extra: dict[str, str] | None = None) -> dict[str, str]:
    """Build request headers: JSON content negotiation, API key, static extras."""
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    if api_key:
        headers["X-Api-Key"] = api_key
    headers.update(extra or {})
    return headers


def is_retryable(error: BaseException) -> bool:
    """Transport faults and retryable backend answers (5xx, 408, 429)."""
    if isinstance(error, BackendRejection):
        return error.retryable
    return isinstance(error, TransportFailure)


class HttpTransport:
    """Transport posting each item as JSON to the configured DSN.

    Example:
        ```python
        transport = HttpTransport(TelemetryConfig(dsn="https://collector/ingest"))
        transport.send(item)
        ```
    """

    def __init__(
        self,
        config: TelemetryConfig,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        retry_delay: float = RETRY_DELAY_SECONDS,
        max_concurrent_attempts: int = 8,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Resolved configuration (dsn, api_key, http_client section).
            client: httpx client to use. When omitted, the transport creates
                and owns one.
            sleep: Called with the retry delay between attempts.
            retry_delay: Seconds to wait before the retry.
            max_concurrent_attempts: Worker threads running attempts.
        """
        self._dsn = config.dsn
        self._headers = build_headers(config.api_key, dict(config.http_client.headers))
        self._timeout = min(float(config.http_client.timeout), MAX_TIMEOUT_SECONDS)
        self._ceiling = self._timeout + CEILING_MARGIN_SECONDS
        self._max_attempts = 1 + min(config.http_client.retry_attempts, MAX_RETRIES)
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client()
        self._sleep = sleep
        self._retry_delay = retry_delay
        self._attempts = ThreadPoolExecutor(
            max_workers=max_concurrent_attempts, thread_name_prefix="houdini-attempt"
        )

    @property
    def dsn(self) -> str:
        return self._dsn

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def ceiling(self) -> float:
        return self._ceiling

    def is_configured(self) -> bool:
        """Return True if a collector endpoint is configured."""
        return bool(self._dsn)

    def send(self, item: TelemetryItem) -> bool:
        """Post one item to the collector.

        Returns:
            True if the collector answered 2xx, False on any failure.
        """
        try:
            if not self._dsn:
                raise ConfigurationMissing("no DSN configured")
            body = encode_item(item)
        except ConfigurationMissing:
            logger.warning(
                "Houdini DSN is not configured, skipping telemetry data transmission"
            )
            return False
        except SerializationFailure as e:
            logger.error(
                "Failed to encode telemetry data as JSON",
                extra={"error": str(e), "telemetry_type": item.kind.value},
            )
            return False

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_fixed(self._retry_delay),
                retry=retry_if_exception(is_retryable),
                sleep=self._sleep,
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    status_code = self._attempt(body, attempt.retry_state.attempt_number)
        except (TransportFailure, BackendRejection) as e:
            if is_retryable(e):
                logger.error(
                    "Failed to send telemetry data after attempts",
                    extra={"total_attempts": self._max_attempts},
                )
            return False

        logger.debug(
            "Telemetry data successfully sent to backend",
            extra={
                "status_code": status_code,
                "attempt": attempt.retry_state.attempt_number,
            },
        )
        return True

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.info(
            "Retrying in %s second...",
            self._retry_delay,
            extra={"attempt": retry_state.attempt_number},
        )

    def _attempt(self, body: bytes, attempt: int) -> int:
        """Run one attempt, logging its failure before re-raising it."""
        try:
            return self._run_within_ceiling(body)
        except TransportFailure as e:
            logger.error(
                "Transport error while sending telemetry data",
                extra={"error": str(e), "attempt": attempt},
            )
            raise
        except BackendRejection as e:
            logger.warning(
                "Backend returned non-success status code",
                extra={
                    "status_code": e.status_code,
                    "attempt": attempt,
                    "response_body": e.body,
                },
            )
            raise

    def _run_within_ceiling(self, body: bytes) -> int:
        """Run ``_post`` on the attempt pool and give up once the ceiling passes.

        An abandoned attempt stops reading the response at the deadline and is
        otherwise bounded by the per-phase httpx timeouts.

        Raises:
            TransportFailure: The ceiling passed before the attempt completed.
        """
        deadline = time.monotonic() + self._ceiling
        # The copied context keeps delivery_scope active on the worker thread
        context = contextvars.copy_context()
        future = self._attempts.submit(context.run, self._post, body, deadline)
        try:
            return future.result(timeout=self._ceiling)
        except FutureTimeout as e:
            future.cancel()
            raise TransportFailure(
                f"attempt exceeded the delivery time ceiling of {self._ceiling:g}s"
            ) from e

    def _post(self, body: bytes, deadline: float) -> int:
        """Run one attempt and return the 2xx status code.

        Raises:
            TransportFailure: Connection error, timeout or ceiling exceeded.
            BackendRejection: Non-2xx answer.
        """
        try:
            with self._client.stream(
                "POST",
                self._dsn,
                content=body,
                headers=self._headers,
                timeout=httpx.Timeout(self._timeout),
            ) as response:
                if response.is_success:
                    return response.status_code
                snippet = self._read_snippet(response, deadline)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportFailure(f"{type(e).__name__}: {e}") from e
        raise BackendRejection(response.status_code, snippet)

    @staticmethod
    def _read_snippet(response: httpx.Response, deadline: float) -> str:
        """Read at most RESPONSE_SNIPPET_CHARS of the body before ``deadline``."""
        chunks: list[bytes] = []
        size = 0
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            size += len(chunk)
            if size >= RESPONSE_SNIPPET_CHARS:
                break
            if time.monotonic() > deadline:
                raise TransportFailure("response exceeded the delivery time ceiling")
        text = b"".join(chunks).decode("utf-8", errors="replace")
        return text[:RESPONSE_SNIPPET_CHARS]

    def describe(self) -> dict[str, object]:
        """Return the transport settings with credentials redacted."""
        return {
            "dsn": self._dsn,
            "timeout": self._timeout,
            "ceiling": self._ceiling,
            "max_attempts": self._max_attempts,
            "headers": sanitize_headers(self._headers),
        }

    def close(self) -> None:
        """Stop the attempt pool and close the client if this transport created it."""
        self._attempts.shutdown(wait=False, cancel_futures=True)
        if self._owns_client:
            self._client.close()

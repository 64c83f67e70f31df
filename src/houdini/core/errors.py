"""Error types for telemetry collection and delivery.

Only ``ConfigurationError`` is ever raised into host code, and only while the
collector is being built. Everything else is raised and caught inside the
transport or collector and ends up as a log entry plus a dropped item.
"""


class HoudiniError(Exception):
    """Base class for all houdini errors."""


class ConfigurationError(HoudiniError, ValueError):
    """A configuration value is out of range or of the wrong type."""


class ConfigurationMissing(HoudiniError):
    """No collector endpoint is configured, so nothing can be sent."""


class SerializationFailure(HoudiniError):
    """A telemetry item could not be encoded as JSON."""


class TransportFailure(HoudiniError):
    """The request never produced a response (connection error, timeout)."""


class BackendRejection(HoudiniError):
    """The collector answered with a non-2xx status code.

    Attributes:
        status_code: HTTP status returned by the collector.
        body: First characters of the response body.
    """

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"collector returned HTTP {status_code}")
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        """Server errors, timeouts and throttling are worth a second attempt."""
        return self.status_code >= 500 or self.status_code in (408, 429)

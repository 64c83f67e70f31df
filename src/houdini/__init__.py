"""houdini: request telemetry collection and delivery for Python web apps."""

from houdini.adapters.dispatch import BackgroundDispatcher, InlineDispatcher
from houdini.adapters.logging import HoudiniLogHandler
from houdini.adapters.transport import HttpTransport, InMemoryTransport
from houdini.core.collector import EventCollector
from houdini.core.config import (
    DispatchConfig,
    HttpClientConfig,
    LogsConfig,
    MetricsConfig,
    TelemetryConfig,
    TracesConfig,
)
from houdini.core.errors import ConfigurationError, HoudiniError
from houdini.core.models import TelemetryItem, TelemetryKind, TraceSpan
from houdini.core.sanitize import REDACTED, sanitize_headers
from houdini.factory import create_collector

__all__ = [
    "BackgroundDispatcher",
    "ConfigurationError",
    "DispatchConfig",
    "EventCollector",
    "HoudiniError",
    "HoudiniLogHandler",
    "HttpClientConfig",
    "HttpTransport",
    "InMemoryTransport",
    "InlineDispatcher",
    "LogsConfig",
    "MetricsConfig",
    "REDACTED",
    "TelemetryConfig",
    "TelemetryItem",
    "TelemetryKind",
    "TraceSpan",
    "TracesConfig",
    "create_collector",
    "sanitize_headers",
]

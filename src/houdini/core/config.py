"""Resolved configuration for the telemetry collector.

The configuration is a tree of frozen dataclasses. It is built once, at
startup, either directly, from a plain mapping (``from_dict``) or from
``HOUDINI_*`` environment variables (``from_env``), and never changes for
the lifetime of the process.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from houdini.core.errors import ConfigurationError

DEFAULT_LOG_LEVELS = ("error", "warning", "info")

# Environment variables read by TelemetryConfig.from_env
_ENV_FIELDS = {
    "HOUDINI_DSN": "dsn",
    "HOUDINI_PROJECT_ID": "project_id",
    "HOUDINI_API_KEY": "api_key",
    "HOUDINI_SERVICE_NAME": "service_name",
    "HOUDINI_SERVICE_VERSION": "service_version",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class TracesConfig:
    """Trace collection settings.

    Attributes:
        enabled: Record request spans.
        sample_rate: Probability (0.0 to 1.0) that a started span is kept.
    """

    enabled: bool = True
    sample_rate: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.sample_rate <= 1.0:
            raise ConfigurationError(
                f"traces.sample_rate must be between 0.0 and 1.0, got {self.sample_rate}"
            )


@dataclass(frozen=True)
class MetricsConfig:
    """Metric collection settings.

    Attributes:
        enabled: Record metric observations.
        export_interval: Seconds between exports. Accepted for compatibility;
            every observation is delivered on its own.
    """

    enabled: bool = True
    export_interval: int = 60

    def __post_init__(self) -> None:
        if self.export_interval < 1:
            raise ConfigurationError(
                f"metrics.export_interval must be >= 1, got {self.export_interval}"
            )


@dataclass(frozen=True)
class LogsConfig:
    """Log collection settings.

    Attributes:
        enabled: Record log items.
        levels: Accepted level names, compared case-insensitively.
    """

    enabled: bool = True
    levels: frozenset[str] = frozenset(DEFAULT_LOG_LEVELS)

    def __post_init__(self) -> None:
        if isinstance(self.levels, str):
            raise ConfigurationError("logs.levels must be a collection of level names")
        object.__setattr__(
            self, "levels", frozenset(level.lower() for level in self.levels)
        )

    def accepts(self, level: str) -> bool:
        """Return True if ``level`` is one of the configured levels."""
        return level.lower() in self.levels


@dataclass(frozen=True)
class HttpClientConfig:
    """Settings for the HTTP transport.

    Attributes:
        timeout: Per-attempt timeout in seconds (capped by the transport).
        retry_attempts: Requested retries (the transport retries at most once).
        headers: Extra static headers sent with every request.
    """

    timeout: float = 30
    retry_attempts: int = 3
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.timeout < 1:
            raise ConfigurationError(
                f"http_client.timeout must be >= 1, got {self.timeout}"
            )
        if self.retry_attempts < 0:
            raise ConfigurationError(
                f"http_client.retry_attempts must be >= 0, got {self.retry_attempts}"
            )
        object.__setattr__(self, "headers", dict(self.headers))


@dataclass(frozen=True)
class DispatchConfig:
    """Settings for background delivery.

    Attributes:
        max_workers: Threads delivering batches concurrently.
        max_pending_batches: Batches allowed in flight before new ones are dropped.
    """

    max_workers: int = 4
    max_pending_batches: int = 1000

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ConfigurationError(
                f"dispatch.max_workers must be >= 1, got {self.max_workers}"
            )
        if self.max_pending_batches < 1:
            raise ConfigurationError(
                "dispatch.max_pending_batches must be >= 1, "
                f"got {self.max_pending_batches}"
            )


_SECTIONS = {
    "traces": TracesConfig,
    "metrics": MetricsConfig,
    "logs": LogsConfig,
    "http_client": HttpClientConfig,
    "dispatch": DispatchConfig,
}


@dataclass(frozen=True)
class TelemetryConfig:
    """Top-level collector configuration.

    Attributes:
        dsn: Collector endpoint URL. Empty disables transmission.
        project_id: Project identifier attached to every item.
        api_key: Sent as ``X-Api-Key`` when not empty.
        enabled: Global kill switch. When False nothing is recorded.
        service_name: Service name attached to every item.
        service_version: Service version attached to every item.
        auto_flush: Flush after every recorded item. When False, items are
            buffered until ``flush()`` or ``close()``.
    """

    dsn: str = ""
    project_id: str = ""
    api_key: str = ""
    enabled: bool = True
    service_name: str = ""
    service_version: str = ""
    auto_flush: bool = True
    traces: TracesConfig = field(default_factory=TracesConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    logs: LogsConfig = field(default_factory=LogsConfig)
    http_client: HttpClientConfig = field(default_factory=HttpClientConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TelemetryConfig:
        """Create a config from a plain mapping.

        Nested sections (``traces``, ``metrics``, ``logs``, ``http_client``,
        ``dispatch``) may be given as mappings. Unknown keys are rejected.

        Raises:
            ConfigurationError: On unknown keys or out-of-range values.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"unknown configuration keys: {', '.join(sorted(unknown))}"
            )
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            section = _SECTIONS.get(key)
            if section is not None and isinstance(value, Mapping):
                try:
                    kwargs[key] = section(**value)
                except TypeError as e:
                    raise ConfigurationError(f"invalid {key} section: {e}") from e
            else:
                kwargs[key] = value
        return cls(**kwargs)

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> TelemetryConfig:
        """Create a config from ``HOUDINI_*`` environment variables.

        Args:
            environ: Environment mapping (default: ``os.environ``).
            **overrides: Keyword values applied on top of the environment.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {
            attr: env[name] for name, attr in _ENV_FIELDS.items() if name in env
        }
        if "HOUDINI_ENABLED" in env:
            kwargs["enabled"] = _parse_bool("HOUDINI_ENABLED", env["HOUDINI_ENABLED"])
        kwargs.update(overrides)
        return cls.from_dict(kwargs)

    def with_overrides(self, **changes: Any) -> TelemetryConfig:
        """Return a copy with the given top-level fields replaced."""
        return replace(self, **changes)

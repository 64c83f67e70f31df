"""Core domain models for telemetry items."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from enum import StrEnum
from typing import Any, ClassVar


class TelemetryKind(StrEnum):
    """Discriminator carried as ``telemetry_data.type`` on the wire."""

    TRACE = "trace"
    METRIC = "metric"
    LOG = "log"
    EXCEPTION = "exception"
    HTTP_REQUEST = "http_request"
    MESSAGE = "message"
    CAPTURED_ERROR = "captured_error"
    CAPTURED_ERROR_MESSAGE = "captured_error_message"
    BREADCRUMB = "breadcrumb"
    USER_CONTEXT = "user_context"
    EXTRA_CONTEXT = "extra_context"
    TAG = "tag"


@dataclass(frozen=True)
class _Payload:
    kind: ClassVar[TelemetryKind]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind.value}
        for f in fields(self):
            data[f.metadata.get("wire_name", f.name)] = getattr(self, f.name)
        return data


@dataclass(frozen=True)
class TracePayload(_Payload):
    """A finished span."""

    kind: ClassVar[TelemetryKind] = TelemetryKind.TRACE

    operation_name: str
    trace_id: str
    span_id: str
    start_time: float
    end_time: float
    duration: float
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricPayload(_Payload):
    """One discrete metric observation. There is no client-side aggregation."""

    kind: ClassVar[TelemetryKind] = TelemetryKind.METRIC

    name: str
    value: float
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LogPayload(_Payload):
    kind: ClassVar[TelemetryKind] = TelemetryKind.LOG

    level: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExceptionPayload(_Payload):
    """An exception with its origin and formatted stack.

    ``exception_class`` is sent as ``class`` on the wire.
    """

    kind: ClassVar[TelemetryKind] = TelemetryKind.EXCEPTION

    exception_class: str = field(metadata={"wire_name": "class"})
    message: str
    file: str
    line: int
    trace: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CapturedErrorPayload(ExceptionPayload):
    kind: ClassVar[TelemetryKind] = TelemetryKind.CAPTURED_ERROR

    captured_manually: bool = True


@dataclass(frozen=True)
class HttpRequestPayload(_Payload):
    kind: ClassVar[TelemetryKind] = TelemetryKind.HTTP_REQUEST

    method: str
    url: str
    status_code: int
    duration: float
    headers: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MessagePayload(_Payload):
    kind: ClassVar[TelemetryKind] = TelemetryKind.MESSAGE

    message: str
    level: str = "info"
    context: dict[str, Any] = field(default_factory=dict)
    captured_manually: bool = True


@dataclass(frozen=True)
class ErrorMessagePayload(_Payload):
    kind: ClassVar[TelemetryKind] = TelemetryKind.CAPTURED_ERROR_MESSAGE

    message: str
    context: dict[str, Any] = field(default_factory=dict)
    captured_manually: bool = True


@dataclass(frozen=True)
class BreadcrumbPayload(_Payload):
    kind: ClassVar[TelemetryKind] = TelemetryKind.BREADCRUMB

    message: str
    category: str = "default"
    level: str = "info"
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UserContextPayload(_Payload):
    kind: ClassVar[TelemetryKind] = TelemetryKind.USER_CONTEXT

    user_data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExtraContextPayload(_Payload):
    kind: ClassVar[TelemetryKind] = TelemetryKind.EXTRA_CONTEXT

    key: str
    value: Any


@dataclass(frozen=True)
class TagPayload(_Payload):
    kind: ClassVar[TelemetryKind] = TelemetryKind.TAG

    key: str
    value: str


Payload = (
    TracePayload
    | MetricPayload
    | LogPayload
    | ExceptionPayload
    | CapturedErrorPayload
    | HttpRequestPayload
    | MessagePayload
    | ErrorMessagePayload
    | BreadcrumbPayload
    | UserContextPayload
    | ExtraContextPayload
    | TagPayload
)


@dataclass(frozen=True)
class ItemMetadata:
    """Service identity and record time attached to every item.

    Attributes:
        service_name: Name of the instrumented service.
        service_version: Version of the instrumented service.
        timestamp: Unix timestamp in seconds (sub-second precision).
    """

    service_name: str
    service_version: str
    timestamp: float


@dataclass(frozen=True)
class TelemetryItem:
    """The unit of transmission: one item is one POST to the collector.

    Attributes:
        project_id: Project identifier, may be empty.
        payload: Kind-specific data.
        metadata: Service identity and record time.
    """

    project_id: str
    payload: Payload
    metadata: ItemMetadata

    @property
    def kind(self) -> TelemetryKind:
        return self.payload.kind

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation of the item."""
        telemetry_data = self.payload.to_dict()
        telemetry_data["timestamp"] = self.metadata.timestamp
        return {
            "project_id": self.project_id,
            "telemetry_data": telemetry_data,
            "metadata": {
                "service_name": self.metadata.service_name,
                "service_version": self.metadata.service_version,
                "timestamp": self.metadata.timestamp,
            },
        }


@dataclass
class TraceSpan:
    """An in-flight span, owned by whoever started it.

    A span is finished at most once; ``finished`` flips to True when the
    collector turns it into a trace item.
    """

    operation_name: str
    trace_id: str
    span_id: str
    start_time: float
    attributes: dict[str, Any] = field(default_factory=dict)
    finished: bool = False

    @classmethod
    def start(
        cls,
        operation_name: str,
        attributes: dict[str, Any] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> TraceSpan:
        """Start a span now with fresh random trace and span IDs."""
        return cls(
            operation_name=operation_name,
            trace_id=secrets.token_hex(16),
            span_id=secrets.token_hex(8),
            start_time=clock(),
            attributes=dict(attributes or {}),
        )

    def to_payload(
        self, end_time: float, extra_attributes: dict[str, Any] | None = None
    ) -> TracePayload:
        """Build the trace payload for this span ending at ``end_time``."""
        return TracePayload(
            operation_name=self.operation_name,
            trace_id=self.trace_id,
            span_id=self.span_id,
            start_time=self.start_time,
            end_time=end_time,
            duration=max(0.0, end_time - self.start_time),
            attributes={**self.attributes, **(extra_attributes or {})},
        )

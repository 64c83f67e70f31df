"""In-memory transport that records items instead of sending them."""

import threading

from houdini.core.models import TelemetryItem, TelemetryKind


class InMemoryTransport:
    """In-memory implementation of TransportPort.

    Stores every item it is asked to send. Suitable for testing and local
    development where no collector is running.

    Args:
        accept: Value returned by ``send``; set to False to simulate an
            unreachable collector.
    """

    def __init__(self, accept: bool = True) -> None:
        self._items: list[TelemetryItem] = []
        self._lock = threading.Lock()
        self.accept = accept
        self.closed = False

    def send(self, item: TelemetryItem) -> bool:
        """Record the item."""
        with self._lock:
            self._items.append(item)
        return self.accept

    @property
    def items(self) -> list[TelemetryItem]:
        """Snapshot of every item sent so far, in send order."""
        with self._lock:
            return list(self._items)

    def of_kind(self, kind: TelemetryKind) -> list[TelemetryItem]:
        """Return the items of one kind, in send order."""
        return [item for item in self.items if item.kind == kind]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def close(self) -> None:
        self.closed = True

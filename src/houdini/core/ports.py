"""Port interfaces for delivery adapters.

These protocols define the contracts that transport and dispatch adapters
must implement. The collector depends only on these interfaces, not on
concrete implementations.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from houdini.core.models import TelemetryItem


@runtime_checkable
class TransportPort(Protocol):
    """Port for delivering a single item.

    Adapters implementing this protocol send one item to the collector
    backend. Examples: HttpTransport, InMemoryTransport.
    """

    def send(self, item: TelemetryItem) -> bool:
        """Deliver one item.

        Returns:
            True when the backend accepted the item. Never raises.
        """
        ...

    def close(self) -> None:
        """Release any resources held by the transport."""
        ...


@runtime_checkable
class DispatcherPort(Protocol):
    """Port for taking ownership of a flushed batch.

    Examples: BackgroundDispatcher, InlineDispatcher.
    """

    def submit(self, batch: Sequence[TelemetryItem]) -> bool:
        """Accept a batch for delivery.

        Returns:
            True if the batch was accepted, False if it was dropped.
        """
        ...

    def close(self, wait: bool = True) -> None:
        """Stop accepting batches, optionally waiting for in-flight ones."""
        ...

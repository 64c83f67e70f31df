"""Background delivery of flushed batches.

Thread Safety:
    ``submit`` is called from request-handling threads and never blocks.
    Each accepted batch becomes one job on a fixed-size thread pool; the
    number of batches accepted but not yet delivered is capped by a
    semaphore, so a slow or unreachable collector cannot grow memory
    without bound. When the cap is reached new batches are dropped.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor

from houdini.adapters.logging_context import delivery_scope
from houdini.core.models import TelemetryItem
from houdini.core.ports import TransportPort

logger = logging.getLogger(__name__)


def deliver_batch(transport: TransportPort, batch: Sequence[TelemetryItem]) -> int:
    """Send every item of ``batch`` through ``transport``, one request each.

    A failure on one item never prevents the following items from being sent.
    Sending runs inside ``delivery_scope`` so log records it produces are
    not recorded as telemetry.

    Returns:
        Number of items the backend accepted.
    """
    delivered = 0
    with delivery_scope():
        for item in batch:
            try:
                if transport.send(item):
                    delivered += 1
            except Exception as e:
                logger.error(
                    "Unexpected error while sending telemetry data",
                    extra={"error": str(e), "telemetry_type": item.kind.value},
                )
    return delivered


class BackgroundDispatcher:
    """Delivers batches on a thread pool with a cap on in-flight batches.

    Example:
        >>> dispatcher = BackgroundDispatcher(HttpTransport(config), max_workers=4)
        >>> collector = EventCollector(config, dispatcher)
        >>> ...
        >>> collector.close()  # waits for in-flight deliveries
    """

    def __init__(
        self,
        transport: TransportPort,
        max_workers: int = 4,
        max_pending_batches: int = 1000,
    ) -> None:
        """Initialize the dispatcher and its worker pool.

        Args:
            transport: Transport used for every item.
            max_workers: Threads delivering batches concurrently.
            max_pending_batches: Batches accepted but not yet delivered before
                ``submit`` starts dropping.
        """
        self._transport = transport
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="houdini-delivery"
        )
        self._slots = threading.BoundedSemaphore(max_pending_batches)
        self._stats_lock = threading.Lock()
        self._closed = False
        self.dropped_batches = 0
        self.delivered_items = 0
        self.failed_items = 0

    def submit(self, batch: Sequence[TelemetryItem]) -> bool:
        """Schedule ``batch`` for delivery without waiting for it.

        Returns:
            False if the dispatcher is closed or saturated and the batch
            was dropped.
        """
        if self._closed:
            logger.warning(
                "Dispatcher is closed, dropping telemetry batch",
                extra={"batch_size": len(batch)},
            )
            self._count_drop()
            return False
        if not self._slots.acquire(blocking=False):
            logger.warning(
                "Too many telemetry batches in flight, dropping batch",
                extra={"batch_size": len(batch)},
            )
            self._count_drop()
            return False
        try:
            future = self._executor.submit(deliver_batch, self._transport, list(batch))
        except RuntimeError:
            # Executor shut down between the closed check and submit
            self._slots.release()
            self._count_drop()
            return False
        future.add_done_callback(lambda f: self._on_done(f, len(batch)))
        return True

    def _on_done(self, future: Future[int], batch_size: int) -> None:
        self._slots.release()
        try:
            delivered = future.result()
        except Exception as e:
            logger.error("Telemetry delivery job failed", extra={"error": str(e)})
            delivered = 0
        with self._stats_lock:
            self.delivered_items += delivered
            self.failed_items += batch_size - delivered

    def _count_drop(self) -> None:
        with self._stats_lock:
            self.dropped_batches += 1

    def close(self, wait: bool = True) -> None:
        """Stop accepting batches and shut the pool down.

        Args:
            wait: Block until every accepted batch has been delivered.
        """
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=wait)
        self._transport.close()


class InlineDispatcher:
    """Delivers each batch synchronously in the calling thread.

    Useful for tests, scripts and single-threaded hosts where blocking on
    delivery is acceptable.
    """

    def __init__(self, transport: TransportPort) -> None:
        self._transport = transport
        self._closed = False

    def submit(self, batch: Sequence[TelemetryItem]) -> bool:
        if self._closed:
            return False
        deliver_batch(self._transport, batch)
        return True

    def close(self, wait: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        self._transport.close()

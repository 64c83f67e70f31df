"""Builds the default collector stack from a configuration."""

import atexit
import logging

from houdini.adapters.dispatch import BackgroundDispatcher
from houdini.adapters.transport import HttpTransport
from houdini.core.collector import EventCollector
from houdini.core.config import TelemetryConfig

logger = logging.getLogger(__name__)


def create_collector(
    config: TelemetryConfig, register_atexit: bool = True
) -> EventCollector:
    """Create a collector posting to ``config.dsn`` from background threads.

    Args:
        config: Resolved configuration.
        register_atexit: Close the collector (flushing the last batch) when
            the interpreter exits.

    Returns:
        A ready-to-use EventCollector.
    """
    transport = HttpTransport(config)
    if not transport.is_configured():
        logger.warning("Houdini DSN is not configured, telemetry will not be sent")
    dispatcher = BackgroundDispatcher(
        transport,
        max_workers=config.dispatch.max_workers,
        max_pending_batches=config.dispatch.max_pending_batches,
    )
    collector = EventCollector(config, dispatcher)
    if register_atexit:
        atexit.register(collector.close)
    logger.debug("Telemetry collector created", extra={"transport": transport.describe()})
    return collector

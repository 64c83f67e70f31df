"""Dispatch adapters implementing DispatcherPort."""

from houdini.adapters.dispatch.background import (
    BackgroundDispatcher,
    InlineDispatcher,
    deliver_batch,
)

__all__ = [
    "BackgroundDispatcher",
    "InlineDispatcher",
    "deliver_batch",
]

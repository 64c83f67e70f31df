"""Transport adapters implementing TransportPort."""

from houdini.adapters.transport.http import HttpTransport, build_headers
from houdini.adapters.transport.in_memory import InMemoryTransport

__all__ = [
    "HttpTransport",
    "InMemoryTransport",
    "build_headers",
]

"""Request lifecycle adapters for web frameworks.

The ASGI middleware has no framework dependency. The FastAPI and Django
modules import their framework and are only loaded on demand.
"""

from houdini.adapters.frameworks.asgi import HoudiniMiddleware
from houdini.adapters.frameworks.lifecycle import (
    RequestContext,
    RequestInfo,
    RequestLifecycle,
)

__all__ = [
    "HoudiniMiddleware",
    "RequestContext",
    "RequestInfo",
    "RequestLifecycle",
]

"""Fire-and-forget background requests: the server POSTs to itself and a job runs there.

High-level exports; the FastAPI application lives in ``async_request.main``.
"""
from async_request.dispatcher import AsyncDispatcher, TransportMode
from async_request.extensions import ExtensionPoint, FilterRegistry
from async_request.jobs import AsyncJob, BackgroundJob
from async_request.transport import DispatchResponse, DispatchTransportError

__all__: list[str] = [
    "AsyncDispatcher",
    "TransportMode",
    "ExtensionPoint",
    "FilterRegistry",
    "AsyncJob",
    "BackgroundJob",
    "DispatchResponse",
    "DispatchTransportError",
]

"""
Host platform package: the interface the dispatcher consumes and its FastAPI implementation.
"""
from .base import HostPlatform, RequestContext, RequestTerminated
from .fastapi_host import FastAPIHost

__all__ = ["HostPlatform", "RequestContext", "RequestTerminated", "FastAPIHost"]

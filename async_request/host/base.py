"""Host platform interface consumed by the dispatcher.

The dispatcher only talks to the hosting web application through
:class:`HostPlatform`: hook/route registration, token issue/verify, the
outbound POST, request termination, structured responses, capability checks
and the tenant id. :class:`async_request.host.fastapi_host.FastAPIHost` is the
FastAPI implementation; tests use lightweight fakes of the same shape.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol

from async_request.extensions import FilterRegistry
from async_request.sessions import SessionHandle
from async_request.transport import DispatchResult


@dataclass
class RequestContext:
    """Everything a handler may read about the inbound request.

    ``session`` is the lock this request holds on the caller's session; the
    handler may release it before doing slow work.
    """
    query: Mapping[str, str] = field(default_factory=dict)
    payload: Any = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    session: SessionHandle = field(default_factory=SessionHandle)
    role: Optional[str] = None
    request_id: Optional[str] = None


class RequestTerminated(Exception):
    """Stops handling of the current request with a fixed response.

    Raised by ``terminate()`` (normal end of a legacy callback) and ``deny()``
    (failed authentication). Hosts turn it into the response it carries.
    """

    def __init__(self, status_code: int = 200, body: str = "") -> None:
        super().__init__(f"request terminated ({status_code})")
        self.status_code = status_code
        self.body = body


Handler = Callable[[RequestContext], Awaitable[Any]]
PermissionCheck = Callable[[RequestContext], bool]


class HostPlatform(Protocol):
    filters: FilterRegistry

    def register_callback(self, name: str, handler: Handler, *, privileged: bool) -> None: ...

    def register_route(
        self,
        namespace: str,
        path: str,
        method: str,
        handler: Handler,
        permission: PermissionCheck,
    ) -> None: ...

    def on_routes_init(self, callback: Callable[[], None]) -> None: ...

    def issue_token(self, action: str) -> str: ...

    def verify_token(self, token: Optional[str], action: str) -> bool: ...

    async def send_http_post(self, url: str, args: Mapping[str, Any]) -> DispatchResult: ...

    def terminate(self) -> None: ...

    def deny(self) -> None: ...

    def structured_response(self, body: Any) -> Any: ...

    def current_user_can(self, capability: str, ctx: RequestContext) -> bool: ...

    def current_tenant_id(self) -> int: ...

    def route_url(self, path: str) -> str: ...

    def callback_url(self) -> str: ...


__all__ = ["HostPlatform", "RequestContext", "RequestTerminated", "Handler", "PermissionCheck"]

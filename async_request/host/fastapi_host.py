"""FastAPI implementation of the host platform.

Two inbound surfaces are served from ``router``:

- ``POST {callback_path}?action=<name>`` - generic callback endpoint. Handlers
  are registered per name, once for requests with a logged-in session
  (privileged) and once for anonymous requests.
- ``{rest_prefix}/{namespace}/{path}`` - structured routes with a permission
  predicate, registered when ``init_routes()`` runs (application startup) or
  immediately if routes are already initialized.

Both tables are plain dicts keyed by name/route, so registering the same
handler twice replaces the first registration instead of duplicating it.
"""
from __future__ import annotations

import inspect
import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from async_request.config import CAPABILITIES, SESSION_SETTINGS, SITE_SETTINGS
from async_request.extensions import FilterRegistry
from async_request.host.base import Handler, PermissionCheck, RequestContext, RequestTerminated
from async_request.sessions import SessionStore
from async_request.tokens import NonceService
from async_request.transport import AiohttpTransport, DispatchResult
from async_request.utils import get_logger

logger = get_logger(__name__)

REST_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


@dataclass
class RegisteredRoute:
    namespace: str
    path: str
    method: str
    handler: Handler
    permission: PermissionCheck


def _join_route(namespace: str, path: str) -> str:
    return f"{namespace.strip('/')}/{path.strip('/')}"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class FastAPIHost:
    def __init__(
        self,
        *,
        transport: Optional[Any] = None,
        nonces: Optional[NonceService] = None,
        sessions: Optional[SessionStore] = None,
        filters: Optional[FilterRegistry] = None,
    ) -> None:
        self.transport = transport or AiohttpTransport()
        self.nonces = nonces or NonceService()
        self.sessions = sessions or SessionStore()
        self.filters = filters or FilterRegistry()
        self._callbacks: dict[tuple[bool, str], Handler] = {}
        self._routes: dict[tuple[str, str], RegisteredRoute] = {}
        self._route_init_callbacks: list[Callable[[], None]] = []
        self._routes_initialized = False
        self.rest_prefix = "/" + str(SITE_SETTINGS["rest_prefix"]).strip("/")
        self.callback_path = "/" + str(SITE_SETTINGS["callback_path"]).strip("/")
        self.router = self._build_router()

    # ----------------------------- registration ----------------------------- #
    def register_callback(self, name: str, handler: Handler, *, privileged: bool) -> None:
        key = (privileged, name)
        if key in self._callbacks:
            logger.debug("Callback re-registered", name=name, privileged=privileged)
        self._callbacks[key] = handler

    def callback_registered(self, name: str, *, privileged: bool) -> bool:
        return (privileged, name) in self._callbacks

    def register_route(
        self,
        namespace: str,
        path: str,
        method: str,
        handler: Handler,
        permission: PermissionCheck,
    ) -> None:
        method = method.upper()
        if method not in REST_METHODS:
            raise ValueError(f"Unsupported method '{method}'")
        route = _join_route(namespace, path)
        self._routes[(route, method)] = RegisteredRoute(namespace, path, method, handler, permission)
        logger.debug("Route registered", route=route, method=method)

    def get_route(self, namespace: str, path: str, method: str = "POST") -> Optional[RegisteredRoute]:
        return self._routes.get((_join_route(namespace, path), method.upper()))

    @property
    def routes(self) -> list[RegisteredRoute]:
        return list(self._routes.values())

    @property
    def routes_initialized(self) -> bool:
        return self._routes_initialized

    def on_routes_init(self, callback: Callable[[], None]) -> None:
        if self._routes_initialized:
            callback()
        else:
            self._route_init_callbacks.append(callback)

    def init_routes(self) -> None:
        """Run deferred route registrations. Later calls are no-ops."""
        if self._routes_initialized:
            return
        self._routes_initialized = True
        pending, self._route_init_callbacks = self._route_init_callbacks, []
        for callback in pending:
            callback()
        logger.info("Routes initialized", count=len(self._routes))

    # ------------------------------- services ------------------------------- #
    def issue_token(self, action: str) -> str:
        return self.nonces.issue(action)

    def verify_token(self, token: Optional[str], action: str) -> bool:
        return self.nonces.verify(token, action)

    async def send_http_post(self, url: str, args: Mapping[str, Any]) -> DispatchResult:
        return await self.transport.post(url, args)

    def terminate(self) -> None:
        raise RequestTerminated(status.HTTP_200_OK, "")

    def deny(self) -> None:
        raise RequestTerminated(status.HTTP_403_FORBIDDEN, "-1")

    def structured_response(self, body: Any) -> Response:
        return JSONResponse(content=jsonable_encoder(body))

    def current_user_can(self, capability: str, ctx: RequestContext) -> bool:
        if ctx.role is None:
            return False
        return capability in CAPABILITIES.get(ctx.role, set())

    def current_tenant_id(self) -> int:
        return int(SITE_SETTINGS["site_id"])

    def route_url(self, path: str) -> str:
        return f"{SITE_SETTINGS['site_url']}{self.rest_prefix}/{path.lstrip('/')}"

    def callback_url(self) -> str:
        return f"{SITE_SETTINGS['site_url']}{self.callback_path}"

    async def aclose(self) -> None:
        await self.transport.aclose()

    # ------------------------------- inbound -------------------------------- #
    async def build_context(self, request: Request) -> RequestContext:
        """Read the request and take the session lock. Caller must release it."""
        payload = await self._read_payload(request)
        session_id = request.cookies.get(SESSION_SETTINGS["cookie_name"])
        session = self.sessions.get(session_id)
        handle = await self.sessions.acquire(session_id)
        return RequestContext(
            query=dict(request.query_params),
            payload=payload,
            cookies=dict(request.cookies),
            session=handle,
            role=session.role if session else None,
            request_id=getattr(request.state, "request_id", None),
        )

    @staticmethod
    async def _read_payload(request: Request) -> Any:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/x-www-form-urlencoded"):
            form = await request.form()
            return dict(form)
        raw = await request.body()
        if not raw.strip():
            return {}
        try:
            return json.loads(raw)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be JSON")

    def _build_router(self) -> APIRouter:
        router = APIRouter()

        @router.post(self.callback_path, include_in_schema=False)
        async def callback_endpoint(request: Request) -> Response:
            return await self._handle_callback(request)

        @router.api_route(self.rest_prefix + "/{route:path}", methods=REST_METHODS, include_in_schema=False)
        async def rest_endpoint(route: str, request: Request) -> Response:
            return await self._handle_rest(route, request)

        return router

    async def _handle_callback(self, request: Request) -> Response:
        action = request.query_params.get("action")
        ctx = await self.build_context(request)
        try:
            handler = self._callbacks.get((ctx.role is not None, action)) if action else None
            if handler is None:
                logger.warning("Unknown callback action", action=action, request_id=ctx.request_id)
                return PlainTextResponse("0", status_code=status.HTTP_400_BAD_REQUEST)
            try:
                await _maybe_await(handler(ctx))
            except RequestTerminated as exc:
                return PlainTextResponse(exc.body, status_code=exc.status_code)
            return PlainTextResponse("0")
        finally:
            ctx.session.release()

    async def _handle_rest(self, route: str, request: Request) -> Response:
        entry = self._routes.get((route.strip("/"), request.method.upper()))
        if entry is None:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"code": "rest_no_route", "message": "No route was found matching the URL and request method."},
            )
        ctx = await self.build_context(request)
        try:
            if not entry.permission(ctx):
                logger.warning("Route permission denied", route=route, role=ctx.role, request_id=ctx.request_id)
                return self._forbidden(status.HTTP_403_FORBIDDEN if ctx.role else status.HTTP_401_UNAUTHORIZED)
            try:
                result = await _maybe_await(entry.handler(ctx))
            except RequestTerminated as exc:
                if exc.status_code >= 400:
                    return self._forbidden(exc.status_code)
                return Response(content=exc.body, status_code=exc.status_code)
            if isinstance(result, Response):
                return result
            return self.structured_response(result)
        finally:
            ctx.session.release()

    @staticmethod
    def _forbidden(status_code: int) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"code": "rest_forbidden", "message": "Sorry, you are not allowed to do that."},
        )


__all__ = ["FastAPIHost", "RegisteredRoute"]

"""Fire-and-forget background requests.

An :class:`AsyncDispatcher` wraps one job type. ``dispatch`` makes the server
POST to its own endpoint with a fresh single-use token and returns as soon as
the request is handed off; ``serve`` runs when that request arrives in its own
request context, checks the token and runs the job.

Two transports are supported, fixed per job type:

- ``TransportMode.REST``: structured route
  ``{rest_prefix}/background_process/v1/{identifier}``, token in ``_wpnonce``
  (action ``wp_rest``), gated by a capability check, answers ``{"success": true}``.
- ``TransportMode.AJAX``: generic callback endpoint selected by
  ``?action={identifier}``, token in ``nonce`` (action = identifier),
  registered for both logged-in and anonymous callers, ends the request with
  an empty response.

Usage:

    dispatcher = AsyncDispatcher(EmailNotifyJob(), host)
    await dispatcher.data({"to": "a@b.com"}).dispatch(context=ctx)
"""
from __future__ import annotations

import inspect
import time
from enum import Enum
from typing import Any, Optional

from yarl import URL

from async_request.config import ASYNC_REQUEST_SETTINGS
from async_request.extensions import ExtensionPoint
from async_request.host.base import HostPlatform, RequestContext, RequestTerminated
from async_request.jobs.base import AsyncJob
from async_request.transport import DispatchResult, DispatchTransportError
from async_request.utils import get_logger, log_performance

logger = get_logger(__name__)

_UNSET: Any = object()


class TransportMode(str, Enum):
    REST = "rest"
    AJAX = "ajax"


def build_identifier(prefix: str, job_name: str, tenant_id: int | str) -> str:
    return f"{prefix}_{job_name}_{tenant_id}"


def add_query_args(url: str, query_args: dict[str, Any]) -> str:
    """Merge ``query_args`` into the URL's query string (existing keys replaced).

    Keys whose value is ``False`` or ``None`` are removed from the URL.
    """
    parsed = URL(url)
    dropped = [k for k, v in query_args.items() if v is None or v is False]
    if dropped:
        parsed = parsed.with_query([(k, v) for k, v in parsed.query.items() if k not in dropped])
    kept = {k: str(v) for k, v in query_args.items() if k not in dropped}
    return str(parsed.update_query(kept) if kept else parsed)


class AsyncDispatcher:
    def __init__(self, job: AsyncJob, host: HostPlatform, *, use_rest: Optional[bool] = None) -> None:
        self.job = job
        self.host = host
        prefix = getattr(job, "prefix", None) or str(ASYNC_REQUEST_SETTINGS["default_prefix"])
        self._identifier = build_identifier(prefix, job.job_name, host.current_tenant_id())

        # A job-declared constant wins over the constructor argument.
        declared = getattr(job, "use_rest", None)
        if declared is None:
            declared = use_rest
        if declared is None:
            declared = bool(ASYNC_REQUEST_SETTINGS["use_rest"])
        self._mode = TransportMode.REST if declared else TransportMode.AJAX

        self._data: Any = {}
        self._register()

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def mode(self) -> TransportMode:
        return self._mode

    def is_rest(self) -> bool:
        return self._mode is TransportMode.REST

    # ----------------------------- registration ----------------------------- #
    def _register(self) -> None:
        if not self.is_rest():
            self.host.register_callback(self.identifier, self.serve, privileged=True)
            self.host.register_callback(self.identifier, self.serve, privileged=False)
            return
        self.host.on_routes_init(self._register_route)

    def _register_route(self) -> None:
        self.host.register_route(
            str(ASYNC_REQUEST_SETTINGS["route_namespace"]),
            self.identifier,
            "POST",
            self.serve,
            self.has_permission,
        )

    def has_permission(self, ctx: RequestContext) -> bool:
        job_check = getattr(self.job, "has_permission", None)
        if job_check is not None:
            return bool(job_check(ctx))
        return self.host.current_user_can(str(ASYNC_REQUEST_SETTINGS["permission_capability"]), ctx)

    # ------------------------------- dispatch ------------------------------- #
    def data(self, payload: Any) -> "AsyncDispatcher":
        self._data = payload
        return self

    async def dispatch(self, payload: Any = _UNSET, *, context: Optional[RequestContext] = None) -> DispatchResult:
        """Send the self-request and return what the transport knows right away.

        The result says nothing about the job itself; a ``pending`` response
        only means the request was handed off.
        """
        if payload is not _UNSET:
            self.data(payload)

        query_url = self.get_query_url()
        try:
            url = add_query_args(query_url, self.get_query_args())
        except (TypeError, ValueError) as e:
            logger.warning("Dispatch URL invalid", identifier=self.identifier, url=query_url, error=str(e))
            return DispatchTransportError(url=str(query_url), message=str(e), error_type="invalid_url")
        post_args = self.get_post_args(context)

        logger.info(
            "Dispatching background request",
            identifier=self.identifier,
            mode=self._mode.value,
            url=query_url,
            request_id=context.request_id if context else None,
        )
        return await self.host.send_http_post(url, post_args)

    def get_query_args(self) -> dict[str, Any]:
        if hasattr(self.job, "query_args"):
            return self.job.query_args

        if self.is_rest():
            args = {
                str(ASYNC_REQUEST_SETTINGS["rest_auth_param"]): self.host.issue_token(
                    str(ASYNC_REQUEST_SETTINGS["rest_auth_action"])
                ),
            }
        else:
            args = {
                "action": self.identifier,
                str(ASYNC_REQUEST_SETTINGS["callback_auth_param"]): self.host.issue_token(self.identifier),
            }
        return self.host.filters.apply(ExtensionPoint.QUERY_ARGS, args, identifier=self.identifier)

    def get_query_url(self) -> str:
        if hasattr(self.job, "query_url"):
            return self.job.query_url

        if self.is_rest():
            url = self.host.route_url(f"{ASYNC_REQUEST_SETTINGS['route_namespace']}/{self.identifier}")
        else:
            url = self.host.callback_url()
        return self.host.filters.apply(ExtensionPoint.QUERY_URL, url, identifier=self.identifier)

    def get_post_args(self, context: Optional[RequestContext] = None) -> dict[str, Any]:
        if hasattr(self.job, "post_args"):
            return self.job.post_args

        args: dict[str, Any] = {
            "timeout": float(ASYNC_REQUEST_SETTINGS["timeout"]),
            "blocking": bool(ASYNC_REQUEST_SETTINGS["blocking"]),
            "body": self._data,
            "cookies": dict(context.cookies) if context else {},
            "sslverify": self.host.filters.apply(
                ExtensionPoint.SSL_VERIFY, bool(ASYNC_REQUEST_SETTINGS["sslverify"])
            ),
        }
        if self.is_rest():
            # The route transport has no manual blocking flag.
            del args["blocking"]
        return self.host.filters.apply(ExtensionPoint.POST_ARGS, args, identifier=self.identifier)

    # -------------------------------- serve --------------------------------- #
    async def serve(self, ctx: RequestContext) -> Any:
        """Validate the token, run the job, then answer for the transport."""
        # Don't hold up the user's other requests while the job runs
        ctx.session.release()

        self.check_token(ctx)

        logger.info("Executing background job", identifier=self.identifier, request_id=ctx.request_id)
        start = time.perf_counter()
        result = self.job.execute(ctx.payload)
        if inspect.isawaitable(result):
            await result
        log_performance(
            "background_job",
            round((time.perf_counter() - start) * 1000, 2),
            {"identifier": self.identifier},
        )

        return self.send_or_terminate()

    def check_token(self, ctx: RequestContext) -> None:
        if self.is_rest():
            action = str(ASYNC_REQUEST_SETTINGS["rest_auth_action"])
            query_arg = str(ASYNC_REQUEST_SETTINGS["rest_auth_param"])
        else:
            action = self.identifier
            query_arg = str(ASYNC_REQUEST_SETTINGS["callback_auth_param"])

        if self.host.verify_token(ctx.query.get(query_arg), action):
            return
        logger.warning("Background request rejected", identifier=self.identifier, request_id=ctx.request_id)
        self.host.deny()
        # deny() ends the request; never fall through to the job
        raise RequestTerminated(403, "-1")

    def send_or_terminate(self) -> Any:
        if self.is_rest():
            return self.host.structured_response({"success": True})
        # The callback endpoint is only complete once the request is ended
        self.host.terminate()
        raise RequestTerminated()


__all__ = ["AsyncDispatcher", "TransportMode", "build_identifier", "add_query_args"]

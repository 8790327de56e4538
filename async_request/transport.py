"""Outbound HTTP for the self-call (aiohttp).

The send runs as its own asyncio task. ``post`` only waits on it for the
``timeout`` given in the post args (``0`` / non-blocking: not at all), so the
calling request never waits for the job. Whatever is still running after that
keeps going in the background under ``send_timeout_seconds``.

Failures are returned as :class:`DispatchTransportError` values, never raised,
so callers can inspect or ignore them.
"""
from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import aiohttp
from yarl import URL

from async_request.config import SELF_REQUEST_SETTINGS
from async_request.utils import get_logger, log_performance

logger = get_logger(__name__)


@dataclass
class DispatchResponse:
    """What the sender knows when ``post`` returns.

    ``pending`` means the request was handed off and had not completed yet; no
    status or body is available in that case.
    """
    status: Optional[int] = None
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    pending: bool = False

    @property
    def ok(self) -> bool:
        return self.pending or (self.status is not None and 200 <= self.status < 300)


@dataclass
class DispatchTransportError:
    """The POST could not be issued (bad URL, DNS, refused connection, ...)."""
    url: str
    message: str
    error_type: str = "transport_error"

    ok = False


DispatchResult = Union[DispatchResponse, DispatchTransportError]


class AiohttpTransport:
    def __init__(self, send_timeout_seconds: Optional[float] = None) -> None:
        self._send_timeout = float(send_timeout_seconds or SELF_REQUEST_SETTINGS["send_timeout_seconds"])
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def post(self, url: str, args: Mapping[str, Any]) -> DispatchResult:
        try:
            parsed = URL(url)
        except (TypeError, ValueError) as e:
            return self._error(url, str(e), "invalid_url")
        if not parsed.is_absolute() or parsed.scheme not in ("http", "https"):
            return self._error(url, "URL must be absolute http(s)", "invalid_url")

        try:
            body = None if args.get("body") is None else json.dumps(args["body"]).encode("utf-8")
        except (TypeError, ValueError) as e:
            return self._error(url, str(e), "invalid_body")

        task = asyncio.create_task(self._send(parsed, body, args), name=f"self-request {parsed.path}")
        self._pending.add(task)
        task.add_done_callback(self._settle)

        if not args.get("blocking", True):
            return DispatchResponse(pending=True)

        timeout = args.get("timeout")
        wait_for = None if timeout is None else max(0.0, float(timeout))
        done, _ = await asyncio.wait({task}, timeout=wait_for)
        if not done:
            logger.debug("Self-request detached", url=str(parsed.with_query(None)), waited=wait_for)
            return DispatchResponse(pending=True)
        if task.cancelled():
            return self._error(url, "send cancelled", "cancelled")
        exc = task.exception()
        if exc is not None:
            return self._error(url, str(exc) or type(exc).__name__, type(exc).__name__)
        return task.result()

    async def _send(self, url: URL, body: Optional[bytes], args: Mapping[str, Any]) -> DispatchResponse:
        start = time.perf_counter()
        timeout = aiohttp.ClientTimeout(total=self._send_timeout)
        headers = dict(args.get("headers") or {})
        if body is not None:
            headers["Content-Type"] = "application/json"
        cookies = args.get("cookies") or {}
        if cookies:
            # Sent as a header; the cookie jar drops cookies for IP hosts.
            headers["Cookie"] = "; ".join(f"{name}={value}" for name, value in cookies.items())
        async with aiohttp.ClientSession(timeout=timeout, cookie_jar=aiohttp.DummyCookieJar()) as session:
            async with session.post(
                url,
                data=body,
                headers=headers,
                ssl=bool(args.get("sslverify", True)),
            ) as response:
                text = await response.text()
                log_performance(
                    "self_request",
                    round((time.perf_counter() - start) * 1000, 2),
                    {"status_code": response.status, "path": url.path},
                )
                return DispatchResponse(status=response.status, body=text, headers=dict(response.headers))

    def _settle(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Self-request failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            result = task.result()
            if result.status is not None and result.status >= 400:
                logger.warning("Self-request rejected", task=task.get_name(), status_code=result.status)

    @staticmethod
    def _error(url: str, message: str, error_type: str) -> DispatchTransportError:
        logger.warning("Self-request could not be sent", url=url, error=message, error_type=error_type)
        return DispatchTransportError(url=url, message=message, error_type=error_type)

    async def aclose(self, timeout: float = 5.0) -> None:
        """Give outstanding sends ``timeout`` seconds, then cancel the rest."""
        if not self._pending:
            return
        _, still_running = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("Cancelled outstanding self-requests", count=len(still_running))


__all__ = ["AiohttpTransport", "DispatchResponse", "DispatchTransportError", "DispatchResult"]

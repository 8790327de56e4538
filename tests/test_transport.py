import asyncio
import socket
from datetime import datetime

from aiohttp import web
from aiohttp.test_utils import TestServer

from async_request.transport import AiohttpTransport, DispatchResponse, DispatchTransportError


def _app(received: list, delay: float = 0.0) -> web.Application:
    async def hook(request: web.Request) -> web.Response:
        received.append(
            {
                "query": dict(request.query),
                "cookie": request.headers.get("Cookie"),
                "body": await request.json(),
            }
        )
        if delay:
            await asyncio.sleep(delay)
        return web.json_response({"success": True})

    app = web.Application()
    app.router.add_post("/hook", hook)
    return app


def _free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_non_blocking_post_returns_pending_and_delivers():
    received: list = []

    async def scenario():
        async with TestServer(_app(received)) as server:
            transport = AiohttpTransport()
            url = str(server.make_url("/hook").with_query({"_wpnonce": "t"}))
            result = await transport.post(
                url,
                {"blocking": False, "timeout": 0.01, "body": {"k": [1, 2]}, "cookies": {"sid": "abc"}},
            )
            await transport.aclose()
            return result, transport.pending_count

    result, pending = asyncio.run(scenario())
    assert isinstance(result, DispatchResponse)
    assert result.pending is True
    assert result.ok is True
    assert pending == 0
    assert received == [{"query": {"_wpnonce": "t"}, "cookie": "sid=abc", "body": {"k": [1, 2]}}]


def test_blocking_post_without_timeout_waits_for_response():
    received: list = []

    async def scenario():
        async with TestServer(_app(received)) as server:
            transport = AiohttpTransport()
            return await transport.post(str(server.make_url("/hook")), {"timeout": None, "body": "text"})

    result = asyncio.run(scenario())
    assert result.status == 200
    assert result.pending is False
    assert '"success": true' in result.body
    assert received[0]["body"] == "text"


def test_slow_receiver_is_detached_after_timeout():
    received: list = []

    async def scenario():
        async with TestServer(_app(received, delay=0.5)) as server:
            transport = AiohttpTransport()
            result = await transport.post(str(server.make_url("/hook")), {"timeout": 0.01, "body": {}})
            still_running = transport.pending_count
            await transport.aclose()
            return result, still_running

    result, still_running = asyncio.run(scenario())
    assert result.pending is True
    assert still_running == 1
    assert len(received) == 1


def test_refused_connection_is_reported():
    port = _free_port()

    async def scenario():
        transport = AiohttpTransport(send_timeout_seconds=2)
        return await transport.post(f"http://127.0.0.1:{port}/hook", {"timeout": None, "body": {}})

    result = asyncio.run(scenario())
    assert isinstance(result, DispatchTransportError)
    assert result.ok is False
    assert result.error_type.startswith("Client")


def test_relative_url_is_rejected():
    result = asyncio.run(AiohttpTransport().post("/api/callback", {"body": {}}))
    assert isinstance(result, DispatchTransportError)
    assert result.error_type == "invalid_url"


def test_aclose_cancels_stuck_sends():
    received: list = []

    async def scenario():
        async with TestServer(_app(received, delay=1)) as server:
            transport = AiohttpTransport()
            await transport.post(str(server.make_url("/hook")), {"blocking": False, "body": {}})
            await asyncio.sleep(0.05)
            await transport.aclose(timeout=0.05)
            return transport.pending_count

    assert asyncio.run(scenario()) == 0


def test_unencodable_body_is_reported_before_sending():
    async def scenario():
        transport = AiohttpTransport()
        result = await transport.post(
            "http://127.0.0.1:9/hook",
            {"blocking": False, "body": {"when": datetime(2024, 1, 1)}},
        )
        return result, transport.pending_count

    result, pending = asyncio.run(scenario())
    assert isinstance(result, DispatchTransportError)
    assert result.ok is False
    assert result.error_type == "invalid_body"
    assert pending == 0


def test_body_is_sent_as_json():
    received: list = []
    headers: list = []

    app = _app(received)

    @web.middleware
    async def capture(request, handler):
        headers.append(request.headers.get("Content-Type"))
        return await handler(request)

    app.middlewares.append(capture)

    async def scenario():
        async with TestServer(app) as server:
            transport = AiohttpTransport()
            return await transport.post(str(server.make_url("/hook")), {"timeout": None, "body": ["a", 1, None]})

    assert asyncio.run(scenario()).status == 200
    assert received[0]["body"] == ["a", 1, None]
    assert headers == ["application/json"]

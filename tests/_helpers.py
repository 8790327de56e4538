"""Test doubles shared across test modules."""
from typing import Any
from fastapi.testclient import TestClient

from async_request.jobs import BackgroundJob
from async_request.transport import DispatchResponse

ADMIN_API_KEY = "admin_key_test"
SUBSCRIBER_API_KEY = "subscriber_key_test"


class RecordingTransport:
    """Stands in for the network: remembers each POST instead of sending it."""

    def __init__(self, result: Any = None) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.result = result if result is not None else DispatchResponse(pending=True)
        self.closed = False
        self.pending_count = 0

    async def post(self, url: str, args: dict) -> Any:
        self.calls.append((url, args))
        return self.result

    async def aclose(self) -> None:
        self.closed = True


class RecordingJob(BackgroundJob):
    """Job that keeps every payload it receives."""

    def __init__(self, job_name: str = "record", **attrs: Any) -> None:
        self.job_name = job_name
        self.payloads: list[Any] = []
        for key, value in attrs.items():
            setattr(self, key, value)

    def execute(self, payload: Any) -> None:
        self.payloads.append(payload)


def replay(client: TestClient, call: tuple[str, dict]):
    """Deliver a recorded self-request to the app the way the transport would."""
    url, args = call
    client.cookies.clear()
    for name, value in (args.get("cookies") or {}).items():
        client.cookies.set(name, value)
    return client.post(url, json=args.get("body"))

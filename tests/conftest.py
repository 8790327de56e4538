import os
import sys
from pathlib import Path
import pytest
from fastapi.testclient import TestClient

# Ensure project root on sys.path so 'async_request' resolves without installation
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# Must be set before async_request.config is imported
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("NONCE_SECRET", "test-nonce-secret")

from async_request.config import API_KEYS, SESSION_SETTINGS, SITE_SETTINGS  # noqa: E402
from async_request.host import FastAPIHost  # noqa: E402
from async_request.jobs.email_notify import SENT_NOTIFICATIONS  # noqa: E402
from async_request.main import create_app  # noqa: E402
from tests._helpers import ADMIN_API_KEY, SUBSCRIBER_API_KEY, RecordingTransport  # noqa: E402


@pytest.fixture(autouse=True)
def _site_settings(monkeypatch):
    """Point the site at TestClient's base URL and give it tenant id 1."""
    monkeypatch.setitem(SITE_SETTINGS, "site_url", "http://testserver")
    monkeypatch.setitem(SITE_SETTINGS, "site_id", 1)
    monkeypatch.setitem(API_KEYS, ADMIN_API_KEY, "administrator")
    monkeypatch.setitem(API_KEYS, SUBSCRIBER_API_KEY, "subscriber")
    SENT_NOTIFICATIONS.clear()
    yield
    SENT_NOTIFICATIONS.clear()


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def host(transport) -> FastAPIHost:
    return FastAPIHost(transport=transport)


@pytest.fixture()
def app(host):
    return create_app(host)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def admin_cookies(host) -> dict[str, str]:
    session = host.sessions.create("administrator")
    return {SESSION_SETTINGS["cookie_name"]: session.id}

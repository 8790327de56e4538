"""Core application configuration.

Everything that may differ between deployments (site URL, tenant id, transport
defaults for the self-call, token lifetime, capability map) is centralized here
as module constants read from the environment. Tests monkeypatch the dicts
directly because other modules import them by reference.
"""
from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
	raw = os.getenv(name)
	if raw is None or not raw.strip():
		return default
	return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_api_keys(raw: str) -> dict[str, str]:
	"""Parse ``"key:role,key:role"`` into a mapping."""
	keys: dict[str, str] = {}
	for chunk in raw.split(","):
		chunk = chunk.strip()
		if not chunk:
			continue
		key, sep, role = chunk.partition(":")
		if not sep or not key.strip() or not role.strip():
			raise ValueError(f"Malformed API_KEYS entry '{chunk}' (expected key:role)")
		keys[key.strip()] = role.strip()
	return keys


# ---------------------------------- Site ---------------------------------- #
SITE_SETTINGS: dict[str, str | int] = {
	# Absolute base URL the server can reach itself on.
	"site_url": os.getenv("SITE_URL", "http://localhost:8000").rstrip("/"),
	# Tenant / blog id; part of every job identifier.
	"site_id": int(os.getenv("SITE_ID", "1")),
	"rest_prefix": os.getenv("REST_PREFIX", "/api/rest"),
	"callback_path": os.getenv("CALLBACK_PATH", "/api/callback"),
}

# ------------------------------ Async Request ----------------------------- #
ASYNC_REQUEST_SETTINGS: dict[str, str | float | bool] = {
	"default_prefix": os.getenv("ASYNC_REQUEST_PREFIX", "wp"),
	# Structured route (True) vs legacy callback endpoint (False)
	"use_rest": _env_bool("ASYNC_REQUEST_USE_REST", True),
	# How long dispatch waits on the send before detaching; not a deadline.
	"timeout": float(os.getenv("ASYNC_REQUEST_TIMEOUT", "0.01")),
	"blocking": False,
	"sslverify": _env_bool("HTTPS_LOCAL_SSL_VERIFY", False),
	"route_namespace": "background_process/v1",
	"rest_auth_action": "wp_rest",
	"rest_auth_param": "_wpnonce",
	"callback_auth_param": "nonce",
	"permission_capability": "manage_options",
}

# ------------------------------ Self Request ------------------------------ #
SELF_REQUEST_SETTINGS: dict[str, float] = {
	# Real deadline of a detached send, so sockets are not held forever.
	"send_timeout_seconds": float(os.getenv("SELF_REQUEST_SEND_TIMEOUT", "30")),
}

# --------------------------------- Tokens --------------------------------- #
NONCE_SETTINGS: dict[str, str | int] = {
	"secret": os.getenv("NONCE_SECRET") or "change-me-in-production",
	"lifetime_seconds": int(os.getenv("NONCE_LIFETIME_SECONDS", str(24 * 3600))),
}

# -------------------------------- Sessions -------------------------------- #
SESSION_SETTINGS: dict[str, str | int] = {
	"cookie_name": os.getenv("SESSION_COOKIE_NAME", "async_request_session"),
	# Idle sessions are dropped after this long.
	"ttl_seconds": int(os.getenv("SESSION_TTL_SECONDS", "86400")),
}

# Role -> capabilities granted. Unknown roles hold nothing.
CAPABILITIES: dict[str, set[str]] = {
	"administrator": {"manage_options", "read"},
	"subscriber": {"read"},
}

# API key -> role, exchanged for a session cookie at /api/v1/sessions
API_KEYS: dict[str, str] = _parse_api_keys(os.getenv("API_KEYS", ""))

# -------------------------------- Logging --------------------------------- #
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE: str | None = os.getenv("LOG_FILE", "logs/app.log") or None

__all__ = [
	"SITE_SETTINGS",
	"ASYNC_REQUEST_SETTINGS",
	"SELF_REQUEST_SETTINGS",
	"NONCE_SETTINGS",
	"SESSION_SETTINGS",
	"CAPABILITIES",
	"API_KEYS",
	"LOG_LEVEL",
	"LOG_FILE",
]

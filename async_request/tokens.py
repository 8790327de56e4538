"""Short-lived, single-use tokens bound to an action string.

Token format: ``"{tick}.{nonce}.{signature}"``

- ``tick`` is the half-lifetime window the token was issued in. A token is
  accepted in its own tick and the following one, so its real lifetime lies
  between ``lifetime / 2`` and ``lifetime`` seconds.
- ``signature`` is HMAC-SHA256 over ``tick|nonce|action`` with the site secret.

A token verifies at most once; consumed tokens are remembered until their
window has passed.
"""
from __future__ import annotations

import hashlib
import hmac
import secrets
import threading
import time
from typing import Callable, Optional

from async_request.config import NONCE_SETTINGS
from async_request.utils import get_logger

logger = get_logger(__name__)


class NonceService:
    def __init__(
        self,
        secret: Optional[str] = None,
        lifetime_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = (secret or str(NONCE_SETTINGS["secret"])).encode("utf-8")
        self._lifetime = int(lifetime_seconds or NONCE_SETTINGS["lifetime_seconds"])
        if self._lifetime < 2:
            raise ValueError("lifetime_seconds must be at least 2")
        self._clock = clock
        self._lock = threading.Lock()
        self._consumed: dict[str, int] = {}  # token -> tick

    def _tick(self) -> int:
        return int(self._clock() // (self._lifetime / 2))

    def _sign(self, tick: int, nonce: str, action: str) -> str:
        message = f"{tick}|{nonce}|{action}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def issue(self, action: str) -> str:
        tick = self._tick()
        nonce = secrets.token_hex(8)
        return f"{tick}.{nonce}.{self._sign(tick, nonce, action)}"

    def verify(self, token: Optional[str], action: str) -> bool:
        if not token:
            return False
        parts = token.split(".")
        if len(parts) != 3:
            return False
        raw_tick, nonce, signature = parts
        try:
            tick = int(raw_tick)
        except ValueError:
            return False
        current = self._tick()
        if tick not in (current, current - 1):
            logger.debug("Token outside validity window", action=action)
            return False
        if not hmac.compare_digest(signature, self._sign(tick, nonce, action)):
            return False
        with self._lock:
            if token in self._consumed:
                logger.warning("Token replay rejected", action=action)
                return False
            self._consumed[token] = tick
        self.purge_expired()
        return True

    def purge_expired(self) -> int:
        """Forget consumed tokens whose window has passed. Returns count removed."""
        oldest_valid = self._tick() - 1
        with self._lock:
            stale = [tok for tok, tick in self._consumed.items() if tick < oldest_valid]
            for tok in stale:
                del self._consumed[tok]
        return len(stale)


__all__ = ["NonceService"]

"""In-memory sessions with a per-session request lock.

A request that carries a session cookie holds that session's lock for as long
as it runs, so requests sharing a session are serialized. Long-running handlers
release their handle early to stop blocking the user's other requests.
"""
from __future__ import annotations

import asyncio
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from async_request.config import SESSION_SETTINGS
from async_request.utils import get_logger

logger = get_logger(__name__)


@dataclass
class Session:
    id: str
    role: str
    created_at: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.time)


class SessionHandle:
    """Lock held by one request on one session. ``release`` is idempotent."""

    def __init__(self, session_id: Optional[str] = None, lock: Optional[asyncio.Lock] = None) -> None:
        self.session_id = session_id
        self._lock = lock
        self._released = lock is None

    @property
    def held(self) -> bool:
        return not self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._lock is not None:
            self._lock.release()
        logger.debug("Session lock released", session_id=self.session_id)


class SessionStore:
    """Sessions expire after ``ttl_seconds`` without use."""

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.time) -> None:
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._guard = threading.Lock()
        self._ttl = float(ttl_seconds if ttl_seconds is not None else SESSION_SETTINGS["ttl_seconds"])
        self._clock = clock

    def _expired(self, session: Session, now: float) -> bool:
        return now - session.last_seen > self._ttl

    def create(self, role: str) -> Session:
        self.purge_expired()
        now = self._clock()
        session = Session(id=secrets.token_urlsafe(24), role=role, created_at=now, last_seen=now)
        with self._guard:
            self._sessions[session.id] = session
        logger.info("Session created", role=role)
        return session

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        """Look up a live session and mark it used. Expired sessions are dropped."""
        if not session_id:
            return None
        now = self._clock()
        with self._guard:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if self._expired(session, now):
                del self._sessions[session_id]
                self._locks.pop(session_id, None)
                logger.info("Session expired", role=session.role)
                return None
            session.last_seen = now
            return session

    def purge_expired(self) -> int:
        now = self._clock()
        with self._guard:
            stale = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
            for sid in stale:
                del self._sessions[sid]
                self._locks.pop(sid, None)
        if stale:
            logger.debug("Expired sessions purged", count=len(stale))
        return len(stale)

    def delete(self, session_id: str) -> bool:
        with self._guard:
            removed = self._sessions.pop(session_id, None) is not None
            self._locks.pop(session_id, None)
        return removed

    async def acquire(self, session_id: Optional[str]) -> SessionHandle:
        """Wait for the session's lock. Unknown sessions get a no-op handle."""
        if self.get(session_id) is None:
            return SessionHandle()
        with self._guard:
            lock = self._locks.setdefault(str(session_id), asyncio.Lock())
        await lock.acquire()
        return SessionHandle(session_id, lock)

    def __len__(self) -> int:
        return len(self._sessions)


__all__ = ["Session", "SessionHandle", "SessionStore"]

"""
In-memory session store for development and tests.

Why: Keep the identity snapshot server-side and hand the client only an opaque
session id. For multi-instance deployments use `DBSessionStore`
(`SESSIONS_BACKEND=db`).

Semantics: A record is a snapshot of `{username, role, tags}` taken at login or
registration. It is never refreshed; role and tag changes become visible with
the next login.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional
import secrets
import time


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    session_id: str
    username: str
    role: str
    tags: list[str] = field(default_factory=list)
    expires_at: Optional[int] = None

    def snapshot(self) -> dict:
        return {"username": self.username, "role": self.role, "tags": list(self.tags)}


class SessionStore:
    def __init__(self):
        self._data: Dict[str, SessionRecord] = {}

    def create(self, *, username: str, role: str, tags: Iterable[str] = (), ttl_seconds: int = 8 * 3600) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(
            session_id=sid,
            username=username,
            role=role,
            tags=sorted(tags),
            expires_at=_now() + ttl_seconds,
        )
        self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rec = self._data.get(session_id)
        if not rec:
            return None
        if rec.expires_at and rec.expires_at < _now():
            self._data.pop(session_id, None)
            return None
        return rec

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)

"""
Database-backed SessionStore for production use (Postgres).

Why: In-memory sessions are lost on restart and are not shared between app
instances. This store persists session snapshots in Postgres while keeping the
cookie opaque.

Security:
- Only the opaque `session_id` is set in the cookie; the snapshot stays server-side.
- The table name is validated before it is interpolated into SQL.

Schema (created by migration or on first use):
    create table if not exists <table> (
        session_id text primary key,
        username text not null,
        role text not null,
        tags jsonb not null default '[]'::jsonb,
        expires_at timestamptz not null
    )

Note: This module uses psycopg3. It is imported only when enabled via
`SESSIONS_BACKEND=db`. Tests can continue to use the in-memory store.
"""
from __future__ import annotations

from typing import Iterable, Optional
import os
import re
import secrets
import time

from backend.identity_access.stores import SessionRecord

try:
    import psycopg
    from psycopg.types.json import Json
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    Json = None  # type: ignore
    HAVE_PSYCOPG = False


def _now() -> int:
    return int(time.time())


class DBSessionStore:
    """Postgres-backed session store.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Falls back to `DATABASE_URL`.
    table:
        Fully qualified table name. Defaults to `public.portal_sessions`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.portal_sessions") -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBSessionStore")
        self._dsn = dsn or os.getenv("DATABASE_URL", "")
        if not self._dsn:
            raise RuntimeError("No database DSN provided for DBSessionStore")
        if not re.match(r'^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$', table or ''):
            raise ValueError("Invalid table name")
        self._table = table

    def create(self, *, username: str, role: str, tags: Iterable[str] = (), ttl_seconds: int = 8 * 3600) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        tag_list = sorted(tags)
        expires_at = _now() + ttl_seconds
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"insert into {self._table} (session_id, username, role, tags, expires_at) "
                    f"values (%s, %s, %s, %s, to_timestamp(%s))",
                    (sid, username, role, Json(tag_list), expires_at),
                )
        return SessionRecord(session_id=sid, username=username, role=role, tags=tag_list, expires_at=expires_at)

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select session_id, username, role, tags, extract(epoch from expires_at)::bigint "
                    f"from {self._table} where session_id = %s and expires_at > now()",
                    (session_id,),
                )
                row = cur.fetchone()
        if not row:
            return None
        tags = [t for t in row[3] if isinstance(t, str)] if isinstance(row[3], list) else []
        return SessionRecord(
            session_id=row[0],
            username=row[1],
            role=row[2],
            tags=tags,
            expires_at=int(row[4]) if row[4] is not None else None,
        )

    def delete(self, session_id: str) -> None:
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(f"delete from {self._table} where session_id = %s", (session_id,))


__all__ = ["DBSessionStore", "HAVE_PSYCOPG"]

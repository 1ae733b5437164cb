"""
Database-backed collection backend for production use (Postgres).

Why: JSON files live on one host's disk. This backend keeps each collection as
one row so several app replicas (or a managed Postgres) share the same data
while `CollectionStore` stays unchanged.

Schema (created on first use):
    create table if not exists <table> (
        name text primary key,
        body text not null,
        updated_at timestamptz not null default now()
    )

Note: This module uses psycopg3. It is imported only when enabled via
`PORTAL_COLLECTIONS_BACKEND=db`. Tests can continue to use the memory backend.
"""
from __future__ import annotations

import os
import re
from typing import Optional

from .ports import StorageError

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False


_TABLE_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


class PostgresCollectionBackend:
    """Postgres-backed `CollectionBackend`.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Falls back to `DATABASE_URL`.
    table:
        Fully qualified table name. Defaults to `public.portal_collections`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.portal_collections") -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for PostgresCollectionBackend")
        self._dsn = dsn or os.getenv("DATABASE_URL", "")
        if not self._dsn:
            raise RuntimeError("No database DSN provided for PostgresCollectionBackend")
        # Identifiers cannot be bound as parameters; validate before interpolating.
        if not _TABLE_PATTERN.match(table or ""):
            raise ValueError("Invalid table name")
        self._table = table
        self._schema_ready = False

    def _ensure_schema(self, cur) -> None:
        if self._schema_ready:
            return
        cur.execute(
            f"create table if not exists {self._table} ("
            "name text primary key, body text not null, updated_at timestamptz not null default now())"
        )
        self._schema_ready = True

    def read(self, name: str) -> Optional[str]:
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                self._ensure_schema(cur)
                cur.execute(f"select body from {self._table} where name = %s", (name,))
                row = cur.fetchone()
        return None if not row else str(row[0])

    def write(self, name: str, text: str) -> None:
        try:
            with psycopg.connect(self._dsn, autocommit=True) as conn:
                with conn.cursor() as cur:
                    self._ensure_schema(cur)
                    cur.execute(
                        f"insert into {self._table} (name, body, updated_at) values (%s, %s, now()) "
                        "on conflict (name) do update set body = excluded.body, updated_at = now()",
                        (name, text),
                    )
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"cannot write collection {name!r}: {exc.__class__.__name__}") from exc


__all__ = ["PostgresCollectionBackend", "HAVE_PSYCOPG"]

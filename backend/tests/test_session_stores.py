"""
Session stores: in-memory store and DBSessionStore over a fake psycopg driver.
"""
from __future__ import annotations

import os

import pytest

from backend.identity_access import stores_db as mod
from backend.identity_access.stores import SessionStore
from backend.tests.utils.fake_psycopg import install_fake_psycopg

SESSION_TEST_DSN = os.getenv("SESSION_TEST_DSN")


def test_memory_store_snapshot_roundtrip():
    store = SessionStore()
    rec = store.create(username="admin", role="admin", tags={"founder", "dev"}, ttl_seconds=60)
    got = store.get(rec.session_id)
    assert got is rec
    assert got.snapshot() == {"username": "admin", "role": "admin", "tags": ["dev", "founder"]}
    store.delete(rec.session_id)
    assert store.get(rec.session_id) is None


def test_memory_store_drops_expired_sessions():
    store = SessionStore()
    rec = store.create(username="u", role="user", ttl_seconds=-10)
    assert store.get(rec.session_id) is None


def test_session_ids_are_unique_and_opaque():
    store = SessionStore()
    a = store.create(username="admin", role="admin")
    b = store.create(username="admin", role="admin")
    assert a.session_id != b.session_id
    assert "admin" not in a.session_id


def test_db_store_create_get_delete_roundtrip(monkeypatch: pytest.MonkeyPatch):
    if SESSION_TEST_DSN:
        store = mod.DBSessionStore(dsn=SESSION_TEST_DSN)
    else:
        install_fake_psycopg(monkeypatch, mod)
        store = mod.DBSessionStore(dsn="fake://dsn")

    rec = store.create(username="announcer", role="announcer", tags=["news"], ttl_seconds=60)
    got = store.get(rec.session_id)
    assert got is not None
    assert (got.username, got.role, got.tags) == ("announcer", "announcer", ["news"])
    assert isinstance(got.expires_at, int)

    store.delete(rec.session_id)
    assert store.get(rec.session_id) is None


def test_db_store_filters_expired_sessions(monkeypatch: pytest.MonkeyPatch):
    install_fake_psycopg(monkeypatch, mod)
    store = mod.DBSessionStore(dsn="fake://dsn")
    rec = store.create(username="u", role="user", ttl_seconds=-10)
    assert store.get(rec.session_id) is None


def test_db_store_rejects_bad_table_and_missing_dsn(monkeypatch: pytest.MonkeyPatch):
    install_fake_psycopg(monkeypatch, mod)
    with pytest.raises(ValueError):
        mod.DBSessionStore(dsn="fake://dsn", table="bad;drop table")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        mod.DBSessionStore()

"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend, and give every test a clean
environment plus an in-memory portal so no test touches ./data or a database.
"""
from __future__ import annotations

import os
from typing import AsyncIterator

import httpx
import pytest
from httpx import ASGITransport

from backend.identity_access.stores import SessionStore
from backend.storage.bootstrap import build_collection_store
from backend.storage.collections import CollectionStore, MemoryCollectionBackend


_ENV_PREFIXES = ("PORTAL_",)
_ENV_NAMES = ("SESSIONS_BACKEND", "DATABASE_URL")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clean_portal_env(monkeypatch: pytest.MonkeyPatch):
    """Drop portal settings inherited from the shell so defaults apply."""
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES) or name in _ENV_NAMES:
            monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def backend() -> MemoryCollectionBackend:
    return MemoryCollectionBackend()


@pytest.fixture
def store(backend: MemoryCollectionBackend) -> CollectionStore:
    return build_collection_store(backend)


@pytest.fixture
def app(store: CollectionStore):
    from backend.web.main import create_app

    return create_app(store=store, sessions=SessionStore())


@pytest.fixture
async def client(app) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


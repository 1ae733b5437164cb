"""
Collection defaults and store construction.

Intent:
    Give every collection a documented, non-empty default so a fresh install is
    usable immediately (seed accounts, a welcome announcement, sample file
    links, the base tag set), and build the configured `CollectionStore`.

Security & Safety:
    - Seed passwords come from PORTAL_SEED_*_PASSWORD and are stored hashed.
      The built-in fallbacks are for local development only; the startup guard
      refuses them in production.
    - Defaults are written only for collections that are absent, never over
      existing data (see `CollectionStore.ensure_initialized`).

Usage:
    store = build_collection_store()
    await store.ensure_initialized()
"""
from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, Optional

from backend.identity_access.passwords import hash_password

from . import config
from .collections import CollectionStore, JsonFileCollectionBackend, MemoryCollectionBackend
from .ports import CollectionBackend

_log = logging.getLogger("portal.storage")

SEED_PASSWORD_DEFAULTS: Dict[str, str] = {
    "admin": "duck123",
    "announcer": "quackpost",
    "user": "quack",
}

BASE_TAGS = ("employee", "dev", "admin", "founder")


def get_seed_password(username: str) -> str:
    """Return the seed password for a built-in account.

    Env:
        PORTAL_SEED_<USERNAME>_PASSWORD: optional override per seed account.
    """
    env_name = f"PORTAL_SEED_{username.upper()}_PASSWORD"
    return (os.getenv(env_name) or SEED_PASSWORD_DEFAULTS[username]).strip()


@lru_cache(maxsize=16)
def _seed_hash(username: str, password: str) -> str:
    # Memoized per (username, password) pair.
    return hash_password(password)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def default_users() -> dict:
    def seed(username: str, role: str, tags: list[str]) -> dict:
        return {
            "password_hash": _seed_hash(username, get_seed_password(username)),
            "role": role,
            "tags": tags,
        }

    return {
        "admin": seed("admin", "admin", ["founder"]),
        "announcer": seed("announcer", "announcer", []),
        "user": seed("user", "user", []),
    }


def default_tags() -> list:
    return list(BASE_TAGS)


def default_blacklist() -> dict:
    return {}


def default_announcements() -> list:
    return [
        {
            "author": "admin",
            "text": "Welcome to Duck Corporations! Stay yellow \U0001F31F",
            "date": _now_iso(),
        }
    ]


def default_chat() -> list:
    return []


def default_files() -> list:
    return [
        {"name": "TrueNAS UI", "url": "/truenas/", "embed": True},
        {"name": "Company Handbook", "url": "https://example.com/handbook.pdf"},
    ]


COLLECTION_DEFAULTS: Dict[str, Callable[[], object]] = {
    config.USERS: default_users,
    config.TAGS: default_tags,
    config.BLACKLIST: default_blacklist,
    config.ANNOUNCEMENTS: default_announcements,
    config.CHAT: default_chat,
    config.FILES: default_files,
}


def build_backend(kind: Optional[str] = None, *, data_dir: Optional[Path] = None) -> CollectionBackend:
    """Instantiate the backend selected by `kind` or PORTAL_COLLECTIONS_BACKEND."""
    kind = kind or config.get_collections_backend()
    if kind == "memory":
        return MemoryCollectionBackend()
    if kind == "db":
        from .collections_db import PostgresCollectionBackend

        return PostgresCollectionBackend(table=config.get_collections_table())
    root = data_dir or config.get_data_dir()
    _log.info("Using file collections below %s", root)
    return JsonFileCollectionBackend(root)


def build_collection_store(backend: Optional[CollectionBackend] = None) -> CollectionStore:
    return CollectionStore(backend or build_backend(), COLLECTION_DEFAULTS)


__all__ = [
    "BASE_TAGS",
    "COLLECTION_DEFAULTS",
    "SEED_PASSWORD_DEFAULTS",
    "build_backend",
    "build_collection_store",
    "default_announcements",
    "default_blacklist",
    "default_chat",
    "default_files",
    "default_tags",
    "default_users",
    "get_seed_password",
]

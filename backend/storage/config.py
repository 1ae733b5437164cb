"""
Centralized storage configuration for collections.

Intent:
    Provide a single source of truth for the collection names, their on-disk
    locations and the environment overrides that pick a backend. Prevents drift
    between the web app, the admin CLI and tests.

Behavior:
    - COLLECTION_FILES maps each collection to its path below the data root.
      The layout matches data directories written by earlier portal releases.
    - get_data_dir() and get_collections_backend() read env overrides
      (PORTAL_DATA_DIR / PORTAL_COLLECTIONS_BACKEND) with sane fallbacks.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os
from pathlib import Path


USERS = "users"
TAGS = "tags"
BLACKLIST = "blacklist"
ANNOUNCEMENTS = "announcements"
CHAT = "chat"
FILES = "files"

COLLECTION_FILES: dict[str, str] = {
    USERS: "users/userdata.json",
    BLACKLIST: "blacklists/blacklists.json",
    ANNOUNCEMENTS: "announcements/announcements.json",
    FILES: "files/files.json",
    CHAT: "chat/chat.json",
    TAGS: "tags/tags.json",
}

DATA_DIR_DEFAULT = "data"
COLLECTIONS_BACKEND_DEFAULT = "file"
COLLECTIONS_BACKENDS = frozenset({"file", "memory", "db"})
COLLECTIONS_TABLE_DEFAULT = "public.portal_collections"


def collection_path(name: str) -> str:
    """Relative path of a collection file; unknown names get `<name>/<name>.json`."""
    return COLLECTION_FILES.get(name) or f"{name}/{name}.json"


def get_data_dir() -> Path:
    """Return the data root for the file backend.

    Env:
        PORTAL_DATA_DIR: optional override; otherwise `./data`.
    """
    raw = (os.getenv("PORTAL_DATA_DIR") or DATA_DIR_DEFAULT).strip()
    return Path(raw).expanduser()


def get_collections_backend() -> str:
    """Return the configured collection backend (`file`, `memory` or `db`).

    Unknown values fall back to the file backend.
    """
    raw = (os.getenv("PORTAL_COLLECTIONS_BACKEND") or COLLECTIONS_BACKEND_DEFAULT).strip().lower()
    return raw if raw in COLLECTIONS_BACKENDS else COLLECTIONS_BACKEND_DEFAULT


def get_collections_table() -> str:
    return (os.getenv("PORTAL_COLLECTIONS_TABLE") or COLLECTIONS_TABLE_DEFAULT).strip()


__all__ = [
    "ANNOUNCEMENTS",
    "BLACKLIST",
    "CHAT",
    "COLLECTION_FILES",
    "COLLECTIONS_BACKENDS",
    "FILES",
    "TAGS",
    "USERS",
    "collection_path",
    "get_collections_backend",
    "get_collections_table",
    "get_data_dir",
]

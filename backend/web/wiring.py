"""
Service wiring for the portal web app and the admin CLI.

Why:
    Both entry points need the same services over the same collection store.
    `build_services` assembles them once; the app keeps the result on
    `app.state.services` so tests can swap the store or the session backend
    without monkeypatching module globals.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from backend.identity_access.directory import UserDirectory
from backend.identity_access.stores import SessionStore
from backend.identity_access.tags import TagRegistry
from backend.portal.services.blacklist import Blacklist
from backend.portal.services.feeds import BoundedLog, announcements_log, chat_log
from backend.portal.services.files import FileLinks
from backend.storage.bootstrap import build_collection_store
from backend.storage.collections import CollectionStore
from backend.web import config

logger = logging.getLogger("portal.web")


@dataclass
class PortalServices:
    store: CollectionStore
    sessions: Any
    tags: TagRegistry
    directory: UserDirectory
    blacklist: Blacklist
    announcements: BoundedLog
    chat: BoundedLog
    files: FileLinks


def build_session_store() -> Any:
    """Pick the session backend from SESSIONS_BACKEND (memory unless `db`)."""
    if config.get_sessions_backend() == "db":
        from backend.identity_access.stores_db import DBSessionStore

        logger.info("Using database session store")
        return DBSessionStore()
    return SessionStore()


def build_services(store: Optional[CollectionStore] = None, sessions: Any = None) -> PortalServices:
    store = store or build_collection_store()
    tags = TagRegistry(store)
    return PortalServices(
        store=store,
        sessions=sessions if sessions is not None else build_session_store(),
        tags=tags,
        directory=UserDirectory(store, tags),
        blacklist=Blacklist(store),
        announcements=announcements_log(store),
        chat=chat_log(store),
        files=FileLinks(store),
    )

"""Announcement and chat feeds (newest-first bounded logs).

Why:
    Announcements and chat share one behavior: trimmed, non-empty text is
    prepended with author and UTC timestamp; chat additionally keeps only the
    newest entries and returns fewer than it stores.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from backend.identity_access.errors import EmptyContent
from backend.storage.collections import CollectionStore
from backend.storage.config import ANNOUNCEMENTS, CHAT

CHAT_CAPACITY = 1000
CHAT_LIST_LIMIT = 500


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class LogSettings:
    collection: str
    capacity: Optional[int] = None
    list_limit: Optional[int] = None


class BoundedLog:
    """Newest-first log persisted as one collection.

    `capacity` caps stored entries (oldest dropped); `list_limit` caps how many
    `list()` returns. `None` means unbounded.
    """

    def __init__(self, store: CollectionStore, settings: LogSettings) -> None:
        self._store = store
        self.settings = settings

    async def append(self, author: str, text: object) -> Dict[str, Any]:
        body = text.strip() if isinstance(text, str) else ""
        if not body:
            raise EmptyContent("text")
        entry = {"author": author, "text": body, "date": _utc_now_iso()}
        capacity = self.settings.capacity

        def _prepend(entries: list) -> None:
            entries.insert(0, entry)
            if capacity is not None and len(entries) > capacity:
                del entries[capacity:]

        await self._store.mutate(self.settings.collection, _prepend)
        return entry

    async def list(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        entries = await self._store.load(self.settings.collection)
        caps = [c for c in (limit, self.settings.list_limit) if c is not None]
        if caps:
            entries = entries[: max(0, min(caps))]
        return entries


def announcements_log(store: CollectionStore) -> BoundedLog:
    return BoundedLog(store, LogSettings(collection=ANNOUNCEMENTS))


def chat_log(store: CollectionStore) -> BoundedLog:
    return BoundedLog(store, LogSettings(collection=CHAT, capacity=CHAT_CAPACITY, list_limit=CHAT_LIST_LIMIT))

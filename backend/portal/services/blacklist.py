"""Client blacklist service.

Why:
    The blacklist gate (web middleware) and the blacklist endpoints both need
    the same view of blocked client identifiers. Keeping the persisted format
    here lets the gate, the routes and the admin CLI share one implementation.

Persisted format:
    {"<identifier>": true, ...}

    Entries whose value is falsy are kept on disk but do not block.
"""

from __future__ import annotations

import logging
from typing import List

from backend.identity_access.errors import MissingField
from backend.storage.collections import CollectionStore
from backend.storage.config import BLACKLIST

logger = logging.getLogger("portal.blacklist")


def _normalize_identifier(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


class Blacklist:
    def __init__(self, store: CollectionStore) -> None:
        self._store = store

    async def list(self) -> List[str]:
        """Return the blocked identifiers, sorted."""
        entries = await self._store.load(BLACKLIST)
        return sorted(ident for ident, blocked in entries.items() if blocked)

    async def contains(self, identifier: object) -> bool:
        ident = _normalize_identifier(identifier)
        if not ident:
            return False
        entries = await self._store.load(BLACKLIST)
        return bool(entries.get(ident))

    async def add(self, identifier: object) -> str:
        ident = _normalize_identifier(identifier)
        if not ident:
            raise MissingField("ip")

        def _apply(entries: dict) -> None:
            entries[ident] = True

        await self._store.mutate(BLACKLIST, _apply)
        return ident

    async def remove(self, identifier: object) -> bool:
        """Unblock `identifier`; returns False when it was not blocked."""
        ident = _normalize_identifier(identifier)
        if not ident:
            raise MissingField("ip")

        def _apply(entries: dict) -> bool:
            return bool(entries.pop(ident, None))

        removed = await self._store.mutate(BLACKLIST, _apply)
        if removed:
            logger.info("Removed client %s from blacklist", ident)
        return removed

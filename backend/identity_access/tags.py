"""
Tag registry: the global vocabulary of grantable tags.

Tags are free-form labels (e.g. `founder`, `dev`) that admins attach to users.
A tag must exist here before it can be granted. Tags are never removed or
renamed.
"""
from __future__ import annotations

import logging

from backend.identity_access.errors import AlreadyExists, MissingField
from backend.storage.collections import CollectionStore
from backend.storage.config import TAGS

logger = logging.getLogger("portal.identity.tags")


def normalize_tag(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _clean(raw: list) -> list[str]:
    seen: list[str] = []
    for item in raw:
        if isinstance(item, str) and item and item not in seen:
            seen.append(item)
    return seen


class TagRegistry:
    def __init__(self, store: CollectionStore) -> None:
        self._store = store

    async def list(self) -> list[str]:
        """Return all tags in insertion order."""
        return _clean(await self._store.load(TAGS))

    async def exists(self, name: object) -> bool:
        tag = normalize_tag(name)
        return bool(tag) and tag in await self.list()

    async def create(self, name: object) -> str:
        """Register a new tag and return its normalized name.

        Raises MissingField for blank names and AlreadyExists for duplicates.
        """
        tag = normalize_tag(name)
        if not tag:
            raise MissingField("tag")

        def _append(tags: list) -> None:
            if tag in tags:
                raise AlreadyExists("tag")
            tags.append(tag)

        await self._store.mutate(TAGS, _append)
        logger.info("Tag created: %s", tag)
        return tag


__all__ = ["TagRegistry", "normalize_tag"]

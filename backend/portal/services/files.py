"""Read-only file link listing."""

from __future__ import annotations

from typing import Any, Dict, List

from backend.storage.collections import CollectionStore
from backend.storage.config import FILES


class FileLinks:
    def __init__(self, store: CollectionStore) -> None:
        self._store = store

    async def list(self) -> List[Dict[str, Any]]:
        """Return `{name, url, embed?}` records; malformed entries are skipped."""
        links: List[Dict[str, Any]] = []
        for item in await self._store.load(FILES):
            if not isinstance(item, dict):
                continue
            name, url = item.get("name"), item.get("url")
            if not isinstance(name, str) or not isinstance(url, str):
                continue
            link: Dict[str, Any] = {"name": name, "url": url}
            if "embed" in item:
                link["embed"] = bool(item["embed"])
            links.append(link)
        return links

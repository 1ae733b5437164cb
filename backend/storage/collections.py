"""
Named, persistent collections with default-on-first-use semantics.

Why:
    Every portal dataset (users, tags, blacklist, announcements, chat, file
    links) is one JSON document that is read whole, changed in memory and
    written back whole. This module owns that cycle so services never touch
    files or connections directly.

Behavior:
    - `load` never fails on I/O: absent, empty, unparsable or wrongly typed
      content, and backend read faults, all yield a fresh copy of the
      collection default.
    - `save` overwrites the full document and raises `StorageError` on failure.
    - `mutate` serializes load→modify→save per collection name with an
      `asyncio.Lock`, so concurrent requests cannot overwrite each other's
      changes. Different collections never wait on each other. Its read is
      strict: a backend fault raises `StorageError` rather than yielding the
      default, so an update never replaces real data with seeds.
    - Backend I/O and default factories run in worker threads.

Limits:
    Locks are per process. Several processes sharing one backend are not
    serialized against each other.
"""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, TypeVar

from .config import collection_path
from .ports import CollectionBackend, StorageError

logger = logging.getLogger("portal.storage")

T = TypeVar("T")
DefaultFactory = Callable[[], Any]


class MemoryCollectionBackend:
    """In-process backend for tests and throwaway dev servers.

    Stores serialized text so every load hands out an independent copy.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._data: Dict[str, str] = {}
        for name, value in (initial or {}).items():
            self._data[name] = value if isinstance(value, str) else json.dumps(value)

    def read(self, name: str) -> Optional[str]:
        return self._data.get(name)

    def write(self, name: str, text: str) -> None:
        self._data[name] = text


class JsonFileCollectionBackend:
    """One JSON file per collection below `root`.

    Writes go to a temporary file in the target directory followed by
    `os.replace`, so readers see either the old or the new document.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, name: str) -> Path:
        return self.root / collection_path(name)

    def read(self, name: str) -> Optional[str]:
        try:
            return self.path_for(name).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, name: str, text: str) -> None:
        path = self.path_for(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise StorageError(f"cannot write collection {name!r}: {exc.__class__.__name__}") from exc


class CollectionStore:
    """Typed access to named collections over a `CollectionBackend`.

    Parameters
    ----------
    backend:
        Where serialized collections live.
    defaults:
        Mapping of collection name to a zero-argument factory returning that
        collection's default value. The default's JSON type (object or array)
        is also the expected type of stored content.
    """

    def __init__(self, backend: CollectionBackend, defaults: Optional[Mapping[str, DefaultFactory]] = None) -> None:
        self._backend = backend
        self._defaults: Dict[str, DefaultFactory] = dict(defaults or {})
        self._locks: Dict[str, asyncio.Lock] = {}
        self._types: Dict[str, type] = {}

    @property
    def backend(self) -> CollectionBackend:
        return self._backend

    def names(self) -> list[str]:
        return list(self._defaults)

    def register(self, name: str, factory: DefaultFactory) -> None:
        self._defaults[name] = factory
        self._types.pop(name, None)

    def default(self, name: str) -> Any:
        try:
            factory = self._defaults[name]
        except KeyError:
            raise KeyError(f"unknown collection: {name}") from None
        return factory()

    def lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    async def _build_default(self, name: str) -> Any:
        # Factories can be CPU bound (seed password hashes).
        value = await asyncio.to_thread(self.default, name)
        self._types.setdefault(name, type(value))
        return value

    async def _expected_type(self, name: str) -> type:
        expected = self._types.get(name)
        if expected is None:
            expected = type(await self._build_default(name))
        return expected

    async def _decode(self, name: str, text: Optional[str]) -> Any:
        if text is None or not text.strip():
            return await self._build_default(name)
        try:
            value = json.loads(text)
        except ValueError:
            logger.warning("Collection %s is not valid JSON; using default", name)
            return await self._build_default(name)
        expected = await self._expected_type(name)
        if not isinstance(value, expected):
            logger.warning(
                "Collection %s holds %s, expected %s; using default",
                name,
                type(value).__name__,
                expected.__name__,
            )
            return await self._build_default(name)
        return value

    async def _read_raw(self, name: str) -> Optional[str]:
        return await asyncio.to_thread(self._backend.read, name)

    async def load(self, name: str) -> Any:
        """Return the stored value of `name`, or its default (never raises on I/O)."""
        try:
            text = await self._read_raw(name)
        except Exception as exc:
            logger.warning("Collection %s read failed (%s); using default", name, exc.__class__.__name__)
            text = None
        return await self._decode(name, text)

    async def save(self, name: str, value: Any) -> None:
        """Overwrite `name` with `value`; raises `StorageError` on failure."""
        if name not in self._defaults:
            raise KeyError(f"unknown collection: {name}")
        text = json.dumps(value, indent=2, ensure_ascii=False)
        try:
            await asyncio.to_thread(self._backend.write, name, text)
        except StorageError:
            logger.error("Collection %s write failed", name)
            raise
        except Exception as exc:
            logger.error("Collection %s write failed (%s)", name, exc.__class__.__name__)
            raise StorageError(f"cannot write collection {name!r}") from exc

    async def _load_for_update(self, name: str) -> Any:
        try:
            text = await self._read_raw(name)
        except StorageError:
            logger.error("Collection %s read failed; update aborted", name)
            raise
        except Exception as exc:
            logger.error("Collection %s read failed (%s); update aborted", name, exc.__class__.__name__)
            raise StorageError(f"cannot read collection {name!r}") from exc
        return await self._decode(name, text)

    async def mutate(self, name: str, fn: Callable[[Any], T]) -> T:
        """Run one serialized load→modify→save cycle and return `fn`'s result.

        `fn` receives the loaded value and changes it in place. If it raises,
        nothing is written and the exception propagates. A failed read raises
        `StorageError` instead of writing the default over stored data.
        """
        async with self.lock(name):
            value = await self._load_for_update(name)
            result = fn(value)
            await self.save(name, value)
            return result

    async def ensure_initialized(self, names: Optional[Iterable[str]] = None) -> list[str]:
        """Persist the default of every absent collection; return the names written.

        Collections whose read fails are left alone so a transient fault never
        replaces real data with seeds.
        """
        created: list[str] = []
        for name in list(names) if names is not None else self.names():
            async with self.lock(name):
                try:
                    text = await self._read_raw(name)
                except Exception as exc:
                    logger.warning("Collection %s not initialized: read failed (%s)", name, exc.__class__.__name__)
                    continue
                if text is None:
                    await self.save(name, await self._build_default(name))
                    created.append(name)
        if created:
            logger.info("Initialized collections with defaults: %s", ", ".join(created))
        return created


__all__ = [
    "CollectionStore",
    "JsonFileCollectionBackend",
    "MemoryCollectionBackend",
    "StorageError",
]

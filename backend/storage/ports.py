"""
Storage ports used by the collection store.

Keep these small and framework-agnostic so tests can supply simple fakes.
"""
from __future__ import annotations

from typing import Protocol


class StorageError(RuntimeError):
    """Raised when a backend cannot persist a collection."""


class CollectionBackend(Protocol):
    """Minimal interface to read and overwrite one serialized collection.

    Intent:
        `CollectionStore` owns parsing, defaults and locking. Backends only move
        opaque text in and out of durable storage.

    Contract:
        - `read` returns None when nothing is stored under `name`. It may raise
          on I/O faults; the store degrades those to the collection default.
        - `write` replaces the full content atomically (readers never observe a
          partial value) and raises `StorageError` on failure.
    """

    def read(self, name: str) -> str | None: ...

    def write(self, name: str, text: str) -> None: ...


__all__ = ["CollectionBackend", "StorageError"]

"""
CollectionStore: defaults on first use, corruption recovery, write failures
and per-collection serialization of read-modify-write cycles.
"""
from __future__ import annotations

import asyncio
import json
import threading
import time

import pytest

from backend.identity_access.directory import UserDirectory
from backend.identity_access.tags import TagRegistry
from backend.storage import config
from backend.storage.bootstrap import build_collection_store
from backend.storage.collections import CollectionStore, JsonFileCollectionBackend, MemoryCollectionBackend
from backend.storage.ports import StorageError

pytestmark = pytest.mark.anyio("asyncio")


class _FlakyBackend(MemoryCollectionBackend):
    def __init__(self, *, fail_reads: bool = False, fail_writes: bool = False, read_delay: float = 0.0):
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.read_delay = read_delay
        self.writes = 0

    def read(self, name):
        if self.read_delay:
            time.sleep(self.read_delay)
        if self.fail_reads:
            raise OSError("device not ready")
        return super().read(name)

    def write(self, name, text):
        if self.fail_writes:
            raise OSError("disk full")
        self.writes += 1
        super().write(name, text)


async def test_absent_collections_load_their_defaults(store: CollectionStore):
    assert await store.load(config.TAGS) == ["employee", "dev", "admin", "founder"]
    assert await store.load(config.BLACKLIST) == {}
    assert await store.load(config.CHAT) == []
    users = await store.load(config.USERS)
    assert set(users) == {"admin", "announcer", "user"}
    assert users["admin"]["role"] == "admin"
    assert users["admin"]["tags"] == ["founder"]
    assert "password" not in users["admin"]
    files = await store.load(config.FILES)
    assert files[0] == {"name": "TrueNAS UI", "url": "/truenas/", "embed": True}
    announcements = await store.load(config.ANNOUNCEMENTS)
    assert announcements[0]["author"] == "admin"


@pytest.mark.parametrize("raw", ["", "   \n", "{not json", '{"a": 1}', "42"])
async def test_corrupt_or_mistyped_content_yields_default(raw: str):
    backend = MemoryCollectionBackend({config.TAGS: raw})
    store = build_collection_store(backend)
    assert await store.load(config.TAGS) == ["employee", "dev", "admin", "founder"]


async def test_read_fault_degrades_to_default_and_logs(caplog: pytest.LogCaptureFixture):
    store = build_collection_store(_FlakyBackend(fail_reads=True))
    with caplog.at_level("WARNING", logger="portal.storage"):
        assert await store.load(config.CHAT) == []
    assert any("read failed" in r.getMessage() for r in caplog.records)


async def test_mutate_read_fault_raises_and_keeps_stored_data(caplog: pytest.LogCaptureFixture):
    backend = _FlakyBackend()
    store = build_collection_store(backend)
    directory = UserDirectory(store, TagRegistry(store))
    await directory.register("alice", "pw")
    writes_before = backend.writes

    backend.fail_reads = True
    with caplog.at_level("ERROR", logger="portal.storage"):
        with pytest.raises(StorageError):
            await directory.register("bob", "pw")
    assert any("update aborted" in r.getMessage() for r in caplog.records)
    assert backend.writes == writes_before

    backend.fail_reads = False
    users = await store.load(config.USERS)
    assert "alice" in users
    assert "bob" not in users


async def test_mutate_still_starts_from_default_when_content_is_absent_or_corrupt():
    backend = _FlakyBackend()
    backend.write(config.BLACKLIST, "{oops")
    store = build_collection_store(backend)
    await store.mutate(config.BLACKLIST, lambda value: value.update({"203.0.113.7": True}))
    await store.mutate(config.CHAT, lambda value: value.append({"user": "u", "text": "hi"}))
    assert await store.load(config.BLACKLIST) == {"203.0.113.7": True}
    assert len(await store.load(config.CHAT)) == 1


async def test_default_factory_runs_once_and_off_the_event_loop_thread():
    calls = []

    def factory() -> dict:
        calls.append(threading.get_ident())
        return {}

    store = CollectionStore(MemoryCollectionBackend({"things": {"a": 1}}), {"things": factory})
    assert await store.load("things") == {"a": 1}
    assert await store.load("things") == {"a": 1}
    assert len(calls) == 1
    assert calls[0] != threading.get_ident()
    assert await CollectionStore(MemoryCollectionBackend(), {"things": factory}).load("things") == {}


async def test_loads_return_independent_copies(store: CollectionStore):
    first = await store.load(config.TAGS)
    first.append("mutated-in-memory")
    assert "mutated-in-memory" not in await store.load(config.TAGS)


async def test_save_overwrites_and_write_fault_raises_storage_error():
    backend = _FlakyBackend()
    store = build_collection_store(backend)
    await store.save(config.CHAT, [{"author": "a", "text": "x", "date": "d"}])
    assert json.loads(backend.read(config.CHAT))[0]["text"] == "x"

    backend.fail_writes = True
    with pytest.raises(StorageError):
        await store.save(config.CHAT, [])


async def test_save_rejects_unregistered_collection(store: CollectionStore):
    with pytest.raises(KeyError):
        await store.save("unknown", [])


async def test_mutate_does_not_save_when_fn_raises():
    backend = _FlakyBackend()
    store = build_collection_store(backend)

    def boom(tags):
        tags.append("x")
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await store.mutate(config.TAGS, boom)
    assert backend.writes == 0
    assert backend.read(config.TAGS) is None


async def test_unserialized_cycles_lose_an_update():
    """Two plain load/save cycles that interleave: the last writer wins."""
    store = build_collection_store(MemoryCollectionBackend())
    loaded: list[int] = []

    async def unserialized_add(tag: str) -> None:
        tags = await store.load(config.TAGS)
        loaded.append(1)
        while len(loaded) < 2:
            await asyncio.sleep(0)
        tags.append(tag)
        await store.save(config.TAGS, tags)

    await asyncio.gather(unserialized_add("alpha"), unserialized_add("beta"))
    tags = await store.load(config.TAGS)
    assert ("alpha" in tags) != ("beta" in tags)


async def test_concurrent_tag_creations_both_persist():
    store = build_collection_store(_FlakyBackend(read_delay=0.02))
    registry = TagRegistry(store)
    await asyncio.gather(registry.create("alpha"), registry.create("beta"))
    tags = await registry.list()
    assert "alpha" in tags and "beta" in tags


async def test_different_collections_do_not_share_a_lock(store: CollectionStore):
    async with store.lock(config.TAGS):
        await asyncio.wait_for(store.mutate(config.CHAT, lambda msgs: msgs.append({"text": "hi"})), timeout=1)
    assert await store.load(config.CHAT) == [{"text": "hi"}]


async def test_ensure_initialized_writes_only_absent_collections():
    backend = MemoryCollectionBackend({config.TAGS: ["custom"]})
    store = build_collection_store(backend)
    created = await store.ensure_initialized()
    assert config.TAGS not in created
    assert set(created) == set(store.names()) - {config.TAGS}
    assert await store.load(config.TAGS) == ["custom"]
    assert await store.ensure_initialized() == []


async def test_ensure_initialized_skips_unreadable_collections():
    backend = _FlakyBackend(fail_reads=True)
    store = build_collection_store(backend)
    assert await store.ensure_initialized() == []
    assert backend.writes == 0


async def test_file_backend_uses_legacy_layout_and_leaves_no_temp_files(tmp_path):
    store = build_collection_store(JsonFileCollectionBackend(tmp_path))
    await store.ensure_initialized()
    assert (tmp_path / "users" / "userdata.json").is_file()
    assert (tmp_path / "blacklists" / "blacklists.json").is_file()
    assert json.loads((tmp_path / "tags" / "tags.json").read_text(encoding="utf-8"))[0] == "employee"

    await store.mutate(config.BLACKLIST, lambda entries: entries.update({"10.0.0.9": True}))
    assert json.loads((tmp_path / "blacklists" / "blacklists.json").read_text(encoding="utf-8")) == {"10.0.0.9": True}
    assert not list(tmp_path.rglob("*.tmp"))


async def test_file_backend_reads_original_plaintext_records(tmp_path):
    users_file = tmp_path / "users" / "userdata.json"
    users_file.parent.mkdir(parents=True)
    users_file.write_text(json.dumps({"old": {"password": "pw", "role": "dev"}}), encoding="utf-8")
    store = build_collection_store(JsonFileCollectionBackend(tmp_path))
    assert (await store.load(config.USERS))["old"]["role"] == "dev"


def test_file_backend_write_error_is_storage_error(tmp_path):
    blocker = tmp_path / "users"
    blocker.write_text("not a directory", encoding="utf-8")
    backend = JsonFileCollectionBackend(tmp_path)
    with pytest.raises(StorageError):
        backend.write(config.USERS, "{}")

"""
User directory backed by the `users` collection.

Why:
    Registration, login, password changes and admin grants all read and write
    the same username → record mapping. This module owns the record format and
    every rule around it, so routes and the admin CLI only call methods.

Record format (persisted):
    {"<username>": {"password_hash": "$pbkdf2-sha256$...", "role": "user", "tags": ["dev"]}}

    Older data directories may hold a plaintext `password` field instead of
    `password_hash`. Such records still log in and are rewritten with a hash on
    the first successful login.

Security:
    - Password checks are constant time; unknown usernames spend a dummy
      verification so timing does not reveal which accounts exist.
    - Hashing runs in a worker thread; it is CPU bound.
    - Never log passwords or hashes.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from backend.identity_access import passwords
from backend.identity_access.domain import Role, parse_role
from backend.identity_access.errors import (
    DuplicateUsername,
    MissingField,
    NotFound,
    PasswordMismatch,
    UnknownRole,
    UnknownTag,
)
from backend.identity_access.tags import TagRegistry, normalize_tag
from backend.storage.collections import CollectionStore
from backend.storage.config import USERS

logger = logging.getLogger("portal.identity.directory")


@dataclass(frozen=True)
class User:
    username: str
    role: str
    tags: frozenset[str] = field(default_factory=frozenset)

    def snapshot(self) -> dict[str, Any]:
        return {"username": self.username, "role": self.role, "tags": sorted(self.tags)}

    def public(self) -> dict[str, Any]:
        """Listing shape without the username key and without credentials."""
        return {"role": self.role, "tags": sorted(self.tags)}


def _to_user(username: str, record: Any) -> Optional[User]:
    if not isinstance(record, dict):
        return None
    role = record.get("role")
    raw_tags = record.get("tags")
    tags = frozenset(t for t in raw_tags if isinstance(t, str)) if isinstance(raw_tags, list) else frozenset()
    return User(username=username, role=role if isinstance(role, str) else "", tags=tags)


def _normalize_username(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _require_record(users: dict, username: str) -> dict:
    record = users.get(username)
    if not isinstance(record, dict):
        raise NotFound("user")
    return record


class UserDirectory:
    def __init__(self, store: CollectionStore, tags: TagRegistry) -> None:
        self._store = store
        self._tags = tags

    async def _users(self) -> dict:
        return await self._store.load(USERS)

    async def get(self, username: str) -> Optional[User]:
        """Return the live record for `username`, or None when it does not exist."""
        name = _normalize_username(username)
        if not name:
            return None
        return _to_user(name, (await self._users()).get(name))

    async def list(self) -> dict[str, User]:
        users = await self._users()
        result: dict[str, User] = {}
        for name, record in users.items():
            user = _to_user(name, record)
            if user is not None:
                result[name] = user
        return result

    async def verify_credentials(self, username: object, password: object) -> Optional[User]:
        """Return the matching user, or None for unknown names and wrong passwords."""
        name = _normalize_username(username)
        secret = password if isinstance(password, str) else ""
        record = (await self._users()).get(name) if name else None
        if not isinstance(record, dict) or not secret:
            await asyncio.to_thread(passwords.dummy_verify)
            return None

        stored_hash = record.get("password_hash")
        if passwords.is_password_hash(stored_hash):
            ok = await asyncio.to_thread(passwords.verify_password, secret, stored_hash)
        else:
            ok = passwords.verify_legacy_plaintext(secret, record.get("password"))
            if ok:
                await self._upgrade_legacy_password(name, secret)
        if not ok:
            return None
        return _to_user(name, record)

    async def _upgrade_legacy_password(self, username: str, secret: str) -> None:
        new_hash = await asyncio.to_thread(passwords.hash_password, secret)

        def _apply(users: dict) -> None:
            record = users.get(username)
            if isinstance(record, dict) and "password" in record:
                record.pop("password", None)
                record["password_hash"] = new_hash

        await self._store.mutate(USERS, _apply)
        logger.info("Upgraded legacy plaintext credential to a hash")

    async def register(self, username: object, password: object) -> User:
        name = _normalize_username(username)
        if not name:
            raise MissingField("username")
        if not isinstance(password, str) or not password:
            raise MissingField("password")
        new_hash = await asyncio.to_thread(passwords.hash_password, password)

        def _insert(users: dict) -> User:
            if name in users:
                raise DuplicateUsername()
            users[name] = {"password_hash": new_hash, "role": Role.USER.value, "tags": []}
            return User(username=name, role=Role.USER.value)

        user = await self._store.mutate(USERS, _insert)
        logger.info("Registered new user")
        return user

    async def change_password(self, username: str, old_password: object, new_password: object) -> None:
        """Replace the caller's password after checking the current one.

        The old password is verified against a read of the record; the write
        then only lands if that record still holds the same credential, so two
        changes presenting the same old password cannot both succeed.

        Raises MissingField (empty new password), NotFound, PasswordMismatch.
        """
        if not isinstance(new_password, str) or not new_password:
            raise MissingField("newPassword")
        name = _normalize_username(username)
        record = _require_record(await self._users(), name)
        old = old_password if isinstance(old_password, str) else ""
        seen = (record.get("password_hash"), record.get("password"))
        if passwords.is_password_hash(seen[0]):
            ok = await asyncio.to_thread(passwords.verify_password, old, seen[0])
        else:
            ok = passwords.verify_legacy_plaintext(old, seen[1])
        if not ok:
            raise PasswordMismatch("bad password")
        new_hash = await asyncio.to_thread(passwords.hash_password, new_password)

        def _apply(users: dict) -> None:
            current = _require_record(users, name)
            if (current.get("password_hash"), current.get("password")) != seen:
                raise PasswordMismatch("bad password")
            current.pop("password", None)
            current["password_hash"] = new_hash

        await self._store.mutate(USERS, _apply)
        logger.info("Password changed")

    async def set_password(self, username: str, new_password: str) -> None:
        """Overwrite a password without checking the old one (admin tooling)."""
        if not isinstance(new_password, str) or not new_password:
            raise MissingField("password")
        name = _normalize_username(username)
        new_hash = await asyncio.to_thread(passwords.hash_password, new_password)

        def _apply(users: dict) -> None:
            record = _require_record(users, name)
            record.pop("password", None)
            record["password_hash"] = new_hash

        await self._store.mutate(USERS, _apply)

    async def set_role(self, username: object, role: object) -> User:
        name = _normalize_username(username)
        if not name:
            raise MissingField("username")
        if role is None or role == "":
            raise MissingField("role")
        parsed = parse_role(role)
        if parsed is None:
            raise UnknownRole(str(role))

        def _apply(users: dict) -> User:
            record = _require_record(users, name)
            record["role"] = parsed.value
            return _to_user(name, record)

        user = await self._store.mutate(USERS, _apply)
        logger.info("Role changed: user=%s role=%s", name, parsed.value)
        return user

    async def add_tag(self, username: object, tag: object) -> User:
        """Grant an existing tag; granting a tag the user already holds is a no-op."""
        name = _normalize_username(username)
        tag_name = normalize_tag(tag)
        if not name:
            raise MissingField("username")
        if not tag_name:
            raise MissingField("tag")
        if not await self._tags.exists(tag_name):
            raise UnknownTag(tag_name)

        def _apply(users: dict) -> User:
            record = _require_record(users, name)
            tags = record.get("tags")
            if not isinstance(tags, list):
                tags = []
                record["tags"] = tags
            if tag_name not in tags:
                tags.append(tag_name)
            return _to_user(name, record)

        user = await self._store.mutate(USERS, _apply)
        logger.info("Tag granted: user=%s tag=%s", name, tag_name)
        return user


__all__ = ["User", "UserDirectory"]

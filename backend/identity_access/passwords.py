"""
Password hashing helpers (passlib, pbkdf2_sha256 only).

Stored credentials are salted one-way hashes. Records written by older portal
releases may still carry a plaintext password; `verify_legacy_plaintext`
compares those in constant time so the caller can upgrade them to a hash.
"""
from __future__ import annotations

import hmac

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

HASH_PREFIX = "$pbkdf2-sha256$"


def hash_password(password: str) -> str:
    return pwd_context.hash(password or "")


def is_password_hash(value: object) -> bool:
    return isinstance(value, str) and value.startswith(HASH_PREFIX)


def verify_password(plain_password: str, hashed_password: object) -> bool:
    if not is_password_hash(hashed_password):
        return False
    try:
        return pwd_context.verify(plain_password or "", hashed_password)
    except ValueError:
        # malformed hash
        return False


def verify_legacy_plaintext(plain_password: str, stored: object) -> bool:
    if not isinstance(stored, str) or not stored:
        return False
    return hmac.compare_digest((plain_password or "").encode("utf-8"), stored.encode("utf-8"))


def dummy_verify() -> None:
    """Spend one verification's worth of time for unknown usernames."""
    pwd_context.dummy_verify()


__all__ = [
    "dummy_verify",
    "hash_password",
    "is_password_hash",
    "pwd_context",
    "verify_legacy_plaintext",
    "verify_password",
]

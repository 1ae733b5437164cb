"""
Identity domain constants and simple helpers.

Why:
- Centralize the role hierarchy so every authorization decision compares ranks
  through one function instead of ad hoc string checks.
- Make the per-endpoint choice between the session snapshot and a fresh
  directory lookup explicit (`AuthPolicy`).
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Privilege levels in ascending order (declaration order == rank)."""

    USER = "user"
    EMPLOYEE = "employee"
    ANNOUNCER = "announcer"
    DEV = "dev"
    ADMIN = "admin"


ROLE_ORDER: tuple[Role, ...] = tuple(Role)
_RANKS = {role: rank for rank, role in enumerate(ROLE_ORDER)}

ALLOWED_ROLES = frozenset(r.value for r in ROLE_ORDER)


class AuthPolicy(str, Enum):
    """Where an endpoint reads the caller's role from.

    TRUST_SNAPSHOT uses the role captured at login (cheap, possibly stale).
    REVALIDATE_AGAINST_DIRECTORY reloads the stored user on every call.
    """

    TRUST_SNAPSHOT = "trust_snapshot"
    REVALIDATE_AGAINST_DIRECTORY = "revalidate_against_directory"


def parse_role(value: object) -> Role | None:
    """Return the `Role` for a raw value, or None when it is not a known role."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value)
    except ValueError:
        return None


def role_rank(value: object) -> int | None:
    role = parse_role(value)
    return None if role is None else _RANKS[role]


def role_at_least(candidate: object, required: object) -> bool:
    """True iff `candidate` ranks at or above `required`.

    Unknown or missing values on either side fail closed.
    """
    have = role_rank(candidate)
    need = role_rank(required)
    if have is None or need is None:
        return False
    return have >= need


__all__ = [
    "ALLOWED_ROLES",
    "AuthPolicy",
    "ROLE_ORDER",
    "Role",
    "parse_role",
    "role_at_least",
    "role_rank",
]

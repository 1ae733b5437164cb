"""
Shared web security helpers (FastAPI-agnostic utilities for routes).

Contains the same-origin CSRF check, the client identifier used by the
blacklist gate, and the authorization helpers every protected route calls.
Keeping a single implementation avoids security drift between routers.
"""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

from fastapi import Request

from backend.identity_access.domain import AuthPolicy, Role, role_at_least
from backend.identity_access.errors import Forbidden, Unauthenticated
from backend.web import config

logger = logging.getLogger("portal.web.security")


def client_identifier(request: Request) -> str:
    """Return the identifier the blacklist is keyed on.

    The peer address, or the first X-Forwarded-For hop when
    PORTAL_TRUST_PROXY=true. Empty when neither is known.
    """
    if config.trust_proxy():
        forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
        if forwarded:
            return forwarded
    client = request.client
    return (client.host if client else "") or ""


def _parse_origin(url: str) -> tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    host = p.hostname.lower()
    port = p.port if p.port is not None else (443 if scheme == "https" else 80)
    return scheme, host, int(port)


def _parse_server(request: Request) -> tuple[str, str, int]:
    if config.trust_proxy():
        xf_proto = (request.headers.get("x-forwarded-proto") or "").split(",")[0].strip()
        xf_host = (request.headers.get("x-forwarded-host") or "").split(",")[0].strip()
        if xf_host:
            scheme = (xf_proto or request.url.scheme or "http").lower()
            return _parse_origin(f"{scheme}://{xf_host}")
    scheme = (request.url.scheme or "http").lower()
    host = (request.url.hostname or "").lower()
    port = int(request.url.port) if request.url.port else (443 if scheme == "https" else 80)
    return scheme, host, port


def _is_same_origin(request: Request) -> bool:
    """Verify same-origin using Origin or Referer headers.

    Behavior:
    - If Origin is present, require exact scheme/host/port match with server.
    - Else if Referer is present, validate its origin similarly.
    - Else (no headers): allow outside prod so non-browser clients keep working;
      deny in prod.
    Proxy awareness: Only trust X-Forwarded-* when PORTAL_TRUST_PROXY=true.
    """
    origin_val = request.headers.get("origin") or request.headers.get("referer")
    if not origin_val:
        return config.get_environment() != "prod"
    try:
        return _parse_origin(origin_val) == _parse_server(request)
    except ValueError:
        return False


def csrf_guard(request: Request) -> None:
    if not _is_same_origin(request):
        logger.warning("Cross-origin write rejected on %s", request.url.path)
        raise Forbidden("csrf_violation")


def current_user(request: Request) -> dict[str, Any] | None:
    return getattr(request.state, "user", None)


def require_session(request: Request) -> dict[str, Any]:
    user = current_user(request)
    if not user:
        raise Unauthenticated()
    return user


async def authorize(request: Request, required: Role, policy: AuthPolicy) -> dict[str, Any]:
    """Return the caller's snapshot if their role meets `required`.

    With REVALIDATE_AGAINST_DIRECTORY the role comes from the live user record
    instead of the session snapshot; a user that no longer exists is Forbidden.
    """
    user = require_session(request)
    role = user.get("role")
    if policy is AuthPolicy.REVALIDATE_AGAINST_DIRECTORY:
        live = await request.app.state.services.directory.get(user.get("username", ""))
        if live is None:
            raise Forbidden("user_missing")
        role = live.role
    if not role_at_least(role, required):
        logger.info("Forbidden: %s requires %s", request.url.path, required.value)
        raise Forbidden()
    return user

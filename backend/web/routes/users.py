"""
User administration API routes: listing, role changes and tag grants.

Why:
    Admins manage the user directory from the portal. These endpoints trust the
    role in the caller's session snapshot; a demoted admin keeps access until
    their session ends.

Permissions:
    Caller must hold `admin` in their session snapshot.
"""
from __future__ import annotations

from fastapi import APIRouter, Request

from backend.identity_access.domain import AuthPolicy, Role
from backend.web.routes.common import _json_private, _ok, read_payload
from backend.web.routes.security import authorize, csrf_guard

users_router = APIRouter(tags=["Users"])


@users_router.get("/api/users")
async def users_list(request: Request):
    """Return `{username: {role, tags}}` for every user; credentials are never included."""
    await authorize(request, Role.ADMIN, AuthPolicy.TRUST_SNAPSHOT)
    users = await request.app.state.services.directory.list()
    return _json_private({name: user.public() for name, user in users.items()})


@users_router.post("/api/user/set-role")
async def users_set_role(request: Request):
    await authorize(request, Role.ADMIN, AuthPolicy.TRUST_SNAPSHOT)
    csrf_guard(request)
    data = await read_payload(request)
    await request.app.state.services.directory.set_role(data.get("username"), data.get("role"))
    return _ok()


@users_router.post("/api/user/add-tag")
async def users_add_tag(request: Request):
    """Grant an existing tag to a user (idempotent)."""
    await authorize(request, Role.ADMIN, AuthPolicy.TRUST_SNAPSHOT)
    csrf_guard(request)
    data = await read_payload(request)
    await request.app.state.services.directory.add_tag(data.get("username"), data.get("tag"))
    return _ok()

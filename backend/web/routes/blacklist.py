"""
Blacklist API routes.

Permissions:
    `employee` or higher, checked against the live user record on every call.
    Removal is not exposed over HTTP; operators use `portal-admin blacklist-remove`.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from backend.identity_access.domain import AuthPolicy, Role
from backend.web.routes.common import _json_private, _ok, read_payload
from backend.web.routes.security import authorize, csrf_guard

blacklist_router = APIRouter(tags=["Blacklist"])
logger = logging.getLogger("portal.web.blacklist")


@blacklist_router.get("/api/blacklist")
async def blacklist_list(request: Request):
    await authorize(request, Role.EMPLOYEE, AuthPolicy.REVALIDATE_AGAINST_DIRECTORY)
    return _json_private(await request.app.state.services.blacklist.list())


@blacklist_router.post("/api/blacklist")
async def blacklist_add(request: Request):
    """Block a client identifier. Accepts `ip` (legacy form field) or `identifier`."""
    user = await authorize(request, Role.EMPLOYEE, AuthPolicy.REVALIDATE_AGAINST_DIRECTORY)
    csrf_guard(request)
    data = await read_payload(request)
    ident = data.get("ip") or data.get("identifier")
    added = await request.app.state.services.blacklist.add(ident)
    logger.info("Client %s blacklisted by %s", added, user["username"])
    return _ok()

"""Tag registry API routes."""
from __future__ import annotations

from fastapi import APIRouter, Request

from backend.identity_access.domain import AuthPolicy, Role
from backend.web.routes.common import _json_public, _ok, read_payload
from backend.web.routes.security import authorize, csrf_guard

tags_router = APIRouter(tags=["Tags"])


@tags_router.get("/api/tags")
async def tags_list(request: Request):
    return _json_public(await request.app.state.services.tags.list())


@tags_router.post("/api/tags/create")
async def tags_create(request: Request):
    # Session snapshot decides; employee or higher.
    await authorize(request, Role.EMPLOYEE, AuthPolicy.TRUST_SNAPSHOT)
    csrf_guard(request)
    data = await read_payload(request)
    await request.app.state.services.tags.create(data.get("name"))
    return _ok()

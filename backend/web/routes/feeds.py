"""
Announcement, chat and file link routes.

Reading is public. Posting chat needs a session; posting announcements needs
`announcer` or higher in the live user record, so a demotion takes effect
immediately.
"""
from __future__ import annotations

from fastapi import APIRouter, Request

from backend.identity_access.domain import AuthPolicy, Role
from backend.web.routes.common import _json_public, _ok, read_payload
from backend.web.routes.security import authorize, csrf_guard, require_session

feeds_router = APIRouter(tags=["Feeds"])


@feeds_router.get("/api/announcements")
async def announcements_list(request: Request):
    return _json_public(await request.app.state.services.announcements.list())


@feeds_router.post("/api/announce")
async def announcements_post(request: Request):
    user = await authorize(request, Role.ANNOUNCER, AuthPolicy.REVALIDATE_AGAINST_DIRECTORY)
    csrf_guard(request)
    data = await read_payload(request)
    await request.app.state.services.announcements.append(user["username"], data.get("text"))
    return _ok()


@feeds_router.get("/api/chat")
async def chat_list(request: Request):
    """Newest messages first, at most 500."""
    return _json_public(await request.app.state.services.chat.list())


@feeds_router.post("/api/chat")
async def chat_post(request: Request):
    user = require_session(request)
    csrf_guard(request)
    data = await read_payload(request)
    await request.app.state.services.chat.append(user["username"], data.get("text"))
    return _ok()


@feeds_router.get("/api/files")
async def files_list(request: Request):
    return _json_public(await request.app.state.services.files.list())

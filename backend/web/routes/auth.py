"""
Authentication-related FastAPI routes (router-only module).

Why:
    Keep login, registration, logout, session introspection and password
    changes in one router. Browser forms post url-encoded bodies and are
    redirected into the portal; API clients post JSON and get JSON back.

Security:
    - A new session id is issued on every login/registration; a session cookie
      the caller already holds is revoked first.
    - Failed logins are logged without the attempted username or password.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse, Response

from backend.identity_access.directory import User
from backend.identity_access.errors import BadCredential
from backend.web import config
from backend.web.auth_utils import SESSION_COOKIE_NAME, clear_session_cookie, set_session_cookie
from backend.web.routes.common import _json_private, _ok, is_form_post, read_payload
from backend.web.routes.security import csrf_guard, current_user, require_session

auth_router = APIRouter(tags=["Auth"])
logger = logging.getLogger("portal.web.auth")

AFTER_LOGIN_PATH = "/announcements.html"
LOGIN_PAGE_PATH = "/login.html"


def _revoke_current_session(request: Request) -> None:
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if not sid:
        return
    try:
        request.app.state.services.sessions.delete(sid)
    except Exception as exc:
        logger.warning("Session store delete failed: %s", exc.__class__.__name__)


def _start_session(request: Request, user: User, *, status_code: int) -> Response:
    _revoke_current_session(request)
    ttl = config.get_session_ttl_seconds()
    rec = request.app.state.services.sessions.create(
        username=user.username, role=user.role, tags=user.tags, ttl_seconds=ttl
    )
    if is_form_post(request):
        resp: Response = RedirectResponse(url=AFTER_LOGIN_PATH, status_code=303)
        resp.headers["Cache-Control"] = "private, no-store"
    else:
        resp = _json_private({"user": rec.snapshot()}, status_code=status_code)
    set_session_cookie(resp, rec.session_id, environment=config.get_environment(), max_age=ttl)
    return resp


@auth_router.post("/login")
async def login(request: Request):
    csrf_guard(request)
    data = await read_payload(request)
    user = await request.app.state.services.directory.verify_credentials(
        data.get("username"), data.get("password")
    )
    if user is None:
        logger.warning("Login failed")
        raise BadCredential("invalid credentials")
    logger.info("Login succeeded")
    return _start_session(request, user, status_code=200)


@auth_router.post("/register")
async def register(request: Request):
    csrf_guard(request)
    data = await read_payload(request)
    user = await request.app.state.services.directory.register(data.get("username"), data.get("password"))
    return _start_session(request, user, status_code=201)


@auth_router.get("/logout")
async def logout_page(request: Request):
    _revoke_current_session(request)
    resp = RedirectResponse(url=LOGIN_PAGE_PATH, status_code=303)
    resp.headers["Cache-Control"] = "private, no-store"
    clear_session_cookie(resp, environment=config.get_environment())
    return resp


@auth_router.post("/api/logout")
async def logout_api(request: Request):
    csrf_guard(request)
    _revoke_current_session(request)
    resp = _ok()
    clear_session_cookie(resp, environment=config.get_environment())
    return resp


@auth_router.get("/api/session")
async def get_session(request: Request):
    """Return the caller's session snapshot, or `{"user": null}` when signed out."""
    return _json_private({"user": current_user(request)})


@auth_router.post("/api/change-password")
async def change_password(request: Request):
    """Change the caller's own password.

    Permissions:
        Any signed-in user, for their own account only. The current password
        is checked against the live user record, not the session.
    """
    user = require_session(request)
    csrf_guard(request)
    data = await read_payload(request)
    await request.app.state.services.directory.change_password(
        user["username"], data.get("oldPassword"), data.get("newPassword")
    )
    logger.info("Password changed")
    return _ok()

"""
Auth endpoints: login, registration, logout, session introspection and
password changes over the ASGI app with an in-memory store.
"""
from __future__ import annotations

import httpx
import pytest

from backend.web.auth_utils import SESSION_COOKIE_NAME
from backend.tests.utils.portal_client import login, register

pytestmark = pytest.mark.anyio("asyncio")


async def test_json_login_sets_session_cookie_and_returns_snapshot(client: httpx.AsyncClient):
    r = await login(client, "admin", "duck123")
    assert r.status_code == 200
    assert r.json() == {"user": {"username": "admin", "role": "admin", "tags": ["founder"]}}
    assert r.headers.get("Cache-Control") == "private, no-store"
    set_cookie = r.headers.get("set-cookie", "")
    assert SESSION_COOKIE_NAME in set_cookie
    assert "httponly" in set_cookie.lower()
    assert "samesite=lax" in set_cookie.lower()

    s = await client.get("/api/session")
    assert s.json()["user"]["username"] == "admin"


async def test_form_login_redirects_into_portal(client: httpx.AsyncClient):
    r = await client.post("/login", data={"username": "user", "password": "quack"})
    assert r.status_code == 303
    assert r.headers["location"] == "/announcements.html"
    assert client.cookies.get(SESSION_COOKIE_NAME)


async def test_bad_credentials_are_rejected(client: httpx.AsyncClient):
    r = await login(client, "admin", "nope")
    assert r.status_code == 401
    assert r.json()["error"] == "bad_credential"
    assert r.headers.get("Cache-Control") == "private, no-store"
    assert SESSION_COOKIE_NAME not in r.headers.get("set-cookie", "")

    r2 = await login(client, "ghost", "duck123")
    assert r2.status_code == 401


async def test_session_is_null_when_signed_out(client: httpx.AsyncClient):
    r = await client.get("/api/session")
    assert r.status_code == 200
    assert r.json() == {"user": None}

    client.cookies.set(SESSION_COOKIE_NAME, "not-a-real-session")
    r2 = await client.get("/api/session")
    assert r2.json() == {"user": None}


async def test_register_then_duplicate(client: httpx.AsyncClient):
    r = await register(client, "frank", "pw")
    assert r.status_code == 201
    assert r.json()["user"] == {"username": "frank", "role": "user", "tags": []}
    assert (await client.get("/api/session")).json()["user"]["username"] == "frank"

    dup = await register(client, "frank", "other")
    assert dup.status_code == 409
    assert dup.json()["error"] == "duplicate_username"


async def test_register_missing_fields(client: httpx.AsyncClient):
    r = await client.post("/register", json={"username": "gina"})
    assert r.status_code == 400
    assert r.json()["error"] == "missing_field"

    r2 = await client.post("/register", content=b"{broken", headers={"content-type": "application/json"})
    assert r2.status_code == 400


async def test_form_register_redirects(client: httpx.AsyncClient):
    r = await client.post("/register", data={"username": "hank", "password": "pw"})
    assert r.status_code == 303
    assert r.headers["location"] == "/announcements.html"


async def test_logout_destroys_session(client: httpx.AsyncClient, app):
    await login(client, "user", "quack")
    sid = client.cookies.get(SESSION_COOKIE_NAME)
    assert app.state.services.sessions.get(sid) is not None

    r = await client.get("/logout")
    assert r.status_code == 303
    assert r.headers["location"] == "/login.html"
    assert app.state.services.sessions.get(sid) is None

    client.cookies.set(SESSION_COOKIE_NAME, sid)
    assert (await client.get("/api/session")).json() == {"user": None}


async def test_api_logout(client: httpx.AsyncClient, app):
    await login(client, "user", "quack")
    sid = client.cookies.get(SESSION_COOKIE_NAME)
    r = await client.post("/api/logout")
    assert r.status_code == 200
    assert app.state.services.sessions.get(sid) is None


async def test_relogin_revokes_previous_session(client: httpx.AsyncClient, app):
    await login(client, "user", "quack")
    first = client.cookies.get(SESSION_COOKIE_NAME)
    await login(client, "user", "quack")
    second = client.cookies.get(SESSION_COOKIE_NAME)
    assert first != second
    assert app.state.services.sessions.get(first) is None


async def test_change_password_flow(client: httpx.AsyncClient):
    unauth = await client.post("/api/change-password", json={"oldPassword": "quack", "newPassword": "x"})
    assert unauth.status_code == 401
    assert unauth.json()["error"] == "unauthenticated"

    await login(client, "user", "quack")
    wrong = await client.post("/api/change-password", json={"oldPassword": "nope", "newPassword": "new"})
    assert wrong.status_code == 403
    assert wrong.json()["error"] == "bad_credential"

    empty = await client.post("/api/change-password", json={"oldPassword": "quack", "newPassword": ""})
    assert empty.status_code == 400
    assert empty.json()["error"] == "missing_field"

    ok = await client.post("/api/change-password", json={"oldPassword": "quack", "newPassword": "quack2"})
    assert ok.status_code == 200
    assert ok.json() == {"ok": True}

    assert (await login(client, "user", "quack")).status_code == 401
    assert (await login(client, "user", "quack2")).status_code == 200


async def test_cross_origin_write_is_rejected(client: httpx.AsyncClient):
    r = await client.post(
        "/login",
        json={"username": "admin", "password": "duck123"},
        headers={"Origin": "http://evil.example"},
    )
    assert r.status_code == 403
    assert r.json() == {"error": "forbidden", "detail": "csrf_violation"}

    same = await client.post(
        "/login",
        json={"username": "admin", "password": "duck123"},
        headers={"Origin": "http://test"},
    )
    assert same.status_code == 200


async def test_prod_requires_origin_on_writes(client: httpx.AsyncClient, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PORTAL_ENV", "prod")
    r = await login(client, "admin", "duck123")
    assert r.status_code == 403


async def test_security_headers_and_health(client: httpx.AsyncClient):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert "default-src 'self'" in r.headers["Content-Security-Policy"]

    root = await client.get("/")
    assert root.status_code == 302
    assert root.headers["location"] == "/login.html"

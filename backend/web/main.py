"Portal web app"
from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from backend.identity_access.errors import PortalError
from backend.storage.collections import CollectionStore
from backend.storage.ports import StorageError
from backend.web import config
from backend.web.auth_utils import SESSION_COOKIE_NAME
from backend.web.routes.auth import auth_router
from backend.web.routes.blacklist import blacklist_router
from backend.web.routes.feeds import feeds_router
from backend.web.routes.search import search_router
from backend.web.routes.security import client_identifier
from backend.web.routes.tags import tags_router
from backend.web.routes.users import users_router
from backend.web.wiring import PortalServices, build_services


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via PORTAL_ENABLE_DOTENV (default true outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    return config.dotenv_enabled()


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

logger = logging.getLogger("portal.web")
gate_logger = logging.getLogger("portal.web.blacklist")

BLOCKED_PAGE_HTML = (
    "<!doctype html><html><head><title>Blocked</title></head>"
    "<body><h1>Access blocked</h1><p>Your address has been blocked from this portal.</p></body></html>"
)


def _private_error(kind: str, status_code: int, detail: Optional[str] = None) -> JSONResponse:
    payload: dict[str, Any] = {"error": kind}
    if detail:
        payload["detail"] = detail
    return JSONResponse(payload, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _is_api_path(path: str) -> bool:
    return path.startswith(("/api/", "/proxy/"))


def create_app(*, store: Optional[CollectionStore] = None, sessions: Any = None) -> FastAPI:
    """Build the portal application.

    Tests pass an in-memory `store` (and optionally a session store); the
    production app uses the backends selected by environment.
    """
    config.ensure_secure_config_on_startup()
    services: PortalServices = build_services(store=store, sessions=sessions)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await services.store.ensure_initialized()
        yield

    app = FastAPI(title="Portal", description="Internal portal backend", version="1.0.0", lifespan=lifespan)
    app.state.services = services

    # --- Error mapping ---------------------------------------------------------

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        return JSONResponse(exc.to_payload(), status_code=exc.status_code, headers={"Cache-Control": "private, no-store"})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("Storage write failed on %s", request.url.path)
        return _private_error("storage_error", 500)

    # --- Middlewares (last registered runs first) ------------------------------

    @app.middleware("http")
    async def session_resolution(request: Request, call_next):
        """Expose the session snapshot (or None) as `request.state.user`."""
        request.state.user = None
        sid = request.cookies.get(SESSION_COOKIE_NAME)
        if sid:
            try:
                rec = services.sessions.get(sid)
            except Exception as exc:
                logger.warning("Session store get failed: %s", exc.__class__.__name__)
                rec = None
            if rec is not None:
                request.state.user = rec.snapshot()
        return await call_next(request)

    @app.middleware("http")
    async def blacklist_gate(request: Request, call_next):
        ident = client_identifier(request)
        if not ident or not await services.blacklist.contains(ident):
            return await call_next(request)
        path = request.url.path
        gate_logger.warning("Blocked request from %s to %s", ident, path)
        blocked_path = config.get_blocked_path()
        if _is_api_path(path):
            return _private_error("blocked", 403)
        if path == blocked_path:
            return HTMLResponse(BLOCKED_PAGE_HTML, status_code=403, headers={"Cache-Control": "private, no-store"})
        return RedirectResponse(url=blocked_path, status_code=302)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        if config.get_environment() == "prod":
            csp = "default-src 'self'; script-src 'self'; style-src 'self'; img-src 'self' data:; frame-src 'self';"
        else:
            csp = (
                "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'; "
                "img-src 'self' data:; frame-src 'self';"
            )
        response.headers.setdefault("Content-Security-Policy", csp)
        response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response

    # --- Routes ----------------------------------------------------------------

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(tags_router)
    app.include_router(feeds_router)
    app.include_router(blacklist_router)
    app.include_router(search_router)

    @app.get("/")
    async def root():
        return RedirectResponse(url="/login.html", status_code=302)

    @app.get("/health")
    async def health_check():
        # Security: include no-store to avoid caching any runtime status.
        return JSONResponse({"status": "ok"}, headers={"Cache-Control": "private, no-store"})

    return app


app = create_app()

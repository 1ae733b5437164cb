"""
Configuration and startup security checks for the portal web app.

Why: The portal ships with well-known seed credentials and permissive local
defaults. This module reads the environment through small getters and provides
a single guard that refuses obviously insecure production deployments without
burdening local development.

Permissions: The caller needs no special privileges. The functions simply read
environment variables; the guard raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

from backend.storage.bootstrap import SEED_PASSWORD_DEFAULTS, get_seed_password
from backend.storage.config import get_collections_backend

SEARCH_URL_DEFAULT = "https://html.duckduckgo.com/html"
BLOCKED_PATH_DEFAULT = "/blocked.html"


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in {"1", "true", "yes"}


def get_environment() -> str:
    return (os.getenv("PORTAL_ENV", "dev") or "dev").strip().lower()


def get_session_ttl_seconds() -> int:
    """Session lifetime; defaults to 8 hours, clamped to 5 minutes .. 7 days."""
    raw = (os.getenv("PORTAL_SESSION_TTL_SECONDS") or "").strip()
    try:
        value = int(raw)
    except ValueError:
        value = 8 * 3600
    return max(300, min(value, 7 * 24 * 3600))


def get_sessions_backend() -> str:
    raw = (os.getenv("SESSIONS_BACKEND", "memory") or "").strip().lower()
    return raw if raw in {"memory", "db"} else "memory"


def trust_proxy() -> bool:
    return _flag("PORTAL_TRUST_PROXY")


def get_blocked_path() -> str:
    raw = (os.getenv("PORTAL_BLOCKED_PATH") or "").strip()
    return raw if raw.startswith("/") and not raw.startswith("//") else BLOCKED_PATH_DEFAULT


def get_search_url() -> str:
    return (os.getenv("PORTAL_SEARCH_URL") or SEARCH_URL_DEFAULT).strip()


def get_search_timeout_seconds() -> float:
    raw = (os.getenv("PORTAL_SEARCH_TIMEOUT_SECONDS") or "").strip()
    try:
        value = float(raw)
    except ValueError:
        value = 10.0
    return max(1.0, min(value, 60.0))


def dotenv_enabled() -> bool:
    return _flag("PORTAL_ENABLE_DOTENV", "true")


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - The search relay must call its upstream over https.
    - DATABASE_URL must not explicitly disable TLS.
    - Collections must persist (no `memory` backend).
    - The seed admin password must be overridden.
    """

    if not _is_prod_like(get_environment()):
        return  # dev/test remain permissive

    # 1) Outbound search over TLS only
    if get_search_url().lower().startswith("http://"):
        raise SystemExit(
            "Refusing to start: PORTAL_SEARCH_URL must use https in production (got http)."
        )

    # 2) Postgres TLS: basic guard to avoid explicit disable
    dsn = os.getenv("DATABASE_URL", "")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    # 3) Data must survive a restart
    if get_collections_backend() == "memory":
        raise SystemExit(
            "Refusing to start: PORTAL_COLLECTIONS_BACKEND=memory is not allowed in production/staging."
        )

    # 4) Known seed credentials
    if get_seed_password("admin") == SEED_PASSWORD_DEFAULTS["admin"]:
        raise SystemExit(
            "Refusing to start: PORTAL_SEED_ADMIN_PASSWORD must be set to a non-default value in production."
        )

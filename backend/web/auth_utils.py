"""
Shared session cookie utilities.

Why:
    The login, registration and logout routes and the session middleware must
    agree on the cookie name and flags. Keeping a single helper avoids drift.

Design:
    `cookie_opts` is pure: it accepts an environment string and returns the
    cookie flags. Callers decide where the environment comes from.
"""

from __future__ import annotations

from fastapi import Response

SESSION_COOKIE_NAME = "portal_session"


def cookie_opts(environment: str) -> dict:
    """Return cookie flags for the given environment.

    Returns a mapping with keys:
      - secure: True only in prod (local dev and tests run over plain http)
      - samesite: "lax"  # cookie still sent on top-level navigations
    """
    return {"secure": (environment or "").lower() == "prod", "samesite": "lax"}


def set_session_cookie(response: Response, value: str, *, environment: str, max_age: int | None = None) -> None:
    opts = cookie_opts(environment)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        max_age=max_age,
    )


def clear_session_cookie(response: Response, *, environment: str) -> None:
    opts = cookie_opts(environment)
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
    )

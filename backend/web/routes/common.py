"""
Response and request-body helpers shared by the portal routers.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("portal.web")

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _private_no_store() -> dict:
    return {"Cache-Control": "private, no-store"}


def _json_private(payload: Any, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(payload, status_code=status_code, headers=_private_no_store())


def _json_public(payload: Any) -> JSONResponse:
    return JSONResponse(payload, headers={"Cache-Control": "no-cache"})


def _ok() -> JSONResponse:
    return _json_private({"ok": True})


def is_form_post(request: Request) -> bool:
    ctype = (request.headers.get("content-type") or "").lower()
    return ctype.startswith(_FORM_TYPES)


async def read_payload(request: Request) -> dict[str, Any]:
    """Return the request body as a dict (JSON object or form fields).

    Malformed JSON and non-object bodies yield an empty dict, so handlers
    report the missing fields instead of a parse error.
    """
    if is_form_post(request):
        form = await request.form()
        return {k: v for k, v in form.items() if isinstance(v, str)}
    body = await request.body()
    if not body:
        return {}
    try:
        data = await request.json()
    except ValueError:
        logger.info("Ignoring malformed JSON body on %s", request.url.path)
        return {}
    return data if isinstance(data, dict) else {}

"""
Search relay: pass-through of an external HTML search page.

Behavior:
    - One bounded GET per request (PORTAL_SEARCH_TIMEOUT_SECONDS, default 10s).
    - Upstream body is returned as `text/html`; assets are not rewritten.
    - Transport errors, timeouts and upstream 5xx map to 502 `upstream_error`.
    - No retries.
"""
from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import Response

from backend.identity_access.errors import UpstreamError
from backend.web import config

search_router = APIRouter(tags=["Search"])
logger = logging.getLogger("portal.web.search")

SEARCH_USER_AGENT = "PortalSearchRelay/1.0"


async def _fetch_search_results(*, url: str, query: str, timeout: float) -> httpx.Response:
    """Fetch the upstream result page (patchable for tests)."""
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        return await client.get(url, params={"q": query}, headers={"User-Agent": SEARCH_USER_AGENT})


@search_router.get("/proxy/search")
async def search_proxy(request: Request, q: str = ""):
    try:
        upstream = await _fetch_search_results(
            url=config.get_search_url(),
            query=q,
            timeout=config.get_search_timeout_seconds(),
        )
    except httpx.HTTPError as exc:
        logger.warning("Search upstream failed: %s", exc.__class__.__name__)
        raise UpstreamError("search failed") from exc
    if upstream.status_code >= 500:
        logger.warning("Search upstream returned %s", upstream.status_code)
        raise UpstreamError("search failed")
    return Response(
        content=upstream.text,
        status_code=upstream.status_code,
        media_type="text/html",
        headers={"Cache-Control": "private, no-store"},
    )

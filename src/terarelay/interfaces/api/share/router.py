"""Share API endpoints (resolve, stream, segment, lookup and debug modes)."""

from __future__ import annotations

from typing import Any, cast

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from starlette.responses import Response

from terarelay.domain.entities import (
    MissingParameterError,
    ResolveResult,
    validate_share_id,
)
from terarelay.infrastructure.upstream.client import is_json_response
from terarelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/share", tags=["share"])

_TRUTHY = frozenset({"1", "true", "yes", "on"})

NO_DLINK_NOTE = (
    "dlink not available; the share may require session cookies to expose it"
)


def _begin(request: Request, mode: str) -> AppState:
    """Tag the request with its mode and count it."""
    state = cast(AppState, request.app.state)
    request.state.mode = mode
    state.metrics.track_request(mode)
    return state


def _flag(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUTHY


def _envelope(result: ResolveResult) -> dict[str, Any]:
    body: dict[str, Any] = {"source": result.source, "data": result.data}
    if not result.has_download_link:
        body["note"] = NO_DLINK_NOTE
    return body


@router.get("/resolve")
async def resolve(
    request: Request,
    surl: str | None = Query(default=None, description="Short link id."),
    refresh: str | None = Query(default=None, description="1 = bypass caches."),
    raw: str | None = Query(default=None, description="1 = full upstream payload."),
) -> JSONResponse:
    """Resolve a share to its canonical record (or raw upstream payload)."""
    state = _begin(request, "resolve")
    result = await state.resolve_uc.execute(
        surl,
        refresh=_flag(refresh),
        raw=_flag(raw),
        cookie=request.headers.get("cookie"),
    )
    return JSONResponse(content=_envelope(result))


@router.get("/stream")
async def stream(
    request: Request,
    surl: str | None = Query(default=None, description="Short link id."),
    quality_type: str | None = Query(
        default=None, alias="type", description="Stream type, e.g. M3U8_AUTO_720."
    ),
) -> Response:
    """Serve the share's HLS manifest with media URLs routed via /segment."""
    state = _begin(request, "stream")
    manifest = await state.stream_uc.execute(
        surl,
        relay_base=str(request.url_for("segment")),
        quality_type=quality_type,
        cookie=request.headers.get("cookie"),
    )
    return Response(
        content=manifest.body,
        status_code=manifest.status_code,
        media_type=manifest.content_type,
        headers={"Cache-Control": "no-store"},
    )


@router.get("/segment")
async def segment(
    request: Request,
    url: str | None = Query(default=None, description="Absolute media URL."),
) -> StreamingResponse:
    """Relay one media segment from an allow-listed CDN host."""
    state = _begin(request, "segment")
    relayed = await state.segment_relay.open(
        url,
        request.headers,
        cookie=request.headers.get("cookie"),
    )
    return StreamingResponse(
        relayed.body,
        status_code=relayed.status_code,
        headers=relayed.headers,
    )


@router.get("/lookup")
async def lookup(
    request: Request,
    surl: str | None = Query(default=None, description="Short link id."),
    fs_id: str | None = Query(default=None, description="File id."),
) -> JSONResponse:
    """Read a stored share (by surl) or file (by fs_id) from the durable store."""
    state = _begin(request, "lookup")
    result = await state.lookup_uc.execute(surl=surl, fs_id=fs_id)
    return JSONResponse(content={"source": result.source, "data": result.data})


@router.get("/page")
async def page(
    request: Request,
    surl: str | None = Query(default=None, description="Short link id."),
) -> HTMLResponse:
    """Debug: return the raw share page HTML with the upstream status."""
    state = _begin(request, "page")
    share_id = validate_share_id(surl)
    upstream_page = await state.upstream.fetch_share_page(
        share_id, cookie=request.headers.get("cookie")
    )
    return HTMLResponse(
        content=upstream_page.html, status_code=upstream_page.status_code
    )


@router.get("/api")
async def api(
    request: Request,
    js_token: str | None = Query(default=None, alias="jsToken"),
    shorturl: str | None = Query(default=None),
) -> JSONResponse:
    """Debug: call the share list API with a caller-supplied jsToken."""
    state = _begin(request, "api")
    if not js_token or not shorturl:
        raise MissingParameterError("jsToken", "shorturl")
    share_id = validate_share_id(shorturl)

    resp = await state.upstream.call_share_list(
        js_token, share_id, cookie=request.headers.get("cookie")
    )
    if is_json_response(resp):
        try:
            return JSONResponse(content=resp.json(), status_code=resp.status_code)
        except ValueError:
            log.warning(
                "api_mode_bad_json", share_id=share_id, status=resp.status_code
            )
    return JSONResponse(
        content={"error": "Non-JSON response", "status": resp.status_code},
        status_code=502,
    )

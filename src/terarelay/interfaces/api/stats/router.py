"""Runtime metrics endpoints."""

from __future__ import annotations

import hmac
from typing import Any, cast

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from terarelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/stats", tags=["stats"])


def _authorized(state: AppState, request: Request, key: str | None) -> bool:
    expected = state.config.admin_key
    if not expected:
        return True
    supplied = key or request.headers.get("x-admin-key")
    if not supplied:
        return False
    return hmac.compare_digest(supplied.encode(), expected.encode())


@router.get("/metrics")
async def metrics(request: Request) -> JSONResponse:
    """Return in-memory runtime metrics and graceful-shutdown status."""
    state = cast(AppState, request.app.state)

    data: dict[str, Any] = {}
    m = getattr(state, "metrics", None)
    if m is not None:
        data.update(m.snapshot())

    gs = getattr(state, "graceful_shutdown", None)
    if gs is not None:
        data["shutdown"] = gs.snapshot()

    return JSONResponse(content=data)


@router.post("/metrics/reset")
async def reset_metrics(
    request: Request,
    key: str | None = Query(default=None, description="Admin key."),
) -> JSONResponse:
    """Clear all counters. Requires the admin key when one is configured."""
    state = cast(AppState, request.app.state)
    if not _authorized(state, request, key):
        log.warning(
            "metrics_reset_denied",
            client_host=(request.client.host if request.client else None),
        )
        return JSONResponse(
            status_code=401,
            content={"error": "Unauthorized", "code": "unauthorized"},
        )

    state.metrics.reset()
    log.info("metrics_reset")
    return JSONResponse(content={"status": "reset"})

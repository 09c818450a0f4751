"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from terarelay import __version__
from terarelay.domain.entities.errors import ShareError
from terarelay.infrastructure.config import AppConfig
from terarelay.infrastructure.graceful_shutdown import GracefulShutdown
from terarelay.interfaces.app_state import AppState
from terarelay.interfaces.composition import lifespan

log = structlog.get_logger(__name__)


def _request_mode(request: Request) -> str:
    """Mode recorded by the route handler, for metrics."""
    return getattr(request.state, "mode", "unknown")


def _track_error(request: Request, code: str) -> None:
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.track_error(_request_mode(request), code)


def create_app(config: AppConfig) -> FastAPI:
    """Create the FastAPI app without touching any resources.

    Resources (HTTP clients, cache, durable store) are created in lifespan().
    """
    app = FastAPI(
        title="TeraRelay",
        description="TeraBox share resolver and HLS relay",
        version=__version__,
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config
    app.state.graceful_shutdown = GracefulShutdown()

    from terarelay.interfaces.api.share.router import router as share_router
    from terarelay.interfaces.api.stats.router import router as stats_router

    app.include_router(share_router, prefix="/api/v1")
    app.include_router(stats_router, prefix="/api/v1")

    @app.exception_handler(ShareError)
    async def share_error_handler(request: Request, exc: ShareError) -> JSONResponse:
        _track_error(request, exc.code)
        log.info(
            "share_error",
            mode=_request_mode(request),
            code=exc.code,
            status_code=exc.status_code,
            error=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
        _track_error(request, "internal_error")
        log.error(
            "unhandled_error",
            mode=_request_mode(request),
            path=request.url.path,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "internal_error"},
        )

    @app.get("/api/v1/healthz")
    async def healthz() -> dict[str, str | bool]:
        """Liveness probe: returns 200 as long as the process is running."""
        state = app.state
        return {
            "status": "ok",
            "version": __version__,
            "durable_store": getattr(state, "share_store", None) is not None,
        }

    @app.get("/api/v1/readyz")
    async def readyz() -> Response:
        """Readiness probe: 200 after startup complete, 503 otherwise."""
        gs: GracefulShutdown = app.state.graceful_shutdown
        if gs.is_ready:
            return JSONResponse({"status": "ready"}, status_code=200)
        return JSONResponse({"status": "not_ready"}, status_code=503)

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ):
        gs: GracefulShutdown = app.state.graceful_shutdown
        gs.request_started()
        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            gs.request_finished()
            duration_ms = (time.perf_counter() - start) * 1000.0
            status_code = response.status_code if response is not None else 500
            mode = getattr(request.state, "mode", None)

            metrics = getattr(app.state, "metrics", None)
            if metrics is not None and mode is not None:
                metrics.track_response_time(mode, duration_ms)

            # Query values are left out: they can carry jsTokens.
            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                query_keys=sorted(request.query_params.keys()),
                mode=mode,
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app

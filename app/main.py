"""
Kindred — FastAPI + Socket.IO Application Entry Point

- Async lifespan management (DB pool warm-up in database mode, missed-call
  sweeper task)
- CORS, timeout, and structured-logging middleware
- Domain-error → JSON response mapping
- Health-check endpoints (liveness + deep readiness)
- Socket.IO signaling mounted in front of the HTTP API

Run with ``uvicorn app.main:asgi_app``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator, Optional

import socketio
import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.config import get_settings
from app.dependencies import CoreServices, build_core_services
from app.socket_handlers import register_socketio_handlers
from app.socket_instance import SocketIOSignalingBus, sio
from app.utils.errors import KindredError

# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO)
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger("kindred")

# ---------------------------------------------------------------------------
# Active request counter for graceful shutdown
# ---------------------------------------------------------------------------

_active_requests: int = 0

DRAIN_TIMEOUT_SECONDS = 15


async def _drain_active_requests() -> None:
    """Wait until all in-flight requests complete or timeout expires."""
    deadline = time.monotonic() + DRAIN_TIMEOUT_SECONDS
    while _active_requests > 0:
        if time.monotonic() >= deadline:
            logger.warning("drain_timeout_exceeded", remaining_requests=_active_requests)
            break
        await asyncio.sleep(0.25)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of long-lived resources."""
    core: CoreServices = app.state.core
    settings = core.settings

    # -- Startup --------------------------------------------------------- #
    logger.info(
        "startup_begin",
        environment=settings.ENVIRONMENT,
        store_backend=settings.STORE_BACKEND,
    )

    if settings.uses_database:
        from app.database import engine

        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("database_pool_initialised")

    sweeper: Optional[asyncio.Task] = None
    if settings.CALL_RING_TIMEOUT_SECONDS > 0:
        sweeper = asyncio.create_task(
            core.relay.sweep_forever(settings.CALL_SWEEP_INTERVAL_SECONDS)
        )
        logger.info(
            "call_sweeper_started",
            ring_timeout=settings.CALL_RING_TIMEOUT_SECONDS,
            interval=settings.CALL_SWEEP_INTERVAL_SECONDS,
        )

    logger.info("startup_complete")

    yield

    # -- Shutdown -------------------------------------------------------- #
    logger.info("shutdown_begin")

    await _drain_active_requests()

    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper

    if settings.uses_database:
        from app.database import engine

        await engine.dispose()
        logger.info("database_pool_closed")

    logger.info("shutdown_complete")


# ---------------------------------------------------------------------------
# Middleware classes
# ---------------------------------------------------------------------------

class TimeoutMiddleware(BaseHTTPMiddleware):
    """Abort requests that exceed a configurable wall-clock timeout."""

    def __init__(self, app, timeout_seconds: float = 30.0) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await asyncio.wait_for(
                call_next(request),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                method=request.method,
                path=request.url.path,
                timeout=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=504,
                content={"detail": "Request timed out"},
            )


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        global _active_requests
        start = time.perf_counter()

        _active_requests += 1
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
            )
            raise
        finally:
            _active_requests -= 1

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response


async def kindred_error_handler(request: Request, exc: KindredError) -> JSONResponse:
    logger.info(
        "request_rejected",
        method=request.method,
        path=request.url.path,
        error=exc.code,
        detail=exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(core: CoreServices) -> FastAPI:
    settings = core.settings

    app = FastAPI(
        title="Kindred",
        description="Match, discovery, presence and call-signaling core",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )
    app.state.core = core

    # -- Middleware (applied in reverse order — last added runs first) ------ #

    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(KindredError, kindred_error_handler)

    # -- Health-check endpoints -------------------------------------------- #

    @app.get("/health", tags=["health"])
    async def health_liveness() -> dict:
        """Liveness probe — healthy whenever the process is running."""
        return {"status": "healthy"}

    @app.get("/health/deep", tags=["health"])
    async def health_deep() -> dict:
        """Readiness probe — store backend, live calls and online users."""
        result: dict = {
            "status": "healthy",
            "store_backend": settings.STORE_BACKEND,
            "live_calls": core.relay.live_session_count,
            "online_users": len(core.presence.online_user_ids()),
        }

        if settings.uses_database:
            from app.database import async_session_factory

            result["database"] = "connected"
            try:
                async with async_session_factory() as session:
                    await session.execute(text("SELECT 1"))
            except Exception as exc:
                logger.error("health_db_failure", error=str(exc))
                result["database"] = f"error: {exc}"
                result["status"] = "degraded"

        return result

    # -- API router -------------------------------------------------------- #

    from app.api.router import router as api_router

    app.include_router(api_router, prefix="/api/v1")
    return app


core = build_core_services(get_settings(), bus=SocketIOSignalingBus(sio))
app = create_app(core)

# Socket.IO answers on /socket.io and hands everything else to FastAPI.
# This is what uvicorn serves.
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
register_socketio_handlers(sio, core.presence, core.relay)

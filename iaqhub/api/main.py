"""
IAQHub Backend API - Main Entry Point

FastAPI application for indoor air quality monitoring: sensor ingestion,
live Server-Sent Events fan-out, history export and household-aware advice.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from iaqhub.api.dependencies import BroadcasterDep
from iaqhub.api.routes import api_router, device_router
from iaqhub.api.stream import LiveBroadcaster, event_stream
from iaqhub.config import get_settings
from iaqhub.core.errors import IAQHubError
from iaqhub.models.database import close_db, init_db

# Configure logging
settings_instance = get_settings()
logging.basicConfig(
    level=(
        logging.DEBUG
        if settings_instance.debug
        else getattr(logging, settings_instance.log_level.upper(), logging.INFO)
    ),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

_VERSION_FILE = Path(__file__).resolve().parents[2] / "VERSION"
_VERSION = _VERSION_FILE.read_text().strip() if _VERSION_FILE.exists() else "unknown"


# ============================================================================
# Application State
# ============================================================================


class AppState:
    """Centralized application state container."""

    def __init__(self) -> None:
        self.scheduler: AsyncIOScheduler | None = None
        self.broadcaster = LiveBroadcaster(max_pending=settings_instance.viewer_queue_size)
        self.startup_time: datetime | None = None


app_state = AppState()


# ============================================================================
# Background Tasks
# ============================================================================


async def cleanup_stale_connections() -> None:
    """Ping live viewers and drop the ones that stopped receiving."""
    try:
        stale_count = await app_state.broadcaster.cleanup_stale()
        if stale_count > 0:
            logger.info("Cleaned up %d stale viewer connections", stale_count)
    except Exception as e:
        logger.error("Error cleaning up connections: %s", e)


def init_scheduler() -> AsyncIOScheduler:
    """Initialize the background task scheduler."""
    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
    )

    # Viewer keepalive + stale cleanup
    scheduler.add_job(
        cleanup_stale_connections,
        IntervalTrigger(seconds=settings_instance.keepalive_interval_s),
        id="cleanup_stale_connections",
        name="Viewer Keepalive",
        replace_existing=True,
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager for startup and shutdown.
    """
    logger.info("Starting IAQHub API...")

    try:
        db_url = settings_instance.database_url
        logger.info("Connecting to database: %s", db_url.split("@")[-1])
        await init_db()

        logger.info("Starting background scheduler...")
        app_state.scheduler = init_scheduler()
        app_state.scheduler.start()
        app_state.startup_time = datetime.now(UTC)
    except Exception as e:
        logger.error("Startup failed: %s", e)
        raise

    if not settings_instance.provider_configured:
        logger.info("GEMINI_API_KEY not set; advice will use the local rule engine only")

    yield

    # Shutdown
    logger.info("Shutting down IAQHub API...")

    if app_state.scheduler:
        logger.info("Stopping background scheduler...")
        app_state.scheduler.shutdown(wait=True)

    logger.info("Closing viewer connections...")
    await app_state.broadcaster.disconnect_all()

    logger.info("Closing database connections...")
    await close_db()

    logger.info("IAQHub API shutdown complete")


# ============================================================================
# FastAPI Application
# ============================================================================

settings = settings_instance

app = FastAPI(
    title="IAQHub API",
    description="""
    IAQHub Backend API for Indoor Air Quality Monitoring.

    ## Features

    * **Ingestion** - Sensor device readings with validation
    * **Live Updates** - Server-Sent Events stream of every stored reading
    * **History** - Recent readings and full CSV export
    * **Advice** - Chat and lifestyle tips with an optional household profile
    """,
    version=_VERSION,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)
app.state.broadcaster = app_state.broadcaster


# ============================================================================
# Middleware (applied in reverse order - last added = outermost)
# ============================================================================

_cors_origins = settings.cors_origin_list or ["*"]

# Never mix "*" with allow_credentials.
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials="*" not in _cors_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
    max_age=600,
)


@app.middleware("http")
async def request_logging_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Log all requests with timing and correlation IDs."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    start_time = time.perf_counter()

    request.state.request_id = request_id

    try:
        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        logger.info(
            "%s %s status=%s duration=%.4fs",
            request.method,
            request.url.path,
            response.status_code,
            process_time,
        )

        return response
    except Exception as e:
        logger.error("Request failed: %s", e, exc_info=True)
        raise


# ============================================================================
# Route Registration
# ============================================================================

app.include_router(api_router)
app.include_router(device_router)


# ============================================================================
# Live Stream
# ============================================================================


@app.get("/stream", tags=["Live"])
async def live_stream(broadcaster: BroadcasterDep) -> StreamingResponse:
    """Server-Sent Events stream of every newly stored reading."""
    session = await broadcaster.subscribe()
    return StreamingResponse(
        event_stream(broadcaster, session),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/health", tags=["Health"])
async def health_check(broadcaster: BroadcasterDep) -> dict[str, object]:
    """Basic health check."""
    now = datetime.now(UTC)
    started = app_state.startup_time
    return {
        "status": "healthy",
        "timestamp": now.isoformat(),
        "started_at": started.isoformat() if started else None,
        "uptime_seconds": round((now - started).total_seconds()) if started else None,
        "viewers": broadcaster.get_connection_count(),
    }


# ============================================================================
# Frontend SPA Serving
# ============================================================================

_FRONTEND_DIR = Path(settings.frontend_dir)

if (_FRONTEND_DIR / "index.html").is_file():
    if (_FRONTEND_DIR / "assets").is_dir():
        app.mount(
            "/assets",
            StaticFiles(directory=_FRONTEND_DIR / "assets"),
            name="frontend-assets",
        )

    @app.get("/{full_path:path}", include_in_schema=False)
    async def serve_spa(full_path: str) -> FileResponse:
        """Serve the frontend SPA. All non-API routes fall through here
        and return index.html so client-side routing works."""
        file_path = (_FRONTEND_DIR / full_path).resolve()
        if file_path.is_file() and file_path.is_relative_to(_FRONTEND_DIR.resolve()):
            return FileResponse(file_path)
        return FileResponse(_FRONTEND_DIR / "index.html")

else:
    logger.warning(
        "Frontend build not found at %s; UI will not be served. "
        "Run 'npm run build' in the client directory.",
        _FRONTEND_DIR,
    )

    @app.get("/", tags=["Root"])
    async def root_fallback() -> dict[str, object]:
        """API root endpoint (no frontend build available)."""
        return {
            "name": "IAQHub API",
            "version": _VERSION,
            "documentation": "/docs" if settings.debug else None,
            "health": "/health",
            "stream": "/stream",
        }


# ============================================================================
# Exception Handlers
# ============================================================================


@app.exception_handler(IAQHubError)
async def iaqhub_exception_handler(request: Request, exc: IAQHubError) -> JSONResponse:
    """Render domain errors as ``{ok: false, error}`` with their own status."""
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed request bodies and parameters as ``{ok: false, error}``."""
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        msg = err.get("msg", "invalid value")
        problems.append(f"{loc}: {msg}" if loc else msg)
    message = "Invalid request: " + "; ".join(problems)
    logger.info("RequestValidationError on %s: %s", request.url.path, message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"ok": False, "error": message}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "ok": False,
            "error": "An internal error occurred" if not settings.debug else str(exc),
            "request_id": getattr(request.state, "request_id", None),
        },
    )


# ============================================================================
# CLI Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "iaqhub.api.main:app",
        host=settings.host,
        port=settings.port,
        loop="asyncio",
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
        access_log=True,
    )

"""ASGI entrypoint for the cohort tracker.

Startup checks the database, applies migrations, then (unless disabled)
starts the periodic refresh loop. ``create_app`` builds a fresh app with its
own rate limiter so tests can construct as many as they like.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import fastapi
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from core.config import Settings, get_settings
from core.database import create_engine, create_session_maker, dispose_engine, init_db
from core.logger import configure_logging
from core.ratelimit import create_limiter, rate_limit_exceeded_handler
from routes import health_router, leaderboard_router, students_router
from services.leetcode_client import close_leetcode_client
from services.refresh_service import refresh_loop

configure_logging()
logger = logging.getLogger(__name__)

API_DIR = Path(__file__).parent
STARTUP_DB_TIMEOUT_SECONDS = 60
MIGRATION_TIMEOUT_SECONDS = 120


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "request.unhandled_error",
        extra={
            "exc_type": type(exc).__name__,
            "method": request.method,
            "path": request.url.path,
        },
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


async def _invalid_request(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    logger.info(
        "request.invalid",
        extra={"path": request.url.path, "error_count": len(errors)},
    )
    return JSONResponse(status_code=422, content={"detail": errors})


async def apply_migrations() -> None:
    """Run ``alembic upgrade head`` as a child process.

    Alembic's env.py uses the sync psycopg2 driver, which must not run on
    the event loop thread.
    """
    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "alembic",
        "upgrade",
        "head",
        cwd=API_DIR,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        message = stderr.decode(errors="replace").strip()
        logger.error("migrations.failed", extra={"stderr": message})
        raise RuntimeError(f"alembic upgrade failed: {message}")
    logger.info("migrations.applied")


async def _stop(task: asyncio.Task[None]) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    settings: Settings = app.state.settings
    engine = create_engine()
    app.state.engine = engine
    app.state.session_maker = create_session_maker(engine)
    app.state.init_done = False
    app.state.init_error = None

    try:
        async with asyncio.timeout(STARTUP_DB_TIMEOUT_SECONDS):
            await init_db(engine)
        async with asyncio.timeout(MIGRATION_TIMEOUT_SECONDS):
            await apply_migrations()
    except Exception as exc:
        app.state.init_error = str(exc) or type(exc).__name__
        logger.error("startup.failed", extra={"error": app.state.init_error})
        await dispose_engine(engine)
        raise
    app.state.init_done = True
    logger.info("startup.complete")

    refresher: asyncio.Task[None] | None = None
    if settings.enable_background_refresh:
        refresher = asyncio.create_task(
            refresh_loop(app.state.session_maker, settings.refresh_interval_seconds),
            name="refresh-loop",
        )

    try:
        yield
    finally:
        if refresher is not None:
            await _stop(refresher)
        await close_leetcode_client()
        await dispose_engine(engine)


def create_app(settings: Settings | None = None) -> fastapi.FastAPI:
    settings = settings or get_settings()
    show_docs = settings.enable_docs or settings.debug

    app = fastapi.FastAPI(
        title="Cohort Tracker API",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if show_docs else None,
        redoc_url=None,
        openapi_url="/openapi.json" if show_docs else None,
    )
    app.state.settings = settings
    app.state.limiter = create_limiter(settings)

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, _invalid_request)
    app.add_exception_handler(Exception, _unhandled_error)

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)
    if settings.allowed_origins:
        # Read-only API: no cookies, GET only
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_methods=["GET"],
            allow_headers=["*"],
        )

    for router in (health_router, leaderboard_router, students_router):
        app.include_router(router)
    return app


app = create_app()

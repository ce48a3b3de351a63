"""
Streak Engine — FastAPI Application Factory
=============================================

What:  Creates and configures the FastAPI application serving the job trigger
       and the streak read endpoints.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Run by uvicorn (uvicorn streak_engine.main:app).

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (fatal: the service refuses to start)
    3. Open the store handle and attach it to app.state

    Shutdown:
    1. Dispose the store's engine (close all pooled connections)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from streak_engine import __version__
from streak_engine.config import settings
from streak_engine.database import open_store
from streak_engine.exceptions import (
    ConcurrentUpdateError,
    ConfigurationError,
    DatabaseError,
    NotFoundError,
    StreakEngineError,
    UnauthorizedError,
)
from streak_engine.middleware.logging import RequestLoggingMiddleware
from streak_engine.middleware.request_id import RequestIDMiddleware, request_id_var
from streak_engine.routes import health, jobs, streaks

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole process.

    Called once by the app lifespan and by the CLI, before anything else logs.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-statement logging from these is too noisy for a batch job
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("Streak engine %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ConfigurationError as e:
        logger.critical("Configuration error: %s", e.message)
        raise

    async with open_store(settings) as store:
        app.state.store = store
        logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

        yield

        logger.info("Streak engine shutting down...")
        app.state.store = None

    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details=None) -> dict:
    body = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy to JSON error responses.

        UnauthorizedError      → 401
        NotFoundError          → 404
        ConcurrentUpdateError  → 409
        DatabaseError          → 500 (generic message, context logged)
        StreakEngineError      → 500
        Exception (fallback)   → 500
    """

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(request: Request, exc: UnauthorizedError):
        logger.warning("[%s] Rejected job trigger: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=401,
            content=_error_body("unauthorized", exc.message),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body("not_found", exc.message))

    @app.exception_handler(ConcurrentUpdateError)
    async def handle_conflict(request: Request, exc: ConcurrentUpdateError):
        return JSONResponse(status_code=409, content=_error_body("conflict", exc.message))

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "server_error", "An internal error occurred. Please try again later."
            ),
        )

    @app.exception_handler(StreakEngineError)
    async def handle_engine_error(request: Request, exc: StreakEngineError):
        rid = request_id_var.get("")
        logger.error("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return JSONResponse(status_code=500, content=_error_body("server_error", exc.message))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Streak Engine API",
        description=(
            "Daily streak computation for study sprints and circles, "
            "plus read access to the resulting counters."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # Executed in reverse order of addition: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(jobs.router)
    app.include_router(streaks.router)
    app.include_router(health.router)

    return app


app = create_app()

"""
Memory Lane Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() builds the services that need no I/O (upload validation,
       image store, repository), registers middleware, exception handlers
       and routes. The lifespan opens the database, runs the schema manager
       and disposes the engine on shutdown.
Who:   uvicorn (memorylane.main:app) and `python -m memorylane`.

Lifecycle:
    Startup:
    1. Configure logging
    2. Create the Database (engine + connection pool)
    3. Apply migrations and run integrity checks (missing core table → abort)
    4. Serve

    Shutdown:
    1. Dispose the engine (close all pooled connections)
"""

import logging
import sys
import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from memorylane import __version__
from memorylane.config import Settings, settings as default_settings
from memorylane.database import Database
from memorylane.exceptions import (
    MemoryLaneError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from memorylane.middleware.logging import RequestLoggingMiddleware
from memorylane.middleware.request_id import RequestIDMiddleware, request_id_var
from memorylane.routes import health, images, memories
from memorylane.services.image_store import FilesystemImageStore, build_image_store
from memorylane.services.memory_repository import MemoryRepository
from memorylane.services.schema_service import SchemaManager
from memorylane.services.upload_service import UploadService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once at startup, before anything else logs.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # uvicorn's own access log duplicates RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("alembic.runtime.migration").setLevel(logging.INFO)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Open the database, bring the schema up to date, and close it on shutdown.

    A SchemaError (or a failed migration) propagates out of startup, so the
    server refuses to start rather than serve against a broken schema.
    """
    app_settings: Settings = app.state.settings
    setup_logging(app_settings.log_level)
    logger.info("=" * 60)
    logger.info("Memory Lane Backend starting up (image storage: %s)", app_settings.image_storage)

    database = Database.from_settings(app_settings)
    app.state.database = database

    try:
        schema = SchemaManager(
            database.engine,
            app.state.image_store,
            repair_image_flags=app_settings.repair_image_flags,
        )
        await schema.run(migrate=app_settings.run_migrations)
    except Exception:
        logger.critical("Database schema is not usable; aborting startup", exc_info=True)
        await database.dispose()
        raise

    logger.info("Server ready on port %d", app_settings.port)
    logger.info("=" * 60)

    yield

    logger.info("Memory Lane Backend shutting down...")
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(
    error: str,
    message: str,
    exc: Optional[BaseException] = None,
    details: Optional[Dict[str, Any]] = None,
    include_traceback: bool = False,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "error": error,
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if details:
        body["details"] = details
    if include_traceback and exc is not None:
        body["traceback"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return body


def register_exception_handlers(app: FastAPI, app_settings: Settings) -> None:
    """
    Map exception types to HTTP status codes and JSON bodies.

    Handler hierarchy:
        ValidationError    → 400
        NotFoundError      → 404
        StorageError       → 500 (DatabaseError, FileStorageError, SchemaError)
        MemoryLaneError    → 500
        Exception          → 500, generic message

    Tracebacks are included in 500 bodies only when ENVIRONMENT=development.
    """
    debug = app_settings.is_development

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", exc.message, details=exc.context),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=404,
            content=_error_body("not_found", exc.message),
        )

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        # Context may hold paths or driver errors: logged, never returned.
        logger.error(
            "[%s] %s: %s | Context: %s",
            request_id_var.get(""),
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message, exc, include_traceback=debug),
        )

    @app.exception_handler(MemoryLaneError)
    async def handle_app_error(request: Request, exc: MemoryLaneError):
        logger.error("[%s] Application error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message, exc, include_traceback=debug),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again later.",
                exc,
                include_traceback=debug,
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Override the module-level settings (used in tests).
    """
    app_settings = app_settings or default_settings

    app = FastAPI(
        title="Memory Lane API",
        description=(
            "Personal diary backend: create, read, update and delete memories, "
            "each with an optional image."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    image_store = build_image_store(app_settings.image_storage, app_settings.storage_root)
    app.state.settings = app_settings
    app.state.image_store = image_store
    app.state.upload_service = UploadService(max_file_size=app_settings.max_file_size)
    app.state.repository = MemoryRepository(image_store)

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app, app_settings)

    app.include_router(memories.router)
    app.include_router(images.router)
    app.include_router(health.router)

    if isinstance(image_store, FilesystemImageStore):
        app.mount(
            "/uploads",
            StaticFiles(directory=str(image_store.storage_root)),
            name="uploads",
        )

    return app


# uvicorn expects `memorylane.main:app`
app = create_app()

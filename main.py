"""
Main application entry point for the contacts service.

This module builds the FastAPI application: it owns the database
handle, runs the startup connection loop, initializes the rate limiter,
wires the middleware chain and includes the contacts router.

Run with ``python main.py`` or ``uvicorn main:app``.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse

from contact_manager import contacts
from contact_manager.core import Settings, configure_logging, get_settings
from contact_manager.database import Database
from contact_manager.exceptions import NotFoundException, register_exception_handlers
from contact_manager.limiter import build_rate_limiter, close_rate_limiter, init_rate_limiter
from contact_manager.middleware import register_middleware

logger = logging.getLogger("contact_manager")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Connect to the database and rate limiter on startup, release both on shutdown.

    A database that stays unreachable after the configured retries
    aborts startup.
    """
    settings: Settings = app.state.settings
    database: Database = app.state.database

    await database.connect(
        retries=settings.DB_CONNECT_RETRIES, delay=settings.DB_CONNECT_RETRY_DELAY
    )
    # Create tables (for development only)
    database.create_all(phone_unique=settings.phone_policy.unique)
    await init_rate_limiter(settings)
    logger.info("Server running in %s mode on port %s", settings.ENVIRONMENT, settings.PORT)
    try:
        yield
    finally:
        logger.info("Shutting down...")
        await close_rate_limiter()
        database.dispose()


def mount_frontend(app: FastAPI, frontend_dir: Path) -> None:
    """Serve a built single page application, falling back to ``index.html``."""
    root = frontend_dir.resolve()
    index = root / "index.html"

    @app.get("/{full_path:path}", include_in_schema=False)
    async def frontend(full_path: str):
        candidate = (root / full_path).resolve()
        if full_path and candidate.is_relative_to(root) and candidate.is_file():
            return FileResponse(candidate)
        if not index.is_file():
            raise NotFoundException("Route")
        return FileResponse(index)


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings (Settings | None): Configuration, defaults to the cached settings.
        database (Database | None): Database handle, defaults to one built
            from ``settings.DATABASE_URL``.

    Returns:
        FastAPI: Configured application.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(title="Contacts API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database or Database(settings.DATABASE_URL)

    register_exception_handlers(app, debug=settings.is_development)
    register_middleware(app, settings)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(
        contacts.router,
        prefix="/api",
        dependencies=[Depends(build_rate_limiter(settings))],
    )

    @app.get("/health", tags=["health"])
    def health():
        """Liveness probe."""
        return {"status": "UP"}

    if settings.is_production:
        mount_frontend(app, Path(settings.FRONTEND_DIR))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)

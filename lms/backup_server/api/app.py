"""
FastAPI application factory for the backup server.

This module creates the FastAPI app with:
- Backup service lifecycle management (S3 client open/close)
- Scheduled trigger, status and admin listing routes
- A health endpoint at the root
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from .._version import __version__
from ..config import ServiceConfig
from ..db.sqlite import SqliteDatabase
from ..jobs.service import BackupService
from ..schema.lms import load_lms_registry
from ..storage.s3 import S3BlobStore
from .config import Settings
from .routes import router


def create_app(
    settings: Settings | None = None,
    service: BackupService | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: HTTP settings (loaded from the environment if omitted)
        service: Ready backup service; if omitted one is built at startup
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage backup service lifecycle."""
        app.state.settings = settings

        if service is not None:
            app.state.backup_service = service
            yield
            return

        config = ServiceConfig.from_env()
        config.log_config()

        database = SqliteDatabase.from_config(config.database)
        registry = await load_lms_registry(database)

        async with S3BlobStore(config.s3) as store:
            app.state.backup_service = BackupService(
                database,
                registry,
                store,
                config,
            )
            yield

    app = FastAPI(
        title="LMS Backup Server",
        description="Scheduled full-database backups of the LMS to object storage.",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(router)

    # Health endpoint at root
    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "lms-backup-server"}

    return app

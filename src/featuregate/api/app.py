"""FastAPI application -- flag evaluation and admin API."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from featuregate.api.routes import admin, flags
from featuregate.config import FeatureGateSettings, configure_logging
from featuregate.db.engine import create_engine, create_schema, get_session_factory
from featuregate.defaults import seed_default_flags
from featuregate.errors import (
    ConflictError,
    DuplicateNameError,
    FlagError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from featuregate.permissions import PermissionDenied
from featuregate.registry import FlagRegistry
from featuregate.service import FlagService
from featuregate.storage.memory import InMemoryFlagRepository
from featuregate.storage.sql import SqlFlagRepository
from featuregate.sync import RedisFlagSync, RedisSyncConfig

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[FlagError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    DuplicateNameError: 409,
    ConflictError: 409,
    StorageError: 503,
}


def build_service(settings: FeatureGateSettings, repository=None) -> FlagService:
    """Wire repository -> registry -> service from settings."""
    if repository is None:
        repository = InMemoryFlagRepository()
    registry = FlagRegistry(
        repository,
        max_write_retries=settings.max_write_retries,
        retry_backoff_seconds=settings.retry_backoff_seconds,
    )
    return FlagService(
        registry,
        staleness_seconds=settings.staleness_seconds,
        storage_timeout_seconds=settings.storage_timeout_seconds,
    )


async def _flag_error_handler(request: Request, exc: FlagError) -> JSONResponse:
    status = _STATUS_BY_ERROR.get(type(exc), 500)
    if status >= 500:
        logger.error("Flag admin call failed: %s", exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())


async def _permission_handler(request: Request, exc: PermissionDenied) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": True, "code": "FORBIDDEN", "message": str(exc)})


def create_app(settings: FeatureGateSettings | None = None, service: FlagService | None = None) -> FastAPI:
    settings = settings or FeatureGateSettings()
    configure_logging(settings.log_level)

    engine = None
    if service is None:
        repository = None
        if settings.database_url:
            engine = create_engine(settings.database_url)
            repository = SqlFlagRepository(get_session_factory(engine))
        service = build_service(settings, repository)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sync = None
        try:
            if engine is not None:
                await create_schema(engine)
            await app.state.flags.refresh()
            if settings.seed_defaults:
                await seed_default_flags(app.state.flags)
        except FlagError:
            logger.warning("Initial flag load failed; evaluations fail closed until storage recovers")
        if settings.redis_url:
            sync = RedisFlagSync(app.state.flags, RedisSyncConfig(url=settings.redis_url))
            await sync.start()
        yield
        if sync is not None:
            await sync.close()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Feature Gate",
        version="0.1.0",
        description="Feature flag evaluation and administration.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.flags = service

    app.add_exception_handler(FlagError, _flag_error_handler)
    app.add_exception_handler(PermissionDenied, _permission_handler)

    app.include_router(flags.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health():
        """Unauthenticated health-check endpoint."""
        return {"status": "ok", "snapshot_version": app.state.flags.version}

    return app

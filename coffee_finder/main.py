from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.cors import CORSMiddleware

from coffee_finder import db
from coffee_finder.api import errors
from coffee_finder.api.routers.healthz import router as healthz_router
from coffee_finder.api.routers.me_shops import router as me_shops_router
from coffee_finder.api.routers.shell import router as shell_router
from coffee_finder.api.routers.shops import router as shops_router
from coffee_finder.core.config import Settings, get_settings
from coffee_finder.logging import setup_logging
from coffee_finder.middleware.request_id import request_id_middleware
from coffee_finder.repositories.cache_storage import SqlAlchemyCacheStorage
from coffee_finder.services.shell_cache import (
    HttpxFetcher,
    ShellCacheConfig,
    ShellCacheLifecycle,
)


def build_shell_cache(settings: Settings) -> ShellCacheLifecycle:
    config = ShellCacheConfig(
        cache_name=settings.shell_cache_name,
        origin=settings.shell_origin,
        manifest=tuple(settings.shell_manifest),
    )
    return ShellCacheLifecycle(
        config,
        SqlAlchemyCacheStorage(db.SessionLocal),
        HttpxFetcher(settings.shell_origin),
    )


def create_app(
    settings: Settings | None = None, *, shell_cache: ShellCacheLifecycle | None = None
) -> FastAPI:
    settings = settings or get_settings()
    # Initialize structured logging first
    setup_logging(app_env=settings.app_env)
    logger = structlog.get_logger(__name__)

    # Initialize Sentry (no-op if DSN is missing)
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.app_env,
            integrations=[StarletteIntegration()],
            traces_sample_rate=0.0,
            send_default_pii=False,
        )

    if shell_cache is None and settings.shell_cache_enabled:
        shell_cache = build_shell_cache(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        lifecycle = app.state.shell_cache
        if lifecycle is not None:
            await lifecycle.install()
            await lifecycle.activate()
        logger.info("app_startup", env=settings.app_env, shell_cache=settings.shell_cache_name)
        yield
        logger.info("app_shutdown")

    app = FastAPI(title="Coffee Finder", version="0.1.0", lifespan=lifespan)
    app.state.shell_cache = shell_cache

    # Request-ID middleware (JSON access log)
    app.middleware("http")(request_id_middleware)

    # CORS from ALLOW_ORIGINS env (comma-separated)
    allow_origins = [o.strip() for o in settings.allow_origins.split(",") if o.strip()]
    if allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
            allow_headers=["*"],
        )

    errors.install(app)
    app.include_router(healthz_router)
    app.include_router(shops_router)
    app.include_router(me_shops_router)
    app.include_router(shell_router)
    return app


app = create_app()

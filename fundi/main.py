"""Fundi API -- Main Application Entry Point

Creates the FastAPI application, configures logging and CORS middleware,
wires the database engine and notification dispatcher onto ``app.state``,
and registers all API route modules under the /api/v1 prefix.

Run with::

    uvicorn fundi.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from fundi.api.routes import bookings, jobs, providers
from fundi.core.config import Settings, settings as default_settings
from fundi.core.database import build_engine, build_session_factory, create_schema
from fundi.integrations.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    RedisNotificationDispatcher,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def cors_origins(settings: Settings) -> list[str]:
    return [o.strip() for o in settings.cors_allowed_origins.split(",") if o.strip()]


def _build_notifier(settings: Settings) -> NotificationDispatcher:
    if settings.notifications_enabled:
        return RedisNotificationDispatcher.from_url(
            settings.redis_url, settings.notification_channel_prefix
        )
    return LoggingNotificationDispatcher()


def create_app(
    settings: Settings = default_settings,
    *,
    engine: Optional[AsyncEngine] = None,
    notifier: Optional[NotificationDispatcher] = None,
    create_tables: bool = False,
) -> FastAPI:
    """Build the application.

    When ``engine`` is supplied (tests, tooling) it is wired onto
    ``app.state`` immediately, so requests work without running the
    lifespan; the caller then owns its shutdown, and the notifier's.
    """

    # -----------------------------------------------------------------------
    # Lifespan: startup / shutdown hooks
    # -----------------------------------------------------------------------

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_resources = engine is None
        if owns_resources:
            app.state.engine = build_engine(settings)
            app.state.session_factory = build_session_factory(app.state.engine)
            app.state.notifier = notifier or _build_notifier(settings)

        if create_tables:
            await create_schema(app.state.engine)

        logger.info("%s %s started", settings.app_name, settings.app_version)
        yield

        # Graceful shutdown: release only what we created
        if owns_resources:
            await app.state.notifier.close()
            await app.state.engine.dispose()
        logger.info("%s stopped", settings.app_name)

    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    if engine is not None:
        app.state.engine = engine
        app.state.session_factory = build_session_factory(engine)
        app.state.notifier = notifier or LoggingNotificationDispatcher()

    # -----------------------------------------------------------------------
    # CORS middleware
    # -----------------------------------------------------------------------

    origins = cors_origins(settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentials paired with a wildcard origin
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Health check
    # -----------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def health():
        """Lightweight health check for load balancers and readiness probes."""
        return {"status": "ok", "version": settings.app_version}

    # -----------------------------------------------------------------------
    # Register API route modules
    # -----------------------------------------------------------------------
    # Each router defines its own prefix (e.g. /providers, /bookings) and
    # tags; mounting under /api/v1 gives /api/v1/providers, etc.
    # -----------------------------------------------------------------------

    _prefix = settings.api_v1_prefix
    app.include_router(providers.router, prefix=_prefix)
    app.include_router(bookings.router, prefix=_prefix)
    app.include_router(jobs.router, prefix=_prefix)

    return app


app = create_app()

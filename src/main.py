from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.worker_health import router as worker_health_router
from src.notifications.api.hub import create_hub_router
from src.notifications.bootstrap import build_dispatch_worker
from src.notifications.domain.protocols import GroupTransport
from src.notifications.infrastructure.connection_registry import ConnectionRegistry
from src.notifications.infrastructure.redis_group_transport import RedisGroupRelay, RedisGroupTransport
from src.shared.config import Settings, get_settings
from src.shared.database import dispose_engine, get_session_factory
from src.shared.exceptions import register_exception_handlers  # central mapping
from src.shared.health import router as health_router
from src.shared.logging import get_logger, setup_logging
from src.shared.redis import close_redis, get_redis

logger = get_logger(__name__)


def _build_group_transport(app: FastAPI, settings: Settings) -> Optional[GroupTransport]:
    """
    Redis fabric when configured, so standalone workers reach this process's
    sockets; otherwise deliver straight into the local registry.
    """
    registry: ConnectionRegistry = app.state.registry
    if not settings.web.enabled:
        return None
    if not settings.redis_url:
        return registry

    redis = get_redis(settings)
    relay = RedisGroupRelay(redis, registry, settings.web.redis_channel_prefix)
    relay.start()
    app.state.group_relay = relay
    return RedisGroupTransport(redis, settings.web.redis_channel_prefix)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    setup_logging(settings)
    logger.info("Starting notifications API", settings=settings.safe_dict())

    app.state.group_relay = None
    app.state.dispatch_worker = None
    transport = _build_group_transport(app, settings)

    worker_task: Optional[asyncio.Task] = None
    if settings.outbox.enabled:
        worker = build_dispatch_worker(settings, get_session_factory(settings), transport)
        app.state.dispatch_worker = worker
        worker_task = asyncio.create_task(worker.run(), name="outbox_dispatch")

    try:
        yield
    finally:
        if worker_task is not None:
            app.state.dispatch_worker.stop()
            await worker_task
        if app.state.group_relay is not None:
            await app.state.group_relay.stop()
        await close_redis()
        await dispose_engine()
        logger.info("Notifications API stopped")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    Run with ``uvicorn src.main:create_app --factory``.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Notifications Relay API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = ConnectionRegistry()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    # Routers
    app.include_router(health_router)
    app.include_router(worker_health_router)
    if settings.web.enabled:
        app.include_router(create_hub_router(settings, app.state.registry))

    # Centralized error handling → {code, message, details?, correlation_id?}
    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "message": "Notifications Relay API",
            "hub": settings.web.hub_path if settings.web.enabled else None,
            "health": "/workers/health",
        }

    return app

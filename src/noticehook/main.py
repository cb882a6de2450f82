"""FastAPI application factory and lifespan management."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from noticehook.config import settings
from noticehook.db.engine import create_db_engine, create_session_factory, create_tables
from noticehook.logging_config import configure_logging
from noticehook.services.dispatcher import DeliveryDispatcher
from noticehook.services.notice_client import NoticeSourceClient

# Configure logging at import time
configure_logging(log_level=settings.log_level, json_output=settings.json_logs and not settings.local_mode)

logger = logging.getLogger(__name__)


def build_clients() -> tuple[NoticeSourceClient, DeliveryDispatcher]:
    """Outbound HTTP collaborators configured from settings."""
    notice_client = NoticeSourceClient(
        settings.notice_api_url, timeout=settings.http_timeout_seconds
    )
    dispatcher = DeliveryDispatcher(
        settings.avatar_url, timeout=settings.http_timeout_seconds
    )
    return notice_client, dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)

    # Auto-create tables for SQLite (local dev, no Alembic migrations)
    if "sqlite" in db_url:
        await create_tables(engine)
        logger.info("SQLite tables created (local mode)")

    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)
    app.state.notice_client, app.state.dispatcher = build_clients()

    # Redis only backs the sweep locks; local mode runs without it
    app.state.redis = None
    if not settings.local_mode:
        import redis.asyncio as aioredis

        app.state.redis = aioredis.from_url(settings.redis_url, decode_responses=True)

    scheduler_task = None
    if settings.scheduler_enabled:
        from noticehook.workers.scheduler import run_scheduler
        scheduler_task = asyncio.create_task(run_scheduler(app))

    logger.info("noticehook API started (db=%s)", "sqlite" if "sqlite" in db_url else "postgresql")
    yield

    # Shutdown
    if scheduler_task is not None:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass
    if app.state.redis:
        await app.state.redis.aclose()
    await engine.dispose()
    logger.info("noticehook API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="noticehook",
        version="0.1.0",
        description="Delivers newly published notices to registered webhooks, in order, once each.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=86400,
    )

    # Add middleware (order matters: last added = first executed)
    from noticehook.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(TraceIdMiddleware)

    # Register error handlers
    from noticehook.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    from noticehook.api.router import api_router
    app.include_router(api_router)

    return app


app = create_app()

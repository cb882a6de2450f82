"""FastAPI dependency injection providers."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from noticehook.config import settings
from noticehook.errors.exceptions import ValidationError
from noticehook.services.sync_engine import SyncEngine


async def get_db(request: Request) -> AsyncGenerator:
    """Yield a database session from the app's session factory."""
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


def get_webhook(webhook: str | None = Query(None)) -> str:
    """Return the required ``webhook`` query parameter or raise 400."""
    if webhook is None or not webhook.strip():
        raise ValidationError("Missing `webhook` parameter")
    return webhook.strip()


async def get_sync_engine(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> SyncEngine:
    """Build a sync engine bound to this request's session."""
    return SyncEngine(
        db,
        request.app.state.notice_client,
        request.app.state.dispatcher,
        policy=settings.watermark_policy,
        redis=getattr(request.app.state, "redis", None),
        lock_ttl=settings.sweep_interval_seconds,
    )


# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
Webhook = Annotated[str, Depends(get_webhook)]
Engine = Annotated[SyncEngine, Depends(get_sync_engine)]

"""Async SQLAlchemy engine and session creation."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from noticehook.config import settings


def create_db_engine(url: str | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    SQLite does not support pool_size / max_overflow, so pool sizing is
    only applied to server databases.
    """
    db_url = url or settings.effective_database_url
    engine_kwargs: dict = {"echo": False}
    if "sqlite" not in db_url:
        engine_kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True)
    return create_async_engine(db_url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables directly (SQLite local mode and tests; no Alembic)."""
    from noticehook.db.base import Base
    import noticehook.db.models  # noqa: F401  register all ORM models

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

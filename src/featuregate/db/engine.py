"""Database engine creation and session management."""

from __future__ import annotations

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from featuregate.db.models import Base
from featuregate.errors import StorageError


def create_engine(url: str, **kwargs) -> AsyncEngine:
    """Create async SQLAlchemy engine.

    SQLite (tests, local dev) uses a static pool and rejects the sizing
    arguments, so they are only passed for server databases.
    """
    options = {"echo": kwargs.get("echo", False), "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options["pool_size"] = kwargs.get("pool_size", 10)
        options["max_overflow"] = kwargs.get("max_overflow", 5)
    return create_async_engine(url, **options)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session factory bound to engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except (OperationalError, InterfaceError, OSError) as e:
        raise StorageError(f"Creating feature flag schema failed: {e}") from e

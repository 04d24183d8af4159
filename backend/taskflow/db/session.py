"""Async engine and request-scoped sessions."""

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from taskflow.config import Settings, get_settings


def build_engine(settings: Settings) -> AsyncEngine:
    """Engine for ``settings.database_url`` with the configured pool limits."""
    return create_async_engine(
        str(settings.database_url),
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_pre_ping=True,
        echo=settings.debug,
    )


engine = build_engine(get_settings())

# Objects stay readable after commit; services flush explicitly
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def ping(session: AsyncSession) -> None:
    """Round-trip to the database; raises SQLAlchemyError when it is unreachable."""
    await session.execute(text("SELECT 1"))


async def init_db() -> None:
    """Fail startup early when the database cannot be reached."""
    async with async_session_factory() as session:
        await ping(session)


async def close_db() -> None:
    """Dispose of the connection pool."""
    await engine.dispose()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Request session: committed when the handler returns, rolled back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

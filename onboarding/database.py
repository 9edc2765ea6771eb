"""Async database session configuration for the onboarding service.

Uses SQLAlchemy 2.0 async engine with asyncpg driver. The persistence chain
itself is synchronous and runs on the sync ``Session`` that
``AsyncSession.run_sync`` hands over.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from onboarding.config import APP_DATABASE_URL

# Convert postgresql:// to postgresql+asyncpg:// for async driver
async_url = APP_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

engine = create_async_engine(
    async_url,
    echo=False,
    pool_size=10,
    max_overflow=5,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides an async database session.

    Yields:
        AsyncSession committed when the request succeeds, rolled back otherwise.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

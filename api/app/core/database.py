"""Async database engine and session management.

Routes get a request-scoped session through get_db. Collaborators that must not
share the caller's transaction (notifications, messaging) open their own session
from async_session_factory.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

# SQLite (tests, local dev) does not take the server pool arguments
_pool_kwargs = {} if settings.database_url.startswith("sqlite") else {"pool_size": 20, "max_overflow": 10}

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
    **_pool_kwargs,
)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session. Used as a FastAPI dependency."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

"""Async engine and session plumbing.

Request handlers get a session per request through get_db_session; the
timeout sweeper opens its own short sessions from async_session_factory.
Every connection is tagged with APP_NAME and a lock_timeout, so escrow
sessions are identifiable in pg_stat_activity and a blocked row lock
surfaces as an error instead of a hung request.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import settings


def build_engine() -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {
                "application_name": settings.APP_NAME,
                "lock_timeout": str(settings.DB_LOCK_TIMEOUT_MS),
            }
        },
    )


engine: AsyncEngine = build_engine()

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, closed afterwards."""
    async with async_session_factory() as session:
        yield session

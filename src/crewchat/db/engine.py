"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection
pooling, AsyncSession for per-request database access, dependency
injection via FastAPI. Postgres (asyncpg) in production, SQLite
(aiosqlite) for local runs and tests.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from crewchat.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an engine with pool settings appropriate for the backend."""
    if url.startswith("sqlite"):
        # SQLite: single-file or in-memory, pooling is handled by the dialect
        return create_async_engine(url, echo=echo)
    return create_async_engine(url, echo=echo, pool_size=5, max_overflow=15)


engine = build_engine(settings.database_url, echo=settings.debug)

# Session factory — each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_all(target: AsyncEngine | None = None) -> None:
    """Create every table directly (local SQLite setups and tests)."""
    from crewchat.db.models import Base

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""Database connection and session management with async support."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.pool import NullPool
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)

from .models import Base


DEFAULT_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///./data/farmcast.db"

# Engine cache: db_url -> (engine, session_factory)
_engines: dict[str, tuple[AsyncEngine, async_sessionmaker[AsyncSession]]] = {}


def get_async_engine(database_url: str = DEFAULT_ASYNC_DATABASE_URL) -> AsyncEngine:
    """Get or create the asynchronous engine for a database URL."""
    if database_url not in _engines:
        kwargs: dict = {"echo": False, "pool_pre_ping": True}
        if database_url.startswith("sqlite") and ":memory:" not in database_url:
            # file-backed SQLite: one connection per session, nothing left open
            kwargs["poolclass"] = NullPool
        engine = create_async_engine(database_url, **kwargs)
        factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
        _engines[database_url] = (engine, factory)
    return _engines[database_url][0]


def get_async_session_factory(
    database_url: str = DEFAULT_ASYNC_DATABASE_URL,
) -> async_sessionmaker[AsyncSession]:
    """Get async session factory."""
    get_async_engine(database_url)
    return _engines[database_url][1]


@asynccontextmanager
async def get_session(
    database_url: str = DEFAULT_ASYNC_DATABASE_URL,
) -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session as a context manager.

    Commits on clean exit, rolls back on any exception.
    """
    factory = get_async_session_factory(database_url)
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db_async(database_url: str = DEFAULT_ASYNC_DATABASE_URL) -> None:
    """Initialize the database asynchronously by creating all tables."""
    engine = get_async_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_async(database_url: Optional[str] = None) -> None:
    """Dispose one cached engine, or all of them when no URL is given."""
    urls = [database_url] if database_url else list(_engines)
    for url in urls:
        cached = _engines.pop(url, None)
        if cached is not None:
            await cached[0].dispose()

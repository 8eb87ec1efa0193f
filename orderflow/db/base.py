"""Declarative base plus the process-wide async engine and session factory."""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from orderflow.core.config import get_settings


class Base(DeclarativeBase):
    pass


# JSONB on Postgres, plain JSON elsewhere (sqlite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the SQL order and audit stores."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create the orders and order_events tables if missing."""
    # Registers models on Base.metadata
    import orderflow.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Initialize the shared engine and session factory (idempotent).

    Args:
        url: Override for settings.database_url (tests pass a sqlite+aiosqlite URL)

    Returns:
        The shared session factory
    """
    global _engine, _session_factory

    if _session_factory is not None:
        return _session_factory

    settings = get_settings()
    db_url = url or settings.database_url

    _engine = create_async_engine(db_url, echo=settings.debug, pool_pre_ping=True)
    _session_factory = build_session_factory(_engine)
    await create_tables(_engine)
    return _session_factory


async def close_db() -> None:
    """Dispose of the engine and release all connections."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the configured session factory.

    Raises RuntimeError if init_db() has not been called.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory

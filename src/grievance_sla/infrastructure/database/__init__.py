"""
Database Infrastructure
=======================

Process-wide async engine for the ticket store.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) URLs are accepted
for tests and local runs. The store opens its own short sessions from the
session maker, one transaction per call.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from grievance_sla.config import settings


class Base(DeclarativeBase):
    """Declarative base shared by the ticket and escalation record tables."""
    pass


_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the engine and session maker used by the worker.

    Args:
        database_url: Overrides settings.database_url (tests pass SQLite URLs)

    Returns:
        AsyncEngine: The new engine
    """
    global _engine, _session_maker

    # asyncpg takes ssl=, not libpq's sslmode=
    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")

    options = {"echo": settings.debug}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )

    _engine = create_async_engine(url, **options)
    # Ticket snapshots are read after commit, so keep loaded attributes
    _session_maker = async_sessionmaker(bind=_engine, expire_on_commit=False, autoflush=False)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Session factory for the SQLAlchemy ticket store.

    Raises:
        RuntimeError: init_database() has not run
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


async def create_tables() -> None:
    """Create missing tables; existing ones are left as they are."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    # Registers the escalation tables on Base.metadata
    from grievance_sla.escalation.infrastructure import models  # noqa: F401

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_database() -> None:
    """Dispose of pooled connections. Safe to call when never initialized."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None

"""
experiment_sdk.tier0_core.data
──────────────────────────────
Async database access for the experiment store: engine lifecycle,
session factory and transaction boundaries. The engine only ever reads
experiment definitions; it never writes assignments to the database.

Minimal stack: SQLAlchemy 2.x async
Configure via: DATABASE_URL
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from experiment_sdk.tier0_core.config import get_config


# ── Base model ────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    """All ORM records inherit from this base."""
    pass


# ── Engine / session factory ──────────────────────────────────────────────────

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine(url: str | None = None, **kwargs: Any) -> AsyncEngine:
    """Return the process-wide async engine. Created on first call."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(url or get_config().database_url, **kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory bound to get_engine()."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager that yields a session.
    Commits on clean exit, rolls back on exception, always closes.

    Usage:
        async with get_session() as session:
            rows = (await session.execute(select(ExperimentRecord))).scalars().all()
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_all(engine: AsyncEngine | None = None) -> None:
    """Create every table registered on Base. Intended for dev databases and tests."""
    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose the engine. Call on application shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def _reset() -> None:
    """For tests: forget the engine and session factory."""
    global _engine, _session_factory
    _engine = None
    _session_factory = None


__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "get_session",
    "create_all",
    "dispose_engine",
]

"""SQLModel engine/session helpers for snapshot persistence."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from codeshot.core.config import get_settings

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[sessionmaker] = None


def configure_engine(database_url: str) -> AsyncEngine:
    """Create (or replace) the module-level engine for ``database_url``."""
    global _engine, _sessionmaker
    _engine = create_async_engine(database_url, echo=False, future=True)
    _sessionmaker = sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    return _engine


def get_engine() -> AsyncEngine:
    """Return a singleton async engine configured from settings."""
    if _engine is None:
        configure_engine(get_settings().database_url)
    assert _engine is not None
    return _engine


def _get_sessionmaker() -> sessionmaker:
    if _sessionmaker is None:
        get_engine()
    assert _sessionmaker is not None
    return _sessionmaker


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async SQLAlchemy session."""
    session_factory = _get_sessionmaker()
    session: AsyncSession = session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db() -> None:
    """Create database tables based on SQLModel metadata."""
    # Import models to ensure they are registered with metadata
    from codeshot.db import models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None

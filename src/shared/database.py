# src/shared/database.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.shared.config import Settings


class Base(DeclarativeBase):
    """Project-wide SQLAlchemy declarative base."""
    pass


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _async_url(url: str) -> str:
    # Settings accept plain postgresql:// DSNs; the engine needs the asyncpg driver
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create a single AsyncEngine for the process."""
    if not settings.database_url:
        raise ValueError("DATABASE_URL environment variable is required")
    return create_async_engine(
        _async_url(settings.database_url),
        echo=settings.debug,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


def get_engine(settings: Settings) -> AsyncEngine:
    """Lazy singleton engine (prevents '_engine is unbound')."""
    global _engine
    if _engine is None:
        _engine = create_engine_from_settings(settings)
    return _engine


def get_session_factory(settings: Settings) -> async_sessionmaker[AsyncSession]:
    """Lazy singleton session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(settings),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None

"""
Database engine and session management with SQLAlchemy async

Engines and session factories are built on demand so that a run can
target the default DATABASE_URL or a named data source registered by the
host.
"""

from typing import Optional
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(database_url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine.

    Args:
        database_url: SQLAlchemy URL, defaults to settings.DATABASE_URL
        echo: Log every statement
    """
    url = database_url or settings.DATABASE_URL
    logger.debug(f"Creating async engine for {url.split('@')[-1]}")
    return create_async_engine(
        url,
        echo=echo,
        poolclass=NullPool,  # one run, one connection; nothing to pool
        future=True
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create a session factory bound to an engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


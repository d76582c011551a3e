"""
Async SQLAlchemy engine and session handling.

Production runs on PostgreSQL (asyncpg); tests and local runs may point
``DATABASE_URL`` at SQLite (aiosqlite), which gets a single shared
connection when the database is in memory.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config.settings import config
from database.models import Base

logger = logging.getLogger(__name__)


def build_engine(url: str) -> AsyncEngine:
    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=False, pool_size=10, max_overflow=20, pool_recycle=3600)
    if url.rstrip("/").endswith(("sqlite+aiosqlite:", ":memory:")):
        # Every session must see the same in-memory database.
        return create_async_engine(
            url, echo=False, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    return create_async_engine(url, echo=False)


engine = build_engine(config.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def create_tables(target: Optional[AsyncEngine] = None) -> None:
    """Create any missing tables.  Schema migrations are managed outside this service."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


@asynccontextmanager
async def session_scope(
    factory: Optional[async_sessionmaker] = None,
) -> AsyncIterator[AsyncSession]:
    """One unit of work: commit on success, roll back and re-raise on error."""
    async with (factory or async_session_factory)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency function — use in FastAPI `Depends(get_db_session)`."""
    async with session_scope() as session:
        yield session

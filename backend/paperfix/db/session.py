"""
Database engine and session management.

Flow:
  1. API routes depend on get_db(), which opens a session inside a
     transaction and commits when the route completes (rolls back on error).
  2. Pipeline components (JobStore, persistence, retry) receive the
     session factory and open short, explicit transactions of their own.
     No ORM object is shared between transactions.

Test-suites build their own engine/factory against a temporary SQLite file
and inject it; nothing here is required for the pipeline to run.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from paperfix.core.config import settings
from paperfix.models.documents import Base

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _engine_kwargs(database_url: str) -> dict:
    kwargs: dict = {"echo": settings.db_echo_sql}
    if database_url.startswith("sqlite"):
        # SQLite pools do not accept sizing arguments
        return kwargs
    kwargs.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,          # detect stale connections before use
        pool_recycle=3600,           # recycle connections every hour
    )
    return kwargs


def build_engine(database_url: str | None = None) -> AsyncEngine:
    url = database_url or settings.database_url
    return create_async_engine(url, **_engine_kwargs(url))


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps ORM objects usable after commit
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine: AsyncEngine = build_engine()

AsyncSessionLocal = build_session_factory(engine)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields a session wrapped in one transaction.

    Usage in a route:
        @router.get("/documents/{document_id}")
        async def get_doc(db: AsyncSession = Depends(get_db)): ...
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session
            # Transaction commits automatically on context exit (begin() block)


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Standalone transactional session for scripts and Celery tasks."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session


# ---------------------------------------------------------------------------
# Schema bootstrap (local dev + tests; production uses migrations)
# ---------------------------------------------------------------------------

async def init_models(bind: AsyncEngine | None = None) -> None:
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")


# ---------------------------------------------------------------------------
# Health check helper
# ---------------------------------------------------------------------------

async def check_db_health() -> dict:
    """Ping the database; used by /ready endpoint."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}

"""
Database engine and session management.

The upload side (documents) and the ingestion side (ingestions) own separate
databases. Each gets its own engine and session factory, built lazily from
settings so that importing a module never opens a connection.

Pooling:
  - API processes keep a normal connection pool per engine.
  - Celery workers run each task on a fresh event loop (see workers/tasks.py);
    asyncpg connections are bound to the loop that opened them, so worker
    engines are created with pooled=False (NullPool).
"""

from __future__ import annotations

import logging
from functools import lru_cache

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from docingest.core.config import get_settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine / session factory builders
# ---------------------------------------------------------------------------

def create_engine(url: str, *, pooled: bool = True) -> AsyncEngine:
    settings = get_settings()

    if not pooled:
        return create_async_engine(url, poolclass=NullPool, echo=settings.db_echo_sql)

    return create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,          # detect stale connections before use
        pool_recycle=3600,           # recycle connections every hour
        echo=settings.db_echo_sql,   # log SQL in dev; disable in prod
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps ORM objects usable after commit
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ---------------------------------------------------------------------------
# Process-wide engines for the API services
# ---------------------------------------------------------------------------

def _require_url(url: str, env_var: str) -> str:
    if not url:
        raise RuntimeError(f"{env_var} is not configured")
    return url


@lru_cache(maxsize=1)
def get_documents_engine() -> AsyncEngine:
    url = _require_url(get_settings().documents_database_url, "DOCUMENTS_DATABASE_URL")
    return create_engine(url)


@lru_cache(maxsize=1)
def get_ingestion_engine() -> AsyncEngine:
    url = _require_url(get_settings().ingestion_database_url, "INGESTION_DATABASE_URL")
    return create_engine(url)


def get_documents_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return create_session_factory(get_documents_engine())


def get_ingestion_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return create_session_factory(get_ingestion_engine())


# ---------------------------------------------------------------------------
# Health check helper
# ---------------------------------------------------------------------------

async def check_db_health(engine: AsyncEngine) -> dict:
    """Ping the database; used by /ready endpoints."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed | url=%s error=%s", engine.url.render_as_string(), exc)
        return {"status": "error", "detail": str(exc)}

"""
nanobot_orchestrator.db.session

Engine and session factory for the session history database.

Responsibilities:
- Build the async engine for a database URL, pinning in-memory SQLite to one connection.
- Build the sessionmaker used by the SQL session store.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite") and (
        ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:")
    )


def create_engine(database_url: str) -> AsyncEngine:
    if _is_memory_sqlite(database_url):
        # Every pooled connection would otherwise see its own empty database.
        return create_async_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(database_url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Stored rows are read back after commit when history is loaded.
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)

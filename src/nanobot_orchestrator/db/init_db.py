"""
nanobot_orchestrator.db.init_db

Schema bootstrap for the session history tables.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from nanobot_orchestrator.db.models import Base


async def init_db(engine: AsyncEngine) -> None:
    """Create the history tables if missing; safe to call on every startup."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

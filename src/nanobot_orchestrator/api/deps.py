"""
nanobot_orchestrator.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Expose the `Runtime` built at startup and the DB session factory.
- Read the caller's requester key for job ownership checks.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from nanobot_orchestrator.runtime import Runtime


def runtime_dep(request: Request) -> Runtime:
    # Set on startup in `nanobot_orchestrator.api.app.create_app`.
    return request.app.state.runtime  # type: ignore[attr-defined]


async def db_session(runtime: Runtime = Depends(runtime_dep)) -> AsyncIterator[AsyncSession]:
    async with runtime.sessionmaker() as session:
        yield session


def requester_key(x_requester_key: str = Header(default="")) -> str:
    # Owner-key equality is the only access control; an absent header is the empty owner.
    return x_requester_key.strip()

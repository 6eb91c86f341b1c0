"""
nanobot_orchestrator.sessions.store

Session history store boundary used by the resumable flow and post-turn hooks.

Responsibilities:
- Define the `SessionStore` protocol (read window, append, count, trim).
- Provide a process-local implementation and a SQLAlchemy-backed one.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nanobot_orchestrator.db.repositories.sessions import SessionRepo
from nanobot_orchestrator.orchestrator.events import ChatMessage


class SessionStore(Protocol):
    async def history(self, session_key: str, *, limit: int) -> list[ChatMessage]: ...

    async def append(self, session_key: str, *, role: str, content: str) -> None: ...

    async def count(self, session_key: str) -> int: ...

    async def trim(self, session_key: str, *, keep: int) -> int: ...


class InMemorySessionStore:
    def __init__(self) -> None:
        self._messages: dict[str, list[ChatMessage]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def history(self, session_key: str, *, limit: int) -> list[ChatMessage]:
        async with self._lock:
            items = self._messages.get(session_key, [])
            window = items[-limit:] if limit > 0 else []
            return [ChatMessage(role=m["role"], content=m["content"]) for m in window]

    async def append(self, session_key: str, *, role: str, content: str) -> None:
        async with self._lock:
            self._messages[session_key].append(ChatMessage(role=role, content=content))

    async def count(self, session_key: str) -> int:
        async with self._lock:
            return len(self._messages.get(session_key, []))

    async def trim(self, session_key: str, *, keep: int) -> int:
        async with self._lock:
            items = self._messages.get(session_key, [])
            removed = max(0, len(items) - keep)
            if removed:
                self._messages[session_key] = items[removed:]
            return removed


class SqlSessionStore:
    """Each call runs in its own short transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def history(self, session_key: str, *, limit: int) -> list[ChatMessage]:
        if limit <= 0:
            return []
        async with self._session_factory() as session:
            rows = await SessionRepo(session).recent_messages(session_key, limit=limit)
            return [ChatMessage(role=r.role, content=r.content) for r in rows]

    async def append(self, session_key: str, *, role: str, content: str) -> None:
        async with self._session_factory() as session:
            await SessionRepo(session).add_message(key=session_key, role=role, content=content)
            await session.commit()

    async def count(self, session_key: str) -> int:
        async with self._session_factory() as session:
            return await SessionRepo(session).count_messages(session_key)

    async def trim(self, session_key: str, *, keep: int) -> int:
        async with self._session_factory() as session:
            removed = await SessionRepo(session).trim_messages(session_key, keep=keep)
            await session.commit()
            return removed

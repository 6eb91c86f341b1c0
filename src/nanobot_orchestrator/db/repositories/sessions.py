"""
nanobot_orchestrator.db.repositories.sessions

Repository for `SessionRecord` / `SessionMessage` entities.

Responsibilities:
- Resolve (or create) a session by key.
- Append messages and read the most recent window.
- Trim old messages for history compaction.
"""

from __future__ import annotations

from sqlalchemy import delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nanobot_orchestrator.db.models import SessionMessage, SessionRecord


class SessionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, key: str) -> SessionRecord | None:
        stmt = select(SessionRecord).where(SessionRecord.key == key)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_or_create(self, key: str) -> SessionRecord:
        record = await self.get(key)
        if record is None:
            record = SessionRecord(key=key)
            self._session.add(record)
            await self._session.flush()
        return record

    async def add_message(self, *, key: str, role: str, content: str) -> SessionMessage:
        record = await self.get_or_create(key)
        msg = SessionMessage(session_id=record.id, role=role, content=content)
        self._session.add(msg)
        await self._session.flush()
        return msg

    async def recent_messages(self, key: str, *, limit: int) -> list[SessionMessage]:
        record = await self.get(key)
        if record is None:
            return []
        stmt = (
            select(SessionMessage)
            .where(SessionMessage.session_id == record.id)
            .order_by(desc(SessionMessage.id))
            .limit(limit)
        )
        rows = list((await self._session.execute(stmt)).scalars().all())
        rows.reverse()  # oldest first, as prompts expect
        return rows

    async def count_messages(self, key: str) -> int:
        record = await self.get(key)
        if record is None:
            return 0
        stmt = select(func.count(SessionMessage.id)).where(SessionMessage.session_id == record.id)
        return int((await self._session.execute(stmt)).scalar_one())

    async def trim_messages(self, key: str, *, keep: int) -> int:
        record = await self.get(key)
        if record is None:
            return 0
        keep_ids = (
            select(SessionMessage.id)
            .where(SessionMessage.session_id == record.id)
            .order_by(desc(SessionMessage.id))
            .limit(keep)
        )
        stmt = delete(SessionMessage).where(
            SessionMessage.session_id == record.id,
            SessionMessage.id.not_in(keep_ids),
        )
        result = await self._session.execute(stmt)
        return int(result.rowcount or 0)


# --- Module Notes -----------------------------------------------------------
# Commit boundaries belong to the caller (`sessions.SqlSessionStore`), mirroring how the
# service layer owns transactions elsewhere in the package.

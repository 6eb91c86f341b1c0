"""
nanobot_orchestrator.db.models

Persistence schema for conversational sessions.

Responsibilities:
- Base: declarative base for the tables below.
- SessionRecord: one durable per-(channel, chat) conversation.
- SessionMessage: append-only message history of a session.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid as SAUuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    # Naive UTC timestamps keep SQLite comparisons simple.
    return datetime.now(tz=UTC).replace(tzinfo=None)


class SessionRecord(Base):
    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Session key convention: "<channel>:<chat_id>".
    key: Mapped[str] = mapped_column(String(512), nullable=False, unique=True, index=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)

    messages: Mapped[list[SessionMessage]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )


class SessionMessage(Base):
    __tablename__ = "session_messages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("sessions.id"), nullable=False, index=True
    )

    role: Mapped[str] = mapped_column(String(32), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    session: Mapped[SessionRecord] = relationship(back_populates="messages")

    __table_args__ = (Index("ix_session_messages_session_id_id", "session_id", "id"),)

"""
nanobot_orchestrator.bus

In-process message bus between chat channels and the orchestrator.

Responsibilities:
- Define inbound/outbound message shapes and the session-key convention.
- Define the `MessageSink` boundary used to deliver questions and job announcements.
- Provide a queue-backed bus implementation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from nanobot_orchestrator.observability.logging import get_logger

log = get_logger(__name__)


def session_key_for(channel: str, chat_id: str) -> str:
    return f"{channel}:{chat_id}"


@dataclass(slots=True)
class InboundMessage:
    channel: str
    chat_id: str
    content: str
    sender_id: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def session_key(self) -> str:
        return session_key_for(self.channel, self.chat_id)


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    channel: str
    chat_id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


class MessageSink(Protocol):
    """Fire-and-forget delivery to a destination channel/chat."""

    def publish(self, channel: str, chat_id: str, text: str) -> None: ...


class MessageBus:
    """
    Two unbounded asyncio queues: inbound (channels -> agent) and outbound (agent -> channels).
    `publish` never blocks, so it is safe to call from synchronous registry code.
    """

    def __init__(self) -> None:
        self._inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self._outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()

    def publish(self, channel: str, chat_id: str, text: str) -> None:
        self._outbound.put_nowait(OutboundMessage(channel=channel, chat_id=chat_id, content=text))
        log.debug("outbound_published", channel=channel, chat_id=chat_id)

    def publish_inbound(self, message: InboundMessage) -> None:
        self._inbound.put_nowait(message)

    async def consume_inbound(self) -> InboundMessage:
        return await self._inbound.get()

    async def consume_outbound(self) -> OutboundMessage:
        return await self._outbound.get()

    def drain_outbound(self) -> list[OutboundMessage]:
        out: list[OutboundMessage] = []
        while not self._outbound.empty():
            out.append(self._outbound.get_nowait())
        return out

    @property
    def outbound_size(self) -> int:
        return self._outbound.qsize()


# --- Module Notes -----------------------------------------------------------
# Channel adapters (Telegram, Slack, ...) live outside this package; they only need to feed
# `publish_inbound` and drain `consume_outbound`.

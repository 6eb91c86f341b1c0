"""
tests.test_checkpoints_and_bus

Checkpoint store contract and the in-process message bus.
"""

from __future__ import annotations

import pytest

from nanobot_orchestrator.bus import InboundMessage, MessageBus, session_key_for
from nanobot_orchestrator.orchestrator.checkpoints import InMemoryCheckpointStore


@pytest.mark.asyncio
async def test_checkpoint_store_round_trip() -> None:
    store = InMemoryCheckpointStore()

    assert await store.get("missing") == (None, False)

    await store.set("cli:1_1", b"state-v1")
    await store.set("cli:1_1", b"state-v2")

    assert await store.get("cli:1_1") == (b"state-v2", True)
    assert len(store) == 1


@pytest.mark.asyncio
async def test_checkpoint_store_delete() -> None:
    store = InMemoryCheckpointStore()
    await store.set("cli:1_1", b"state")

    await store.delete("cli:1_1")
    await store.delete("never-stored")

    assert await store.get("cli:1_1") == (None, False)
    assert len(store) == 0


def test_session_key_convention() -> None:
    assert session_key_for("telegram", "42") == "telegram:42"
    assert InboundMessage(channel="slack", chat_id="C1", content="hi").session_key == "slack:C1"


@pytest.mark.asyncio
async def test_bus_queues_outbound_and_inbound() -> None:
    bus = MessageBus()
    bus.publish("cli", "1", "first")
    bus.publish("cli", "2", "second")

    assert bus.outbound_size == 2
    first = await bus.consume_outbound()
    assert (first.chat_id, first.content) == ("1", "first")
    assert [m.content for m in bus.drain_outbound()] == ["second"]

    bus.publish_inbound(InboundMessage(channel="cli", chat_id="1", content="hello"))
    assert (await bus.consume_inbound()).content == "hello"

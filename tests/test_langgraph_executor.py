"""
tests.test_langgraph_executor

LangGraph-backed turn executor: replies, interrupt/resume round trip and bookkeeping.
"""

from __future__ import annotations

import json
from typing import Any

import pytest
from conftest import RecordingSink
from langgraph.types import interrupt

from nanobot_orchestrator.bus import InboundMessage
from nanobot_orchestrator.errors import TurnExecutionError
from nanobot_orchestrator.interrupts.registry import InterruptRegistry
from nanobot_orchestrator.orchestrator.checkpoints import InMemoryCheckpointStore
from nanobot_orchestrator.orchestrator.events import AgentEvent, AskUserInfo
from nanobot_orchestrator.orchestrator.flow import ResumableFlow
from nanobot_orchestrator.orchestrator.graph import build_chat_graph
from nanobot_orchestrator.orchestrator.langgraph_executor import LangGraphTurnExecutor
from nanobot_orchestrator.orchestrator.outcomes import Completed, Suspended
from nanobot_orchestrator.sessions.store import InMemorySessionStore


async def _booking_responder(messages: list[dict[str, Any]]) -> str:
    answer = interrupt({"question": "Which city?", "options": ["Paris", "Rome"]})
    return f"Booked {answer['user_answer']}"


async def _collect(stream) -> list[AgentEvent]:
    return [event async for event in stream]


async def _record(store: InMemoryCheckpointStore, checkpoint_id: str) -> dict[str, Any]:
    raw, found = await store.get(checkpoint_id)
    assert found
    return json.loads(raw)


@pytest.mark.asyncio
async def test_echo_graph_replies() -> None:
    store = InMemoryCheckpointStore()
    executor = LangGraphTurnExecutor(build_chat_graph(), checkpoint_store=store)

    events = await _collect(
        executor.run([{"role": "user", "content": "ping"}], checkpoint_id="cli:1_1", max_steps=10)
    )

    assert [e.output for e in events] == ["ping"]
    assert (await _record(store, "cli:1_1"))["status"] == "completed"


@pytest.mark.asyncio
async def test_interrupt_then_resume() -> None:
    store = InMemoryCheckpointStore()
    executor = LangGraphTurnExecutor(
        build_chat_graph(responder=_booking_responder), checkpoint_store=store
    )

    events = await _collect(
        executor.run([{"role": "user", "content": "book"}], checkpoint_id="cli:1_2", max_steps=10)
    )

    last = events[-1]
    assert last.suspended
    (ctx,) = last.interrupts
    assert ctx.info == {"question": "Which city?", "options": ["Paris", "Rome"]}
    record = await _record(store, "cli:1_2")
    assert record["status"] == "suspended"
    assert record["interrupt_ids"] == [ctx.id]

    resumed = await _collect(
        executor.resume(
            "cli:1_2",
            {ctx.id: AskUserInfo(question="Which city?", options=["Paris", "Rome"], user_answer="Paris")},
            max_steps=10,
        )
    )

    assert [e.output for e in resumed] == ["Booked Paris"]
    assert not resumed[-1].suspended
    assert (await _record(store, "cli:1_2"))["status"] == "completed"


@pytest.mark.asyncio
async def test_resume_unknown_checkpoint_fails() -> None:
    executor = LangGraphTurnExecutor(build_chat_graph(), checkpoint_store=InMemoryCheckpointStore())
    with pytest.raises(TurnExecutionError):
        await _collect(executor.resume("never-ran", {"x": {"user_answer": "y"}}, max_steps=10))


@pytest.mark.asyncio
async def test_flow_round_trip_through_langgraph() -> None:
    store = InMemoryCheckpointStore()
    sink = RecordingSink()
    flow = ResumableFlow(
        registry=InterruptRegistry(sink=sink, checkpoint_store=store),
        executor=LangGraphTurnExecutor(
            build_chat_graph(responder=_booking_responder), checkpoint_store=store
        ),
        sessions=InMemorySessionStore(),
    )

    first = await flow.process(InboundMessage(channel="cli", chat_id="7", content="book a trip"))
    assert isinstance(first, Suspended)
    assert sink.texts == ["❓ Which city?\n\nOptions:\n1. Paris\n2. Rome"]

    second = await flow.process(InboundMessage(channel="cli", chat_id="7", content="Rome"))
    assert second == Completed(reply="Booked Rome")
    assert flow.registry.pending_count == 0


@pytest.mark.asyncio
async def test_assistant_replies_feed_the_next_prompt() -> None:
    prompts: list[list[dict[str, Any]]] = []

    async def numbered(messages: list[dict[str, Any]]) -> str:
        prompts.append(messages)
        return f"reply {len(prompts)}"

    store = InMemoryCheckpointStore()
    sessions = InMemorySessionStore()
    graph = build_chat_graph(responder=numbered)
    flow = ResumableFlow(
        registry=InterruptRegistry(sink=RecordingSink(), checkpoint_store=store),
        executor=LangGraphTurnExecutor(graph, checkpoint_store=store, sessions=sessions),
        sessions=sessions,
    )

    assert await flow.process(InboundMessage(channel="cli", chat_id="3", content="first")) == Completed(
        reply="reply 1"
    )
    await flow.process(InboundMessage(channel="cli", chat_id="3", content="second"))

    assert prompts[1] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "reply 1"},
        {"role": "user", "content": "second"},
    ]
    assert await sessions.history("cli:3", limit=10) == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "reply 1"},
        {"role": "user", "content": "second"},
        {"role": "assistant", "content": "reply 2"},
    ]


@pytest.mark.asyncio
async def test_finish_releases_bookkeeping_and_graph_thread() -> None:
    store = InMemoryCheckpointStore()
    graph = build_chat_graph(responder=_booking_responder)
    executor = LangGraphTurnExecutor(graph, checkpoint_store=store)
    config = {"configurable": {"thread_id": "cli:1_9"}}

    await _collect(
        executor.run([{"role": "user", "content": "book"}], checkpoint_id="cli:1_9", max_steps=10)
    )
    assert list(graph.checkpointer.list(config))

    await executor.finish("cli:1_9")

    assert await store.get("cli:1_9") == (None, False)
    assert list(graph.checkpointer.list(config)) == []
    with pytest.raises(TurnExecutionError):
        await _collect(executor.resume("cli:1_9", {"x": {"user_answer": "Rome"}}, max_steps=10))

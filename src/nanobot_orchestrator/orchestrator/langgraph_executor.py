"""
nanobot_orchestrator.orchestrator.langgraph_executor

`TurnExecutor` backed by a compiled LangGraph graph.

Responsibilities:
- Run a turn as one graph thread whose id is the turn's checkpoint id.
- Translate `__interrupt__` stream updates into suspension events.
- Resume a suspended thread with `Command(resume={interrupt_id: payload})`.
- Record per-checkpoint bookkeeping in the `CheckpointStore`.
- On `finish`, store the assistant reply in the session history and drop the thread.

The graph must be compiled with a checkpointer (e.g. `InMemorySaver`); LangGraph keeps the
actual continuation state there, keyed by thread id.
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import AsyncIterator, Mapping
from typing import Any

from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.errors import GraphRecursionError
from langgraph.types import Command

from nanobot_orchestrator.errors import TurnExecutionError
from nanobot_orchestrator.interrupts.models import utcnow
from nanobot_orchestrator.observability.logging import get_logger
from nanobot_orchestrator.orchestrator.checkpoints import CheckpointStore
from nanobot_orchestrator.orchestrator.events import AgentEvent, ChatMessage, InterruptContext
from nanobot_orchestrator.sessions.store import SessionStore

log = get_logger(__name__)

INTERRUPT_KEY = "__interrupt__"
_ASSISTANT_ROLES = ("assistant", "ai")


class LangGraphTurnExecutor:
    def __init__(
        self,
        graph: Any,
        *,
        checkpoint_store: CheckpointStore,
        sessions: SessionStore | None = None,
    ) -> None:
        self._graph = graph
        self._store = checkpoint_store
        self._sessions = sessions

    async def run(
        self,
        messages: list[ChatMessage],
        *,
        checkpoint_id: str,
        max_steps: int,
    ) -> AsyncIterator[AgentEvent]:
        await self._record(checkpoint_id, status="running", interrupt_ids=[])
        async for event in self._stream(
            {"messages": [dict(m) for m in messages]}, checkpoint_id, max_steps
        ):
            yield event

    async def resume(
        self,
        checkpoint_id: str,
        targets: dict[str, Any],
        *,
        max_steps: int,
    ) -> AsyncIterator[AgentEvent]:
        raw, found = await self._store.get(checkpoint_id)
        if not found or raw is None:
            raise TurnExecutionError(f"no checkpoint {checkpoint_id!r} to resume")
        previous = json.loads(raw)
        unknown = [iid for iid in targets if iid not in previous.get("interrupt_ids", [])]
        if unknown:
            log.warning("resume_unknown_interrupt", checkpoint_id=checkpoint_id, interrupt_ids=unknown)

        await self._record(checkpoint_id, status="running", interrupt_ids=[])
        command = Command(resume={iid: _to_graph_value(v) for iid, v in targets.items()})
        async for event in self._stream(command, checkpoint_id, max_steps):
            yield event

    async def _stream(
        self, graph_input: Any, checkpoint_id: str, max_steps: int
    ) -> AsyncIterator[AgentEvent]:
        config = {"configurable": {"thread_id": checkpoint_id}, "recursion_limit": max_steps}
        suspended: list[InterruptContext] = []
        try:
            async for chunk in self._graph.astream(graph_input, config=config, stream_mode="updates"):
                for node, update in chunk.items():
                    if node == INTERRUPT_KEY:
                        suspended.extend(InterruptContext(id=i.id, info=i.value) for i in update)
                        continue
                    reply = _last_assistant_content(update)
                    if reply:
                        yield AgentEvent(output=reply)
        except GraphRecursionError as e:
            await self._record(checkpoint_id, status="failed", interrupt_ids=[])
            yield AgentEvent(error=TurnExecutionError(f"step budget of {max_steps} exhausted"))
            log.warning("turn_step_budget_exhausted", checkpoint_id=checkpoint_id, error=str(e))
            return

        if suspended:
            await self._record(
                checkpoint_id, status="suspended", interrupt_ids=[i.id for i in suspended]
            )
            yield AgentEvent(interrupts=tuple(suspended))
            return
        await self._record(checkpoint_id, status="completed", interrupt_ids=[])

    async def finish(self, checkpoint_id: str, *, session_key: str = "", reply: str = "") -> None:
        if self._sessions is not None and session_key and reply:
            await self._sessions.append(session_key, role="assistant", content=reply)
        await self._store.delete(checkpoint_id)
        checkpointer = getattr(self._graph, "checkpointer", None)
        if isinstance(checkpointer, BaseCheckpointSaver):
            await checkpointer.adelete_thread(checkpoint_id)
        log.debug("turn_released", checkpoint_id=checkpoint_id)

    async def _record(self, checkpoint_id: str, *, status: str, interrupt_ids: list[str]) -> None:
        payload = {
            "checkpoint_id": checkpoint_id,
            "status": status,
            "interrupt_ids": interrupt_ids,
            "updated_at": utcnow().isoformat(),
        }
        await self._store.set(checkpoint_id, json.dumps(payload).encode("utf-8"))


def _to_graph_value(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _last_assistant_content(update: Any) -> str:
    if not isinstance(update, Mapping):
        return ""
    messages = update.get("messages")
    if not isinstance(messages, list | tuple):
        return ""
    for msg in reversed(messages):
        if isinstance(msg, Mapping):
            role, content = msg.get("role"), msg.get("content")
        else:
            role, content = getattr(msg, "type", None), getattr(msg, "content", None)
        if role in _ASSISTANT_ROLES and isinstance(content, str) and content:
            return content
    return ""


# --- Module Notes -----------------------------------------------------------
# Nested interrupts reuse the same thread: the flow always resumes at the checkpoint id the
# turn first ran under, which is the thread id LangGraph checkpointed against.
# Threads of questions that expire without an answer are never finished and stay in the
# checkpointer until the process exits; completed, failed, cancelled and job turns are
# released through `finish`.

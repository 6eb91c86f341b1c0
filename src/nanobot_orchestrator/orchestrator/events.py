"""
nanobot_orchestrator.orchestrator.events

Contract between the orchestrator and the turn executor (the LLM-driven agent runner).

Responsibilities:
- Define the event stream shape (replies, errors, suspension with interrupt payloads).
- Define the typed ask-user payload shared by suspension and resumption.
- Define the `TurnExecutor` protocol (run, resume, finish).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol, TypedDict


class ChatMessage(TypedDict):
    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass(slots=True)
class AskUserInfo:
    """Typed ask-user payload: emitted on suspension, sent back (with the answer) on resume."""

    question: str
    options: list[str] = field(default_factory=list)
    user_answer: str = ""


@dataclass(frozen=True, slots=True)
class InterruptContext:
    id: str
    info: Any


@dataclass(frozen=True, slots=True)
class AgentEvent:
    output: str | None = None
    error: BaseException | None = None
    interrupts: tuple[InterruptContext, ...] = ()

    @property
    def suspended(self) -> bool:
        return bool(self.interrupts)


class TurnExecutor(Protocol):
    def run(
        self,
        messages: list[ChatMessage],
        *,
        checkpoint_id: str,
        max_steps: int,
    ) -> AsyncIterator[AgentEvent]: ...

    def resume(
        self,
        checkpoint_id: str,
        targets: dict[str, Any],
        *,
        max_steps: int,
    ) -> AsyncIterator[AgentEvent]: ...

    async def finish(self, checkpoint_id: str, *, session_key: str = "", reply: str = "") -> None:
        """
        The turn run under `checkpoint_id` is over. Record `reply` as the assistant side of
        `session_key` (when both are given) and drop any continuation state for the turn.
        """
        ...


# --- Module Notes -----------------------------------------------------------
# A stream ends either with a reply or with one event carrying `interrupts`; the
# orchestrator only inspects the last event to decide between the two.

"""
tests.conftest

Shared fakes for orchestrator tests.

Responsibilities:
- A scripted turn executor that replays canned event streams and records every call.
- A message sink that records published text.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any

import pytest

from nanobot_orchestrator.interrupts.registry import InterruptRegistry
from nanobot_orchestrator.orchestrator.events import (
    AgentEvent,
    AskUserInfo,
    ChatMessage,
    InterruptContext,
)
from nanobot_orchestrator.sessions.store import InMemorySessionStore


def reply(text: str) -> AgentEvent:
    return AgentEvent(output=text)


def ask(question: str, options: list[str] | None = None, *, interrupt_id: str = "int-1") -> AgentEvent:
    info = AskUserInfo(question=question, options=list(options or []))
    return AgentEvent(interrupts=(InterruptContext(id=interrupt_id, info=info),))


def suspend_with(info: Any, *, interrupt_id: str = "int-1") -> AgentEvent:
    return AgentEvent(interrupts=(InterruptContext(id=interrupt_id, info=info),))


@dataclass
class RunCall:
    messages: list[ChatMessage]
    checkpoint_id: str
    max_steps: int


@dataclass
class ResumeCall:
    checkpoint_id: str
    targets: dict[str, Any]
    max_steps: int


@dataclass
class FinishCall:
    checkpoint_id: str
    session_key: str
    reply: str


@dataclass
class ScriptedTurnExecutor:
    """
    Each `run`/`resume` call consumes the next script: a list of events, exceptions (raised
    mid-stream) or an `asyncio.Event` (the stream blocks until it is set).
    """

    scripts: deque[list[Any]] = field(default_factory=deque)
    runs: list[RunCall] = field(default_factory=list)
    resumes: list[ResumeCall] = field(default_factory=list)
    finished: list[FinishCall] = field(default_factory=list)

    def push(self, *items: Any) -> ScriptedTurnExecutor:
        self.scripts.append(list(items))
        return self

    async def run(self, messages: list[ChatMessage], *, checkpoint_id: str, max_steps: int):
        self.runs.append(RunCall(list(messages), checkpoint_id, max_steps))
        async for event in self._play():
            yield event

    async def resume(self, checkpoint_id: str, targets: dict[str, Any], *, max_steps: int):
        self.resumes.append(ResumeCall(checkpoint_id, dict(targets), max_steps))
        async for event in self._play():
            yield event

    async def finish(self, checkpoint_id: str, *, session_key: str = "", reply: str = "") -> None:
        self.finished.append(FinishCall(checkpoint_id, session_key, reply))

    async def _play(self):
        script = self.scripts.popleft() if self.scripts else [reply("ok")]
        for item in script:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            yield item


class RecordingSink:
    def __init__(self) -> None:
        self.published: list[tuple[str, str, str]] = []

    def publish(self, channel: str, chat_id: str, text: str) -> None:
        self.published.append((channel, chat_id, text))

    @property
    def texts(self) -> list[str]:
        return [text for _, _, text in self.published]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def registry(sink: RecordingSink) -> InterruptRegistry:
    return InterruptRegistry(sink=sink)


@pytest.fixture
def executor() -> ScriptedTurnExecutor:
    return ScriptedTurnExecutor()


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()

"""
nanobot_orchestrator.orchestrator.hooks

Best-effort post-turn hooks.

Responsibilities:
- Define the `PostTurnHook` extension point.
- Run hooks in registration order; a failing hook is logged and never fails the turn.
- Provide the history compaction hook.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from nanobot_orchestrator.bus import InboundMessage
from nanobot_orchestrator.observability.logging import get_logger
from nanobot_orchestrator.sessions.store import SessionStore

log = get_logger(__name__)


class PostTurnHook(ABC):
    name: str = "hook"

    @abstractmethod
    async def after_turn(self, message: InboundMessage, session_key: str, reply: str) -> None: ...


class HookManager:
    def __init__(self, hooks: list[PostTurnHook] | None = None) -> None:
        self._hooks: list[PostTurnHook] = list(hooks or [])

    def register(self, hook: PostTurnHook) -> None:
        self._hooks.append(hook)
        log.info("hook_registered", hook=hook.name)

    @property
    def hooks(self) -> list[PostTurnHook]:
        return list(self._hooks)

    async def run_after_turn(self, message: InboundMessage, session_key: str, reply: str) -> None:
        for hook in self._hooks:
            try:
                await hook.after_turn(message, session_key, reply)
            except Exception:
                log.exception("hook_failed", hook=hook.name, session_key=session_key)


class HistoryCompactionHook(PostTurnHook):
    """Keeps only the newest `keep` messages once a session grows past `threshold`."""

    name = "history_compaction"

    def __init__(self, sessions: SessionStore, *, threshold: int = 40, keep: int = 20) -> None:
        self._sessions = sessions
        self._threshold = threshold if threshold > 0 else 40
        self._keep = max(0, min(keep, self._threshold))

    async def after_turn(self, message: InboundMessage, session_key: str, reply: str) -> None:
        count = await self._sessions.count(session_key)
        if count < self._threshold:
            return
        removed = await self._sessions.trim(session_key, keep=self._keep)
        log.info(
            "history_compacted",
            session_key=session_key,
            removed=removed,
            remaining=count - removed,
        )

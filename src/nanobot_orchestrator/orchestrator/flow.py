"""
nanobot_orchestrator.orchestrator.flow

Resumable execution flow: makes one conversational turn look atomic to its caller even
though it may suspend (ask a human) and resume any number of times.

Responsibilities:
- Route an inbound message to either a fresh turn or the resumption of a pending question.
- Drive the turn executor, drain its event stream and classify the outcome.
- Register suspensions with the interrupt registry (keeping the original checkpoint id
  stable across nested suspensions) and return a tagged outcome.
- Persist the user's side of completed turns and run post-turn hooks.

State per turn: Fresh -> Running -> {Completed | Suspended};
Suspended -> Running (resume) -> {Completed | Suspended (deeper)}.
"""

from __future__ import annotations

import threading
import time
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from nanobot_orchestrator.bus import InboundMessage
from nanobot_orchestrator.errors import InterruptNotFoundError, TurnExecutionError
from nanobot_orchestrator.interrupts.models import InterruptKind, InterruptRequest, UserResponse
from nanobot_orchestrator.interrupts.registry import InterruptRegistry
from nanobot_orchestrator.observability.logging import bound_context, get_logger
from nanobot_orchestrator.orchestrator.events import (
    AgentEvent,
    AskUserInfo,
    ChatMessage,
    InterruptContext,
    TurnExecutor,
)
from nanobot_orchestrator.orchestrator.hooks import HookManager
from nanobot_orchestrator.orchestrator.outcomes import Completed, Suspended, TurnOutcome
from nanobot_orchestrator.sessions.store import SessionStore

log = get_logger(__name__)

_stamp_lock = threading.Lock()
_last_stamp = 0


def next_stamp() -> int:
    """Nanosecond wall-clock stamp, strictly increasing within the process."""

    global _last_stamp
    with _stamp_lock:
        now = time.time_ns()
        if now <= _last_stamp:
            now = _last_stamp + 1
        _last_stamp = now
        return now


@dataclass(slots=True)
class _Drained:
    reply: str
    last: AgentEvent | None
    error: BaseException | None


@dataclass(frozen=True, slots=True)
class _ParsedInterrupt:
    question: str
    options: list[str]
    kind: InterruptKind | None
    is_ask_user: bool
    metadata: dict[str, Any]


class ResumableFlow:
    def __init__(
        self,
        *,
        registry: InterruptRegistry,
        executor: TurnExecutor,
        sessions: SessionStore,
        hooks: HookManager | None = None,
        origin: str = "master",
        max_steps: int = 10,
        history_window: int = 10,
        system_prompt: str = "",
    ) -> None:
        self._registry = registry
        self._executor = executor
        self._sessions = sessions
        self._hooks = hooks
        self._origin = origin
        self._max_steps = max_steps if max_steps > 0 else 10
        self._history_window = max(0, history_window)
        self._system_prompt = system_prompt

    @property
    def registry(self) -> InterruptRegistry:
        return self._registry

    async def process(self, message: InboundMessage) -> TurnOutcome:
        session_key = message.session_key
        with bound_context(session_key=session_key, origin=self._origin):
            pending = self._registry.get_pending(session_key)
            if pending is not None:
                log.info(
                    "resuming_pending_interrupt",
                    checkpoint_id=pending.checkpoint_id,
                    original_checkpoint_id=pending.original_checkpoint_id,
                )
                return await self._resume_request(pending, message)

            history = await self._sessions.history(session_key, limit=self._history_window)
            messages = self._build_messages(history, message.content)
            checkpoint_id = f"{session_key}_{next_stamp()}"

            drained = await self._drain(
                lambda: self._executor.run(
                    messages, checkpoint_id=checkpoint_id, max_steps=self._max_steps
                )
            )
            if drained.error is not None:
                await self._release(checkpoint_id)
                raise _as_turn_error(drained.error, f"{self._origin} turn failed")

            if drained.last is not None and drained.last.suspended:
                return self._suspend(
                    event=drained.last,
                    checkpoint_id=checkpoint_id,
                    original_checkpoint_id=checkpoint_id,
                    channel=message.channel,
                    chat_id=message.chat_id,
                    session_key=session_key,
                )

            await self._finish_turn(message, session_key, checkpoint_id, drained.reply)
            log.info("turn_completed", checkpoint_id=checkpoint_id)
            return Completed(reply=drained.reply)

    async def resume(self, checkpoint_id: str, answer: str) -> TurnOutcome:
        request = self._registry.get_by_checkpoint(checkpoint_id)
        if request is None:
            raise InterruptNotFoundError(checkpoint_id)
        message = InboundMessage(channel=request.channel, chat_id=request.chat_id, content=answer)
        with bound_context(session_key=request.session_key, origin=self._origin):
            return await self._resume_request(request, message)

    async def cancel(self, checkpoint_id: str) -> None:
        """Abandon a suspended turn: cancel its question and drop the executor state."""

        request = self._registry.get_by_checkpoint(checkpoint_id)
        if request is None:
            raise InterruptNotFoundError(checkpoint_id)
        self._registry.cancel(checkpoint_id)
        await self._release(request.original_checkpoint_id)

    async def _resume_request(
        self, request: InterruptRequest, message: InboundMessage
    ) -> TurnOutcome:
        answer = message.content
        self._registry.submit_response(
            UserResponse(checkpoint_id=request.checkpoint_id, answer=answer)
        )

        targets = {request.interrupt_id: _resume_payload(request, answer)}
        # The executor keys its continuation by the checkpoint the turn first ran under.
        drained = await self._drain(
            lambda: self._executor.resume(
                request.original_checkpoint_id, targets, max_steps=self._max_steps
            )
        )

        if drained.last is not None and drained.last.suspended:
            if drained.error is not None:
                log.warning("resume_error_after_suspension", error=str(drained.error))
            return self._suspend(
                event=drained.last,
                checkpoint_id=f"{request.checkpoint_id}_resume_{next_stamp()}",
                original_checkpoint_id=request.original_checkpoint_id,
                channel=request.channel,
                chat_id=request.chat_id,
                session_key=request.session_key,
            )
        if drained.error is not None:
            raise _as_turn_error(drained.error, f"{self._origin} resume failed")

        self._registry.resolve(request.checkpoint_id)
        await self._finish_turn(
            message, request.session_key, request.original_checkpoint_id, drained.reply
        )
        log.info(
            "turn_completed",
            checkpoint_id=request.checkpoint_id,
            original_checkpoint_id=request.original_checkpoint_id,
        )
        return Completed(reply=drained.reply)

    async def _drain(self, start: Callable[[], AsyncIterator[AgentEvent]]) -> _Drained:
        reply = ""
        last: AgentEvent | None = None
        try:
            async for event in start():
                if event.error is not None:
                    return _Drained(reply=reply, last=last, error=event.error)
                if event.output:
                    reply = event.output
                last = event
        except Exception as e:
            return _Drained(reply=reply, last=last, error=e)
        return _Drained(reply=reply, last=last, error=None)

    def _suspend(
        self,
        *,
        event: AgentEvent,
        checkpoint_id: str,
        original_checkpoint_id: str,
        channel: str,
        chat_id: str,
        session_key: str,
    ) -> Suspended:
        ctx: InterruptContext = event.interrupts[0]
        parsed = _parse_interrupt_info(ctx.info)
        self._registry.register(
            InterruptRequest(
                checkpoint_id=checkpoint_id,
                original_checkpoint_id=original_checkpoint_id,
                interrupt_id=ctx.id,
                channel=channel,
                chat_id=chat_id,
                session_key=session_key,
                question=parsed.question,
                options=parsed.options,
                kind=parsed.kind,
                metadata=parsed.metadata,
                is_ask_user=parsed.is_ask_user,
                origin=self._origin,
            )
        )
        log.info(
            "turn_suspended",
            checkpoint_id=checkpoint_id,
            original_checkpoint_id=original_checkpoint_id,
            interrupt_id=ctx.id,
        )
        return Suspended(
            checkpoint_id=checkpoint_id,
            interrupt_id=ctx.id,
            original_checkpoint_id=original_checkpoint_id,
            question=parsed.question,
        )

    async def _finish_turn(
        self, message: InboundMessage, session_key: str, checkpoint_id: str, reply: str
    ) -> None:
        await self._sessions.append(session_key, role="user", content=message.content)
        # The executor records its own reply, after the user message it answers.
        await self._executor.finish(checkpoint_id, session_key=session_key, reply=reply)
        if self._hooks is not None:
            await self._hooks.run_after_turn(message, session_key, reply)

    async def _release(self, checkpoint_id: str) -> None:
        try:
            await self._executor.finish(checkpoint_id)
        except Exception:
            log.exception("turn_release_failed", checkpoint_id=checkpoint_id)

    def _build_messages(self, history: list[ChatMessage], content: str) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        if self._system_prompt:
            messages.append(ChatMessage(role="system", content=self._system_prompt))
        for item in history:
            role = "assistant" if item.get("role") == "assistant" else "user"
            messages.append(ChatMessage(role=role, content=str(item.get("content", ""))))
        messages.append(ChatMessage(role="user", content=content))
        return messages


def _as_turn_error(error: BaseException, context: str) -> TurnExecutionError:
    if isinstance(error, TurnExecutionError):
        return error
    exc = TurnExecutionError(f"{context}: {error}")
    exc.__cause__ = error
    return exc


def _parse_interrupt_info(info: Any) -> _ParsedInterrupt:
    if isinstance(info, AskUserInfo):
        return _ParsedInterrupt(
            question=info.question,
            options=list(info.options),
            kind=InterruptKind.ask_user,
            is_ask_user=True,
            metadata={},
        )
    if isinstance(info, Mapping):
        question = info.get("question")
        question = question if isinstance(question, str) else ""
        raw_options = info.get("options")
        options = (
            [o for o in raw_options if isinstance(o, str)]
            if isinstance(raw_options, list | tuple)
            else []
        )
        kind = _coerce_kind(info.get("kind"))
        if kind is None:
            kind = InterruptKind.ask_user if question else InterruptKind.custom
        metadata = {k: v for k, v in info.items() if k not in ("question", "options", "kind")}
        return _ParsedInterrupt(
            question=question,
            options=options,
            kind=kind,
            is_ask_user=bool(question) and kind == InterruptKind.ask_user,
            metadata=metadata,
        )
    # Opaque payload: show it verbatim and let the registry default the kind.
    return _ParsedInterrupt(
        question=str(info), options=[], kind=None, is_ask_user=False, metadata={}
    )


def _coerce_kind(raw: Any) -> InterruptKind | None:
    if not isinstance(raw, str):
        return None
    try:
        return InterruptKind(raw)
    except ValueError:
        return None


def _resume_payload(request: InterruptRequest, answer: str) -> Any:
    if request.is_ask_user:
        return AskUserInfo(question=request.question, options=list(request.options), user_answer=answer)
    return {"user_answer": answer}


# --- Module Notes -----------------------------------------------------------
# Registry errors (not found, expired, validation, backpressure) raised while submitting an
# answer propagate unchanged; the transport layer maps them to user-facing messages.

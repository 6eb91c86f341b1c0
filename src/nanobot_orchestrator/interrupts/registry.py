"""
nanobot_orchestrator.interrupts.registry

Single source of truth for "who is the runtime waiting on, and why".

Responsibilities:
- Track in-flight suspensions by checkpoint id and by session (one paired index).
- Format and deliver questions through the message sink (per-kind handlers).
- Accept, validate and route human answers to the waiter of a specific checkpoint.
- Keep a bounded audit history and summary stats.
"""

from __future__ import annotations

import asyncio
import threading
from collections import Counter, deque
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from nanobot_orchestrator.bus import MessageSink
from nanobot_orchestrator.errors import (
    BackpressureError,
    InterruptConflictError,
    InterruptExpiredError,
    InterruptNotFoundError,
    OperationCancelledError,
)
from nanobot_orchestrator.interrupts.handlers import (
    AskUserHandler,
    FileOperationHandler,
    InterruptHandler,
    PlanApprovalHandler,
    ToolConfirmHandler,
    format_generic_question,
)
from nanobot_orchestrator.interrupts.models import (
    InterruptKind,
    InterruptRequest,
    InterruptStatus,
    UserResponse,
    utcnow,
)
from nanobot_orchestrator.observability.logging import get_logger
from nanobot_orchestrator.orchestrator.checkpoints import CheckpointStore, InMemoryCheckpointStore

log = get_logger(__name__)

DEFAULT_TIMEOUT = timedelta(minutes=30)
DEFAULT_MAX_PENDING = 100
DEFAULT_MAX_HISTORY = 1000


class _PendingIndex:
    """
    Checkpoint index plus the session index derived from it.

    All mutations go through `add`/`remove`, so the two maps can never point at different
    objects for the same checkpoint.
    """

    def __init__(self) -> None:
        self._by_checkpoint: dict[str, InterruptRequest] = {}
        self._by_session: dict[str, InterruptRequest] = {}

    def __len__(self) -> int:
        return len(self._by_checkpoint)

    def add(self, request: InterruptRequest) -> None:
        self._by_checkpoint[request.checkpoint_id] = request
        if request.session_key:
            self._by_session[request.session_key] = request

    def remove(self, checkpoint_id: str) -> InterruptRequest | None:
        request = self._by_checkpoint.pop(checkpoint_id, None)
        if request is not None and request.session_key:
            if self._by_session.get(request.session_key) is request:
                del self._by_session[request.session_key]
        return request

    def by_checkpoint(self, checkpoint_id: str) -> InterruptRequest | None:
        return self._by_checkpoint.get(checkpoint_id)

    def by_session(self, session_key: str) -> InterruptRequest | None:
        return self._by_session.get(session_key)

    def expired(self, now: datetime) -> list[InterruptRequest]:
        return [r for r in self._by_checkpoint.values() if r.is_expired(now)]


class InterruptRegistry:
    def __init__(
        self,
        *,
        sink: MessageSink,
        default_timeout: timedelta | None = DEFAULT_TIMEOUT,
        max_pending: int = DEFAULT_MAX_PENDING,
        max_history: int = DEFAULT_MAX_HISTORY,
        checkpoint_store: CheckpointStore | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sink = sink
        self._default_timeout = default_timeout if default_timeout else None
        self._max_pending = max_pending if max_pending > 0 else DEFAULT_MAX_PENDING
        self._clock = clock
        self._checkpoint_store = checkpoint_store or InMemoryCheckpointStore()

        # Index lock: guards the paired index only. Formatting/delivery happen outside it.
        self._lock = threading.Lock()
        self._pending = _PendingIndex()

        self._history_lock = threading.Lock()
        self._history: deque[InterruptRequest] = deque(
            maxlen=max_history if max_history > 0 else DEFAULT_MAX_HISTORY
        )

        # Undelivered responses and blocked waiters, both keyed by checkpoint id.
        self._mailbox_lock = threading.Lock()
        self._mailbox: dict[str, UserResponse] = {}
        self._waiters: dict[str, asyncio.Future[UserResponse]] = {}

        self._handlers_lock = threading.Lock()
        self._handlers: dict[str, InterruptHandler] = {
            InterruptKind.ask_user: AskUserHandler(),
            InterruptKind.plan_approval: PlanApprovalHandler(),
            InterruptKind.tool_confirm: ToolConfirmHandler(),
            InterruptKind.file_operation: FileOperationHandler(),
        }

    @property
    def checkpoint_store(self) -> CheckpointStore:
        return self._checkpoint_store

    @property
    def max_pending(self) -> int:
        return self._max_pending

    # --- registration -----------------------------------------------------------

    def register(self, request: InterruptRequest) -> None:
        now = self._clock()
        if request.kind is None:
            request.kind = InterruptKind.ask_user
        if request.status is None:
            request.status = InterruptStatus.pending
        if request.created_at is None:
            request.created_at = now
        if request.expires_at is None and self._default_timeout is not None:
            request.expires_at = request.created_at + self._default_timeout

        superseded: InterruptRequest | None = None
        expired: list[InterruptRequest] = []
        with self._lock:
            if self._pending.by_checkpoint(request.checkpoint_id) is not None:
                raise InterruptConflictError(request.session_key, request.checkpoint_id)

            live = self._pending.by_session(request.session_key) if request.session_key else None
            if live is not None and live.is_expired(now):
                live.status = InterruptStatus.expired
                self._pending.remove(live.checkpoint_id)
                expired.append(live)
                live = None
            if live is not None:
                if live.original_checkpoint_id != request.original_checkpoint_id:
                    raise InterruptConflictError(request.session_key, live.checkpoint_id)
                # Nested suspension of the same turn replaces the hop it answered.
                live.status = InterruptStatus.resolved
                self._pending.remove(live.checkpoint_id)
                superseded = live

            if len(self._pending) >= self._max_pending:
                log.warning("interrupt_capacity_reached", pending=len(self._pending))
                for stale in self._pending.expired(now):
                    stale.status = InterruptStatus.expired
                    self._pending.remove(stale.checkpoint_id)
                    expired.append(stale)

            self._pending.add(request)

        for stale in expired:
            self._after_removal(stale)
            log.info("interrupt_expired", checkpoint_id=stale.checkpoint_id)
        if superseded is not None:
            self._after_removal(superseded)

        with self._history_lock:
            self._history.append(request.snapshot())

        question = self.format_question(request)
        try:
            self._sink.publish(request.channel, request.chat_id, f"❓ {question}")
        except Exception:
            # Delivery is fire-and-forget; the request stays answerable via the API.
            log.exception("interrupt_delivery_failed", checkpoint_id=request.checkpoint_id)

        log.info(
            "interrupt_registered",
            checkpoint_id=request.checkpoint_id,
            original_checkpoint_id=request.original_checkpoint_id,
            interrupt_id=request.interrupt_id,
            kind=str(request.kind),
            channel=request.channel,
            chat_id=request.chat_id,
            session_key=request.session_key,
            origin=request.origin,
        )

    def format_question(self, request: InterruptRequest) -> str:
        handler = self._handler_for(request.kind)
        if handler is not None:
            return handler.format_question(request)
        return format_generic_question(request)

    # --- answers ----------------------------------------------------------------

    def submit_response(self, response: UserResponse) -> None:
        checkpoint_id = response.checkpoint_id
        with self._lock:
            request = self._pending.by_checkpoint(checkpoint_id)
        if request is None:
            raise InterruptNotFoundError(checkpoint_id)

        now = self._clock()
        if request.is_expired(now):
            self._remove(checkpoint_id, InterruptStatus.expired)
            raise InterruptExpiredError(checkpoint_id)

        handler = self._handler_for(request.kind)
        if handler is not None:
            handler.validate(response)

        response.timestamp = now
        with self._mailbox_lock:
            waiter = self._waiters.pop(checkpoint_id, None)
            if waiter is None or waiter.done():
                if checkpoint_id not in self._mailbox and len(self._mailbox) >= self._max_pending:
                    raise BackpressureError(checkpoint_id, self._max_pending)
                self._mailbox[checkpoint_id] = response
            else:
                waiter.get_loop().call_soon_threadsafe(self._deliver, waiter, response)

        log.info(
            "response_submitted",
            checkpoint_id=checkpoint_id,
            approved=response.approved,
            answer_len=len(response.answer),
        )

    def _deliver(self, waiter: asyncio.Future[UserResponse], response: UserResponse) -> None:
        if not waiter.done():
            waiter.set_result(response)
            return
        # The waiter gave up between hand-off and delivery; keep the answer for the next one.
        with self._mailbox_lock:
            self._mailbox.setdefault(response.checkpoint_id, response)

    async def await_response(
        self, checkpoint_id: str, *, timeout: float | None = None
    ) -> UserResponse:
        with self._mailbox_lock:
            queued = self._mailbox.pop(checkpoint_id, None)
            if queued is None:
                with self._lock:
                    request = self._pending.by_checkpoint(checkpoint_id)
                if request is None:
                    raise InterruptNotFoundError(checkpoint_id)
                if checkpoint_id in self._waiters:
                    raise InterruptConflictError(request.session_key, checkpoint_id)
                waiter: asyncio.Future[UserResponse] = asyncio.get_running_loop().create_future()
                self._waiters[checkpoint_id] = waiter

        if queued is not None:
            self.resolve(checkpoint_id)
            return queued

        try:
            async with asyncio.timeout(timeout):
                response = await waiter
        except TimeoutError as e:
            raise OperationCancelledError(
                f"timed out waiting for an answer to checkpoint {checkpoint_id!r}"
            ) from e
        finally:
            with self._mailbox_lock:
                if self._waiters.get(checkpoint_id) is waiter:
                    del self._waiters[checkpoint_id]

        self.resolve(checkpoint_id)
        return response

    # --- lookups ----------------------------------------------------------------

    def get_pending(self, session_key: str) -> InterruptRequest | None:
        with self._lock:
            return self._pending.by_session(session_key)

    def get_by_checkpoint(self, checkpoint_id: str) -> InterruptRequest | None:
        with self._lock:
            return self._pending.by_checkpoint(checkpoint_id)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    # --- removal ----------------------------------------------------------------

    def clear(self, checkpoint_id: str) -> None:
        self._remove(checkpoint_id, None)

    def resolve(self, checkpoint_id: str) -> None:
        self._remove(checkpoint_id, InterruptStatus.resolved)

    def cancel(self, checkpoint_id: str) -> None:
        if self._remove(checkpoint_id, InterruptStatus.cancelled):
            log.info("interrupt_cancelled", checkpoint_id=checkpoint_id)

    def _remove(self, checkpoint_id: str, status: InterruptStatus | None) -> bool:
        with self._lock:
            request = self._pending.by_checkpoint(checkpoint_id)
            if request is None:
                return False
            if status is not None:
                request.status = status
            self._pending.remove(checkpoint_id)
        self._after_removal(request)
        return True

    def _after_removal(self, request: InterruptRequest) -> None:
        checkpoint_id = request.checkpoint_id
        with self._mailbox_lock:
            self._mailbox.pop(checkpoint_id, None)
            waiter = self._waiters.pop(checkpoint_id, None)
        if waiter is not None and not waiter.done():
            waiter.get_loop().call_soon_threadsafe(
                _fail_waiter,
                waiter,
                OperationCancelledError(f"interrupt {checkpoint_id!r} was {request.status}"),
            )
        with self._history_lock:
            for entry in reversed(self._history):
                if entry.checkpoint_id == checkpoint_id:
                    entry.status = request.status
                    break

    # --- audit ------------------------------------------------------------------

    def history(self, limit: int = 0) -> list[InterruptRequest]:
        with self._history_lock:
            items = list(self._history)
        if 0 < limit < len(items):
            items = items[-limit:]
        return [item.snapshot() for item in items]

    def stats(self) -> dict[str, Any]:
        with self._lock:
            pending = len(self._pending)
        with self._history_lock:
            by_kind = Counter(str(r.kind) for r in self._history)
            by_status = Counter(str(r.status) for r in self._history)
            history_count = len(self._history)
        return {
            "pending_count": pending,
            "history_count": history_count,
            "by_kind": dict(by_kind),
            "by_status": dict(by_status),
        }

    # --- handlers ---------------------------------------------------------------

    def register_handler(self, kind: InterruptKind | str, handler: InterruptHandler) -> None:
        with self._handlers_lock:
            self._handlers[str(kind)] = handler
        log.info("interrupt_handler_registered", kind=str(kind))

    def _handler_for(self, kind: InterruptKind | str | None) -> InterruptHandler | None:
        if kind is None:
            return None
        with self._handlers_lock:
            return self._handlers.get(str(kind))


def _fail_waiter(waiter: asyncio.Future[UserResponse], exc: BaseException) -> None:
    if not waiter.done():
        waiter.set_exception(exc)


# --- Module Notes -----------------------------------------------------------
# Expiry is lazy: expired requests are reclaimed when capacity pressure triggers a sweep,
# when a late answer arrives, or when the same session registers a new question.
# History entries are snapshots; their status is kept in sync on removal so `stats()`
# reflects how each suspension ended.

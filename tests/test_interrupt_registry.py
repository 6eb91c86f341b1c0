"""
tests.test_interrupt_registry

Interrupt registry behaviour: registration, answer routing, expiry, capacity and audit.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from conftest import RecordingSink

from nanobot_orchestrator.errors import (
    BackpressureError,
    InterruptConflictError,
    InterruptExpiredError,
    InterruptNotFoundError,
    OperationCancelledError,
    ResponseValidationError,
)
from nanobot_orchestrator.interrupts.handlers import InterruptHandler
from nanobot_orchestrator.interrupts.models import (
    InterruptKind,
    InterruptRequest,
    InterruptStatus,
    UserResponse,
    ask_user_interrupt,
    file_operation_interrupt,
    plan_approval_interrupt,
    tool_confirm_interrupt,
    utcnow,
)
from nanobot_orchestrator.interrupts.registry import InterruptRegistry


def _ask(checkpoint_id: str, *, chat_id: str = "42", options: list[str] | None = None) -> InterruptRequest:
    return ask_user_interrupt(
        checkpoint_id=checkpoint_id,
        interrupt_id=f"iid-{checkpoint_id}",
        channel="telegram",
        chat_id=chat_id,
        session_key=f"telegram:{chat_id}",
        question="Proceed?",
        options=options,
    )


@pytest.mark.asyncio
async def test_answer_before_expiry_is_returned_and_clears_pending(
    registry: InterruptRegistry, sink: RecordingSink
) -> None:
    registry.register(_ask("cp-1", options=["yes", "no"]))
    assert registry.get_pending("telegram:42") is not None

    registry.submit_response(UserResponse(checkpoint_id="cp-1", answer="yes"))
    response = await registry.await_response("cp-1")

    assert response.answer == "yes"
    assert response.timestamp is not None
    assert registry.get_pending("telegram:42") is None
    assert registry.get_by_checkpoint("cp-1") is None
    assert sink.published == [("telegram", "42", "❓ Proceed?\n\nOptions:\n1. yes\n2. no")]
    assert registry.history()[-1].status == InterruptStatus.resolved


def test_expired_request_rejects_answer_and_is_removed(registry: InterruptRegistry) -> None:
    request = _ask("cp-old")
    request.expires_at = utcnow() - timedelta(seconds=1)
    registry.register(request)

    with pytest.raises(InterruptExpiredError):
        registry.submit_response(UserResponse(checkpoint_id="cp-old", answer="late"))

    assert registry.get_by_checkpoint("cp-old") is None
    assert registry.get_pending("telegram:42") is None
    assert registry.history()[-1].status == InterruptStatus.expired


def test_unknown_checkpoint_is_not_found(registry: InterruptRegistry) -> None:
    with pytest.raises(InterruptNotFoundError):
        registry.submit_response(UserResponse(checkpoint_id="nope", answer="x"))


def test_register_fills_defaults() -> None:
    now = utcnow()
    registry = InterruptRegistry(
        sink=RecordingSink(), default_timeout=timedelta(minutes=5), clock=lambda: now
    )
    request = InterruptRequest(checkpoint_id="cp", session_key="cli:1", question="Q")
    registry.register(request)

    assert request.kind == InterruptKind.ask_user
    assert request.status == InterruptStatus.pending
    assert request.created_at == now
    assert request.expires_at == now + timedelta(minutes=5)
    assert request.original_checkpoint_id == "cp"


def test_factory_requests_expire_on_the_registry_clock() -> None:
    now = [utcnow() - timedelta(days=1)]
    registry = InterruptRegistry(
        sink=RecordingSink(), default_timeout=timedelta(minutes=5), clock=lambda: now[0]
    )
    request = _ask("cp-1")
    assert request.created_at is None

    registry.register(request)
    assert request.created_at == now[0]
    assert request.expires_at == now[0] + timedelta(minutes=5)

    now[0] += timedelta(minutes=6)
    with pytest.raises(InterruptExpiredError):
        registry.submit_response(UserResponse(checkpoint_id="cp-1", answer="late"))


def test_zero_timeout_disables_expiry() -> None:
    registry = InterruptRegistry(sink=RecordingSink(), default_timeout=timedelta(0))
    request = InterruptRequest(checkpoint_id="cp", session_key="cli:1", question="Q")
    registry.register(request)
    assert request.expires_at is None


def test_empty_answer_fails_validation_and_keeps_request(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1"))
    with pytest.raises(ResponseValidationError):
        registry.submit_response(UserResponse(checkpoint_id="cp-1", answer="   "))
    assert registry.get_by_checkpoint("cp-1") is not None


@pytest.mark.asyncio
async def test_waiters_receive_only_their_own_answer(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-a", chat_id="1"))
    registry.register(_ask("cp-b", chat_id="2"))

    wait_a = asyncio.create_task(registry.await_response("cp-a"))
    wait_b = asyncio.create_task(registry.await_response("cp-b"))
    await asyncio.sleep(0)

    registry.submit_response(UserResponse(checkpoint_id="cp-b", answer="bee"))
    registry.submit_response(UserResponse(checkpoint_id="cp-a", answer="ay"))

    assert (await wait_a).answer == "ay"
    assert (await wait_b).answer == "bee"
    assert registry.pending_count == 0


@pytest.mark.asyncio
async def test_await_times_out(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1"))
    with pytest.raises(OperationCancelledError):
        await registry.await_response("cp-1", timeout=0.01)
    # The question itself is still open.
    assert registry.get_by_checkpoint("cp-1") is not None


@pytest.mark.asyncio
async def test_second_waiter_on_same_checkpoint_conflicts(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1"))
    first = asyncio.create_task(registry.await_response("cp-1"))
    await asyncio.sleep(0)

    with pytest.raises(InterruptConflictError):
        await registry.await_response("cp-1")

    registry.submit_response(UserResponse(checkpoint_id="cp-1", answer="ok"))
    assert (await first).answer == "ok"


@pytest.mark.asyncio
async def test_cancel_wakes_waiter(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1"))
    waiter = asyncio.create_task(registry.await_response("cp-1"))
    await asyncio.sleep(0)

    registry.cancel("cp-1")

    with pytest.raises(OperationCancelledError):
        await waiter
    assert registry.history()[-1].status == InterruptStatus.cancelled


@pytest.mark.asyncio
async def test_await_unknown_checkpoint_is_not_found(registry: InterruptRegistry) -> None:
    with pytest.raises(InterruptNotFoundError):
        await registry.await_response("missing")


def test_mailbox_backpressure() -> None:
    registry = InterruptRegistry(sink=RecordingSink(), max_pending=2)
    for i in range(3):
        registry.register(_ask(f"cp-{i}", chat_id=str(i)))

    registry.submit_response(UserResponse(checkpoint_id="cp-0", answer="a"))
    registry.submit_response(UserResponse(checkpoint_id="cp-1", answer="b"))
    # Re-answering a checkpoint replaces its queued answer instead of taking a new slot.
    registry.submit_response(UserResponse(checkpoint_id="cp-1", answer="b2"))

    with pytest.raises(BackpressureError):
        registry.submit_response(UserResponse(checkpoint_id="cp-2", answer="c"))


@pytest.mark.asyncio
async def test_resubmitted_answer_replaces_queued_one(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1"))
    registry.submit_response(UserResponse(checkpoint_id="cp-1", answer="first"))
    registry.submit_response(UserResponse(checkpoint_id="cp-1", answer="second"))
    assert (await registry.await_response("cp-1")).answer == "second"


def test_different_turn_in_same_session_conflicts(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1"))
    with pytest.raises(InterruptConflictError):
        registry.register(_ask("cp-2"))
    assert registry.get_pending("telegram:42").checkpoint_id == "cp-1"


def test_nested_suspension_supersedes_previous_hop(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1"))
    nested = _ask("cp-1_resume_1")
    nested.original_checkpoint_id = "cp-1"
    registry.register(nested)

    pending = registry.get_pending("telegram:42")
    assert pending is nested
    assert pending.original_checkpoint_id == "cp-1"
    assert registry.get_by_checkpoint("cp-1") is None
    assert registry.pending_count == 1
    assert [h.status for h in registry.history()] == [InterruptStatus.resolved, InterruptStatus.pending]


def test_expired_live_request_does_not_block_new_turn(registry: InterruptRegistry) -> None:
    stale = _ask("cp-1")
    stale.expires_at = utcnow() - timedelta(seconds=1)
    registry.register(stale)

    registry.register(_ask("cp-2"))

    assert registry.get_pending("telegram:42").checkpoint_id == "cp-2"
    assert registry.history()[0].status == InterruptStatus.expired


def test_capacity_pressure_sweeps_expired_entries() -> None:
    registry = InterruptRegistry(sink=RecordingSink(), max_pending=1)
    stale = _ask("cp-old", chat_id="1")
    stale.expires_at = utcnow() - timedelta(seconds=1)
    registry.register(stale)

    registry.register(_ask("cp-new", chat_id="2"))

    assert registry.get_by_checkpoint("cp-old") is None
    assert registry.get_by_checkpoint("cp-new") is not None
    assert registry.pending_count == 1


def test_history_is_bounded_fifo() -> None:
    registry = InterruptRegistry(sink=RecordingSink(), max_history=3)
    for i in range(5):
        registry.register(_ask(f"cp-{i}", chat_id=str(i)))

    assert [h.checkpoint_id for h in registry.history()] == ["cp-2", "cp-3", "cp-4"]
    assert [h.checkpoint_id for h in registry.history(limit=2)] == ["cp-3", "cp-4"]
    # Eviction is by age only; every entry is still pending.
    assert registry.pending_count == 5


def test_history_returns_copies(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1", options=["a"]))
    registry.history()[0].options.append("mutated")
    assert registry.history()[0].options == ["a"]


def test_stats_counts_kinds_and_statuses(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1", chat_id="1"))
    registry.register(
        tool_confirm_interrupt(
            checkpoint_id="cp-2",
            interrupt_id="t",
            channel="cli",
            chat_id="2",
            session_key="cli:2",
            tool_name="exec",
            tool_args={"cmd": "ls"},
            risk_level="high",
        )
    )
    registry.cancel("cp-2")

    stats = registry.stats()
    assert stats["pending_count"] == 1
    assert stats["history_count"] == 2
    assert stats["by_kind"] == {"ask_user": 1, "tool_confirm": 1}
    assert stats["by_status"] == {"pending": 1, "cancelled": 1}


def test_clear_removes_without_status_change(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1"))
    registry.clear("cp-1")
    assert registry.get_pending("telegram:42") is None
    assert registry.history()[-1].status == InterruptStatus.pending


def test_typed_factories_use_default_priorities() -> None:
    common = dict(checkpoint_id="cp", interrupt_id="i", channel="c", chat_id="1", session_key="c:1")
    assert ask_user_interrupt(question="q", **common).priority == 10
    assert plan_approval_interrupt(plan_id="p", plan_content="", steps=["a"], **common).priority == 20
    assert (
        tool_confirm_interrupt(tool_name="t", tool_args={}, risk_level="low", **common).priority == 30
    )
    assert file_operation_interrupt(operation="write", file_path="/tmp/x", **common).priority == 30


def test_builtin_handlers_format_questions(registry: InterruptRegistry, sink: RecordingSink) -> None:
    registry.register(
        plan_approval_interrupt(
            checkpoint_id="cp-plan",
            interrupt_id="p",
            channel="cli",
            chat_id="1",
            session_key="cli:1",
            plan_id="plan-1",
            plan_content="",
            steps=["fetch", "summarise"],
        )
    )
    registry.register(
        file_operation_interrupt(
            checkpoint_id="cp-file",
            interrupt_id="f",
            channel="cli",
            chat_id="2",
            session_key="cli:2",
            operation="delete",
            file_path="/tmp/report.txt",
        )
    )

    plan_text, file_text = sink.texts
    assert "Steps:\n1. fetch\n2. summarise" in plan_text
    assert plan_text.startswith("❓ Please review and approve the following plan")
    assert "Operation: delete" in file_text
    assert "Path: /tmp/report.txt" in file_text


def test_generic_formatting_for_kind_without_handler(
    registry: InterruptRegistry, sink: RecordingSink
) -> None:
    registry.register(
        InterruptRequest(
            checkpoint_id="cp",
            channel="cli",
            chat_id="1",
            session_key="cli:1",
            question="Pick one",
            options=["x", "y"],
            kind=InterruptKind.custom,
        )
    )
    assert sink.texts == ['❓ Pick one\n\nOptions: ["x", "y"]']


def test_registered_handler_replaces_builtin(registry: InterruptRegistry, sink: RecordingSink) -> None:
    class ShoutingHandler(InterruptHandler):
        def format_question(self, request: InterruptRequest) -> str:
            return request.question.upper()

        def validate(self, response: UserResponse) -> None:
            if response.answer not in ("y", "n"):
                raise ResponseValidationError("y or n", checkpoint_id=response.checkpoint_id)

    registry.register_handler(InterruptKind.ask_user, ShoutingHandler())
    registry.register(_ask("cp-1"))

    assert sink.texts == ["❓ PROCEED?"]
    with pytest.raises(ResponseValidationError):
        registry.submit_response(UserResponse(checkpoint_id="cp-1", answer="maybe"))


def test_sink_failure_does_not_fail_registration() -> None:
    class BrokenSink:
        def publish(self, channel: str, chat_id: str, text: str) -> None:
            raise RuntimeError("channel down")

    registry = InterruptRegistry(sink=BrokenSink())
    registry.register(_ask("cp-1"))
    assert registry.get_by_checkpoint("cp-1") is not None


def test_duplicate_checkpoint_is_rejected(registry: InterruptRegistry) -> None:
    registry.register(_ask("cp-1", chat_id="1"))
    with pytest.raises(InterruptConflictError):
        registry.register(_ask("cp-1", chat_id="2"))

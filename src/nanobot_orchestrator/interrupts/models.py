"""
nanobot_orchestrator.interrupts.models

Data model for "awaiting human" suspensions.

Responsibilities:
- Define interrupt kinds/statuses (stable string values, used in audit stats).
- Define `InterruptRequest` (one outstanding suspension) and `UserResponse`.
- Provide typed factories with the default priority per kind.
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class InterruptKind(enum.StrEnum):
    ask_user = "ask_user"
    plan_approval = "plan_approval"
    tool_confirm = "tool_confirm"
    file_operation = "file_operation"
    custom = "custom"


class InterruptStatus(enum.StrEnum):
    pending = "pending"
    resolved = "resolved"
    cancelled = "cancelled"
    expired = "expired"


@dataclass(slots=True)
class InterruptRequest:
    """
    One outstanding suspension.

    `checkpoint_id` is the active resumable point; `original_checkpoint_id` is the point the
    turn first suspended at and stays stable across nested suspensions.
    """

    checkpoint_id: str
    interrupt_id: str = ""
    channel: str = ""
    chat_id: str = ""
    session_key: str = ""
    question: str = ""
    options: list[str] = field(default_factory=list)
    kind: InterruptKind | None = None
    status: InterruptStatus | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None
    priority: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    original_checkpoint_id: str = ""
    is_ask_user: bool = False
    # Which flow registered the request ("master", "supervisor", ...); audit only.
    origin: str = ""

    def __post_init__(self) -> None:
        if not self.original_checkpoint_id:
            self.original_checkpoint_id = self.checkpoint_id

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def snapshot(self) -> InterruptRequest:
        return replace(
            self,
            options=list(self.options),
            metadata=copy.deepcopy(self.metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkpoint_id": self.checkpoint_id,
            "original_checkpoint_id": self.original_checkpoint_id,
            "interrupt_id": self.interrupt_id,
            "channel": self.channel,
            "chat_id": self.chat_id,
            "session_key": self.session_key,
            "question": self.question,
            "options": list(self.options),
            "kind": str(self.kind) if self.kind else None,
            "status": str(self.status) if self.status else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "priority": self.priority,
            "metadata": copy.deepcopy(self.metadata),
            "is_ask_user": self.is_ask_user,
            "origin": self.origin,
        }


@dataclass(slots=True)
class UserResponse:
    checkpoint_id: str
    answer: str = ""
    approved: bool | None = None
    modified_data: dict[str, Any] | None = None
    timestamp: datetime | None = None


def ask_user_interrupt(
    *,
    checkpoint_id: str,
    interrupt_id: str,
    channel: str,
    chat_id: str,
    session_key: str,
    question: str,
    options: list[str] | None = None,
) -> InterruptRequest:
    return InterruptRequest(
        checkpoint_id=checkpoint_id,
        interrupt_id=interrupt_id,
        channel=channel,
        chat_id=chat_id,
        session_key=session_key,
        question=question,
        options=list(options or []),
        kind=InterruptKind.ask_user,
        status=InterruptStatus.pending,
        priority=10,
        is_ask_user=True,
    )


def plan_approval_interrupt(
    *,
    checkpoint_id: str,
    interrupt_id: str,
    channel: str,
    chat_id: str,
    session_key: str,
    plan_id: str,
    plan_content: str,
    steps: list[str],
) -> InterruptRequest:
    return InterruptRequest(
        checkpoint_id=checkpoint_id,
        interrupt_id=interrupt_id,
        channel=channel,
        chat_id=chat_id,
        session_key=session_key,
        question="Please review and approve the following plan",
        kind=InterruptKind.plan_approval,
        status=InterruptStatus.pending,
        priority=20,
        metadata={"plan_id": plan_id, "plan_content": plan_content, "steps": list(steps)},
    )


def tool_confirm_interrupt(
    *,
    checkpoint_id: str,
    interrupt_id: str,
    channel: str,
    chat_id: str,
    session_key: str,
    tool_name: str,
    tool_args: dict[str, Any],
    risk_level: str,
) -> InterruptRequest:
    return InterruptRequest(
        checkpoint_id=checkpoint_id,
        interrupt_id=interrupt_id,
        channel=channel,
        chat_id=chat_id,
        session_key=session_key,
        question=f"Confirm execution of tool: {tool_name}",
        kind=InterruptKind.tool_confirm,
        status=InterruptStatus.pending,
        priority=30,
        metadata={"tool_name": tool_name, "tool_args": dict(tool_args), "risk_level": risk_level},
    )


def file_operation_interrupt(
    *,
    checkpoint_id: str,
    interrupt_id: str,
    channel: str,
    chat_id: str,
    session_key: str,
    operation: str,
    file_path: str,
    content: str = "",
    backup: bool = False,
) -> InterruptRequest:
    return InterruptRequest(
        checkpoint_id=checkpoint_id,
        interrupt_id=interrupt_id,
        channel=channel,
        chat_id=chat_id,
        session_key=session_key,
        question=f"Confirm file operation: {operation} {file_path}",
        kind=InterruptKind.file_operation,
        status=InterruptStatus.pending,
        priority=30,
        metadata={
            "operation": operation,
            "file_path": file_path,
            "content": content,
            "backup": backup,
        },
    )


# --- Module Notes -----------------------------------------------------------
# `kind`, `status` and `created_at` are optional on construction so the registry can fill
# defaults at registration time; after `InterruptRegistry.register` they are always set.

"""
nanobot_orchestrator.interrupts.handlers

Per-kind interrupt handlers (question formatting + answer validation).

Responsibilities:
- Define the `InterruptHandler` extension point.
- Provide the built-in handlers for ask-user, plan approval, tool confirmation and file operations.
- Provide the generic fallback formatter used for kinds without a handler.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

from nanobot_orchestrator.errors import ResponseValidationError
from nanobot_orchestrator.interrupts.models import InterruptRequest, UserResponse


class InterruptHandler(ABC):
    def handle(self, request: InterruptRequest) -> UserResponse:
        """Skeleton response bound to the request's checkpoint."""
        return UserResponse(checkpoint_id=request.checkpoint_id)

    def validate(self, response: UserResponse) -> None:
        """Raise `ResponseValidationError` to reject an answer."""

    @abstractmethod
    def format_question(self, request: InterruptRequest) -> str: ...


class AskUserHandler(InterruptHandler):
    def validate(self, response: UserResponse) -> None:
        if not response.answer.strip():
            raise ResponseValidationError(
                "answer must not be empty", checkpoint_id=response.checkpoint_id
            )

    def format_question(self, request: InterruptRequest) -> str:
        question = request.question
        if request.options:
            question += "\n\nOptions:"
            for i, opt in enumerate(request.options, start=1):
                question += f"\n{i}. {opt}"
        return question


class PlanApprovalHandler(InterruptHandler):
    def format_question(self, request: InterruptRequest) -> str:
        question = request.question
        steps = request.metadata.get("steps")
        if isinstance(steps, list) and steps:
            question += "\n\nSteps:"
            for i, step in enumerate(steps, start=1):
                question += f"\n{i}. {step}"
        question += "\n\nReply 'approve' to continue, or describe the changes you want."
        return question


class ToolConfirmHandler(InterruptHandler):
    def format_question(self, request: InterruptRequest) -> str:
        tool_name = str(request.metadata.get("tool_name", ""))
        risk_level = str(request.metadata.get("risk_level", ""))
        tool_args = request.metadata.get("tool_args") or {}
        args_json = json.dumps(tool_args, indent=2, ensure_ascii=False, default=str)
        return (
            "⚠️ Tool execution requires confirmation\n\n"
            f"Tool: {tool_name}\n"
            f"Risk level: {risk_level}\n"
            f"Arguments:\n{args_json}\n\n"
            "Reply 'approve' to continue or 'cancel' to reject."
        )


class FileOperationHandler(InterruptHandler):
    def format_question(self, request: InterruptRequest) -> str:
        operation = str(request.metadata.get("operation", ""))
        file_path = str(request.metadata.get("file_path", ""))
        return (
            "📁 File operation requires confirmation\n\n"
            f"Operation: {operation}\n"
            f"Path: {file_path}\n\n"
            "Reply 'approve' to continue or 'cancel' to reject."
        )


def format_generic_question(request: InterruptRequest) -> str:
    question = request.question
    if request.options:
        question += f"\n\nOptions: {json.dumps(request.options, ensure_ascii=False)}"
    return question

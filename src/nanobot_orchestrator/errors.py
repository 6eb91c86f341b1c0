"""
nanobot_orchestrator.errors

Domain-specific exceptions shared by the registry, the resumable flow and the job manager.

Responsibilities:
- Give every recoverable outcome its own type so callers can branch without parsing text.
- Carry the identifiers a transport layer needs to build a user-facing message.
"""

from __future__ import annotations


class OrchestratorError(Exception):
    """Base class for every recoverable orchestration error."""


# --- Interrupt registry ------------------------------------------------------


class InterruptNotFoundError(OrchestratorError):
    def __init__(self, checkpoint_id: str) -> None:
        super().__init__(f"no pending interrupt for checkpoint {checkpoint_id!r}")
        self.checkpoint_id = checkpoint_id


class InterruptExpiredError(OrchestratorError):
    def __init__(self, checkpoint_id: str) -> None:
        super().__init__(f"interrupt for checkpoint {checkpoint_id!r} has expired")
        self.checkpoint_id = checkpoint_id


class ResponseValidationError(OrchestratorError):
    def __init__(self, reason: str, *, checkpoint_id: str = "") -> None:
        super().__init__(f"response validation failed: {reason}")
        self.reason = reason
        self.checkpoint_id = checkpoint_id


class BackpressureError(OrchestratorError):
    def __init__(self, checkpoint_id: str, capacity: int) -> None:
        super().__init__(
            f"response mailbox is full ({capacity} undelivered); retry checkpoint {checkpoint_id!r}"
        )
        self.checkpoint_id = checkpoint_id
        self.capacity = capacity


class InterruptConflictError(OrchestratorError):
    """A session already waits on a human for a different turn."""

    def __init__(self, session_key: str, live_checkpoint_id: str) -> None:
        super().__init__(
            f"session {session_key!r} already awaits an answer for {live_checkpoint_id!r}"
        )
        self.session_key = session_key
        self.live_checkpoint_id = live_checkpoint_id


# --- Job manager ---------------------------------------------------------------


class JobValidationError(OrchestratorError):
    pass


class AdmissionRejectedError(OrchestratorError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"background job limit reached ({limit} pending/running)")
        self.limit = limit


class OwnershipDeniedError(OrchestratorError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"requester does not own job {job_id}")
        self.job_id = job_id


class JobNotFoundError(OrchestratorError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"job {job_id} not found")
        self.job_id = job_id


# --- Execution -----------------------------------------------------------------


class TurnExecutionError(OrchestratorError):
    """The turn executor failed (model/tool/runtime error)."""


class OperationCancelledError(OrchestratorError):
    """A bounded wait ran out of time before it completed."""


# --- Module Notes -----------------------------------------------------------
# `asyncio.CancelledError` is deliberately not wrapped: task cancellation must keep
# propagating through awaits. `OperationCancelledError` only covers explicit timeouts.

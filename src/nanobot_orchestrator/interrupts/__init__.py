"""
nanobot_orchestrator.interrupts

Interrupt registry package ("awaiting human" bookkeeping).

Responsibilities:
- Interrupt data model and typed factories.
- Per-kind handlers (formatting + validation).
- The registry itself (paired pending index, response routing, audit history).
"""

from nanobot_orchestrator.interrupts.handlers import InterruptHandler
from nanobot_orchestrator.interrupts.models import (
    InterruptKind,
    InterruptRequest,
    InterruptStatus,
    UserResponse,
)
from nanobot_orchestrator.interrupts.registry import InterruptRegistry

__all__ = [
    "InterruptHandler",
    "InterruptKind",
    "InterruptRegistry",
    "InterruptRequest",
    "InterruptStatus",
    "UserResponse",
]

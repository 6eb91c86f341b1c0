"""
nanobot_orchestrator.orchestrator.outcomes

Tagged turn outcomes.

Responsibilities:
- `Completed` / `Suspended` results so callers never parse strings for control flow.
- Render/parse the legacy `INTERRUPT:<checkpoint>:<interrupt>` signal for transports that
  still exchange it as text.
"""

from __future__ import annotations

from dataclasses import dataclass

INTERRUPT_SIGNAL_PREFIX = "INTERRUPT:"


@dataclass(frozen=True, slots=True)
class Completed:
    reply: str


@dataclass(frozen=True, slots=True)
class Suspended:
    checkpoint_id: str
    interrupt_id: str
    original_checkpoint_id: str = ""
    question: str = ""

    def signal(self) -> str:
        return f"{INTERRUPT_SIGNAL_PREFIX}{self.checkpoint_id}:{self.interrupt_id}"


TurnOutcome = Completed | Suspended


def parse_interrupt_signal(text: str) -> Suspended | None:
    """
    Inverse of `Suspended.signal()`. Checkpoint ids may contain ':' (session keys do), so
    the interrupt id is taken from the last separator.
    """

    if not text.startswith(INTERRUPT_SIGNAL_PREFIX):
        return None
    body = text[len(INTERRUPT_SIGNAL_PREFIX) :]
    checkpoint_id, sep, interrupt_id = body.rpartition(":")
    if not sep or not checkpoint_id:
        return None
    return Suspended(checkpoint_id=checkpoint_id, interrupt_id=interrupt_id)

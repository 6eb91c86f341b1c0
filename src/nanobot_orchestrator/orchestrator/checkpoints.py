"""
nanobot_orchestrator.orchestrator.checkpoints

Checkpoint store boundary used by turn executors to persist continuation state.

Responsibilities:
- Define the key -> opaque bytes contract (keys are checkpoint ids); finished turns are deleted.
- Provide an in-memory reference implementation.
"""

from __future__ import annotations

import threading
from typing import Protocol


class CheckpointStore(Protocol):
    async def set(self, key: str, value: bytes) -> None: ...

    async def get(self, key: str) -> tuple[bytes | None, bool]: ...

    async def delete(self, key: str) -> None: ...


class InMemoryCheckpointStore:
    """Process-local store; contents are lost on restart."""

    def __init__(self) -> None:
        self._mem: dict[str, bytes] = {}
        self._lock = threading.Lock()

    async def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._mem[key] = bytes(value)

    async def get(self, key: str) -> tuple[bytes | None, bool]:
        with self._lock:
            if key not in self._mem:
                return None, False
            return self._mem[key], True

    async def delete(self, key: str) -> None:
        with self._lock:
            self._mem.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._mem)


# --- Module Notes -----------------------------------------------------------
# A durable deployment swaps this for a database-backed store with the same three methods;
# callers never interpret the stored bytes.

"""
nanobot_orchestrator.jobs.models

Background job data model.

Responsibilities:
- Job status values (terminal set included).
- `AgentTask`: the live, mutable record owned by its worker.
- `JobInfo`: the read-only query view; `ArchivedJob`: the persisted shape.
"""

from __future__ import annotations

import asyncio
import enum
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class JobStatus(enum.StrEnum):
    pending = "pending"
    running = "running"
    finished = "finished"
    failed = "failed"
    stopped = "stopped"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.finished, JobStatus.failed, JobStatus.stopped})


@dataclass(slots=True)
class AgentTask:
    id: str
    work: str
    created_at: datetime
    owner_key: str = ""
    channel: str = ""
    chat_id: str = ""
    status: JobStatus = JobStatus.pending
    result: str = ""
    logs: deque[str] = field(default_factory=lambda: deque(maxlen=10))
    stop_requested: bool = False
    checkpoint_id: str = ""
    worker: asyncio.Task[None] | None = None
    completed_at: datetime | None = None

    def append_log(self, line: str, *, at: datetime) -> None:
        self.logs.append(f"{at.strftime('%H:%M:%S')} {line}")

    def info(self) -> JobInfo:
        return JobInfo(
            id=self.id,
            status=self.status,
            result_summary=self.result,
            last_logs=list(self.logs),
            owner_key=self.owner_key,
            created_at=self.created_at,
            completed_at=self.completed_at,
        )

    def to_archive(self) -> ArchivedJob:
        return ArchivedJob(
            id=self.id,
            work=self.work,
            status=self.status,
            result=self.result,
            owner_key=self.owner_key,
            channel=self.channel,
            chat_id=self.chat_id,
            created_at=self.created_at,
            completed_at=self.completed_at,
        )


@dataclass(frozen=True, slots=True)
class JobInfo:
    id: str
    status: JobStatus
    result_summary: str = ""
    last_logs: list[str] = field(default_factory=list)
    owner_key: str = ""
    created_at: datetime | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": str(self.status),
            "result_summary": self.result_summary,
            "last_logs": list(self.last_logs),
            "owner_key": self.owner_key,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True, slots=True)
class ArchivedJob:
    id: str
    status: JobStatus
    created_at: datetime
    work: str = ""
    result: str = ""
    owner_key: str = ""
    channel: str = ""
    chat_id: str = ""
    completed_at: datetime | None = None

    def info(self) -> JobInfo:
        return JobInfo(
            id=self.id,
            status=self.status,
            result_summary=self.result,
            owner_key=self.owner_key,
            created_at=self.created_at,
            completed_at=self.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "work": self.work,
            "status": str(self.status),
            "result": self.result,
            "owner_key": self.owner_key,
            "channel": self.channel,
            "chat_id": self.chat_id,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ArchivedJob:
        return cls(
            id=str(raw["id"]),
            status=JobStatus(raw.get("status", JobStatus.failed)),
            created_at=_parse_dt(raw.get("created_at")) or datetime.min,
            work=str(raw.get("work") or ""),
            result=str(raw.get("result") or ""),
            owner_key=str(raw.get("owner_key") or ""),
            channel=str(raw.get("channel") or ""),
            chat_id=str(raw.get("chat_id") or ""),
            completed_at=_parse_dt(raw.get("completed_at")),
        )


def _parse_dt(value: Any) -> datetime | None:
    # safe_load already turns unquoted ISO timestamps into datetimes.
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None

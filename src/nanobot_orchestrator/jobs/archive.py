"""
nanobot_orchestrator.jobs.archive

Durable per-day archive of terminal background jobs.

Responsibilities:
- One YAML document per calendar day: `<root>/<YYYY-MM-DD>.yaml` holding `date`,
  `last_id` and `tasks`.
- Idempotent appends (a job id is written at most once per day file).
- Lookups for the job manager and id-counter restoration at startup.

All methods are blocking; the job manager calls them through `asyncio.to_thread`.
"""

from __future__ import annotations

import os
import threading
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from nanobot_orchestrator.jobs.models import ArchivedJob
from nanobot_orchestrator.observability.logging import get_logger

log = get_logger(__name__)


class JobArchive:
    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, day: date) -> Path:
        return self._root / f"{day.isoformat()}.yaml"

    def append(self, record: ArchivedJob, *, last_id: int) -> bool:
        """
        Add `record` to the file of its creation day. Returns False when the id is already
        there; `last_id` is still folded in (the stored counter never decreases).
        """

        day = record.created_at.date()
        path = self.path_for(day)
        with self._lock:
            doc = self._load(path) or {"date": day.isoformat(), "last_id": 0, "tasks": []}
            tasks: list[dict[str, Any]] = doc.setdefault("tasks", []) or []
            doc["tasks"] = tasks
            doc["last_id"] = max(int(doc.get("last_id") or 0), last_id)

            if any(str(t.get("id")) == record.id for t in tasks):
                self._dump(path, doc)
                log.info("job_already_archived", job_id=record.id, file=path.name)
                return False

            tasks.append(record.to_dict())
            self._dump(path, doc)

        log.info("job_persisted", job_id=record.id, status=str(record.status), file=path.name)
        return True

    def find(self, job_id: str) -> ArchivedJob | None:
        with self._lock:
            for path in self._files(newest_first=True):
                doc = self._load_quiet(path)
                for raw in doc.get("tasks") or []:
                    if str(raw.get("id")) == job_id:
                        return ArchivedJob.from_dict(raw)
        return None

    def list_day(self, day: date) -> list[ArchivedJob]:
        with self._lock:
            doc = self._load_quiet(self.path_for(day))
        return [ArchivedJob.from_dict(raw) for raw in doc.get("tasks") or []]

    def restore_counter(self) -> int:
        """Counter value from the most recent day file: stored `last_id`, else max id seen."""

        with self._lock:
            files = self._files(newest_first=True)
            if not files:
                log.info("job_counter_fresh", root=str(self._root))
                return 0
            path = files[0]
            doc = self._load_quiet(path)

        # 0 is a legitimate stored value once ids have wrapped.
        if doc.get("last_id") is not None:
            last_id = int(doc["last_id"])
            log.info("job_counter_restored", last_id=last_id, file=path.name)
            return last_id

        max_id = 0
        for raw in doc.get("tasks") or []:
            try:
                max_id = max(max_id, int(str(raw.get("id"))))
            except ValueError:
                continue
        log.info("job_counter_restored_from_tasks", max_id=max_id, file=path.name)
        return max_id

    def _files(self, *, newest_first: bool) -> list[Path]:
        if not self._root.is_dir():
            return []
        # YYYY-MM-DD names sort chronologically.
        return sorted(self._root.glob("*.yaml"), reverse=newest_first)

    def _load(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"job archive {path} is not a mapping")
        return data

    def _load_quiet(self, path: Path) -> dict[str, Any]:
        try:
            return self._load(path)
        except (OSError, ValueError, yaml.YAMLError):
            log.warning("job_archive_unreadable", file=str(path), exc_info=True)
            return {}

    def _dump(self, path: Path, doc: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".yaml.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            yaml.safe_dump(doc, f, sort_keys=False, allow_unicode=True)
        os.replace(tmp, path)


# --- Module Notes -----------------------------------------------------------
# A corrupt day file is skipped by reads but makes `append` raise: overwriting it would lose
# every job already recorded for that day.

"""
nanobot_orchestrator.jobs

Background jobs: independent agent turns run as asyncio tasks with bounded concurrency and a
per-day YAML archive.
"""

from nanobot_orchestrator.jobs.archive import JobArchive
from nanobot_orchestrator.jobs.manager import (
    BackgroundJobManager,
    completion_announcer,
    normalize_job_id,
)
from nanobot_orchestrator.jobs.models import AgentTask, ArchivedJob, JobInfo, JobStatus

__all__ = [
    "AgentTask",
    "ArchivedJob",
    "BackgroundJobManager",
    "JobArchive",
    "JobInfo",
    "JobStatus",
    "completion_announcer",
    "normalize_job_id",
]

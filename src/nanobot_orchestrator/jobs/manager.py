"""
nanobot_orchestrator.jobs.manager

Background job manager: runs independent agent turns as asyncio tasks.

Responsibilities:
- Admission control (bounded number of pending/running jobs) and cyclic 6-digit ids.
- Drive each job's worker through Pending -> Running -> {Finished | Failed | Stopped}.
- Persist terminal jobs to the per-day archive and announce completion.
- Owner-aware queries and cancellation.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from nanobot_orchestrator.bus import MessageSink
from nanobot_orchestrator.errors import (
    AdmissionRejectedError,
    JobNotFoundError,
    JobValidationError,
    OwnershipDeniedError,
    TurnExecutionError,
)
from nanobot_orchestrator.interrupts.models import utcnow
from nanobot_orchestrator.jobs.archive import JobArchive
from nanobot_orchestrator.jobs.models import AgentTask, JobInfo, JobStatus
from nanobot_orchestrator.observability.logging import bound_context, get_logger
from nanobot_orchestrator.orchestrator.events import ChatMessage, TurnExecutor
from nanobot_orchestrator.orchestrator.flow import next_stamp

log = get_logger(__name__)

ID_MODULUS = 1_000_000
DEFAULT_MAX_CONCURRENT = 3
DEFAULT_LOG_CAPACITY = 10
DEFAULT_MAX_STEPS = 10

BACKGROUND_JOB_INSTRUCTION = (
    "You are a background job agent. Complete the task on your own and do not ask the user "
    "any questions. If information from the user is strictly required, finish with a clear "
    "list of what is missing."
)

CompletionCallback = Callable[[str, str, str, JobStatus, str], Awaitable[None] | None]


def normalize_job_id(job_id: str) -> str:
    """'7' and ' 007 ' both become '000007'; non-numeric ids are only stripped."""

    text = job_id.strip()
    try:
        return f"{int(text):06d}"
    except ValueError:
        return text


def completion_announcer(sink: MessageSink) -> CompletionCallback:
    """`on_complete` callback that posts a one-line summary to the job's origin chat."""

    def announce(channel: str, chat_id: str, job_id: str, status: JobStatus, result: str) -> None:
        if not channel or not chat_id:
            return
        text = f"Background job {job_id} {status}"
        if result:
            text += f":\n{result}"
        sink.publish(channel, chat_id, text)

    return announce


class BackgroundJobManager:
    def __init__(
        self,
        *,
        executor: TurnExecutor,
        archive: JobArchive,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        timeout: timedelta | None = None,
        log_capacity: int = DEFAULT_LOG_CAPACITY,
        max_steps: int = DEFAULT_MAX_STEPS,
        on_complete: CompletionCallback | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._executor = executor
        self._archive = archive
        self._max_concurrent = max_concurrent if max_concurrent > 0 else DEFAULT_MAX_CONCURRENT
        self._timeout = timeout.total_seconds() if timeout and timeout.total_seconds() > 0 else None
        self._log_capacity = log_capacity if log_capacity > 0 else DEFAULT_LOG_CAPACITY
        self._max_steps = max_steps if max_steps > 0 else DEFAULT_MAX_STEPS
        self._on_complete = on_complete
        self._clock = clock

        # Live jobs only; terminal jobs move to the archive. Mutated on the event loop thread.
        self._jobs: dict[str, AgentTask] = {}
        self._active = 0
        # Raw issue count; ids are this value modulo ID_MODULUS.
        self._counter = archive.restore_counter()

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def start_job(
        self,
        work: str,
        *,
        owner_key: str = "",
        channel: str = "",
        chat_id: str = "",
    ) -> tuple[str, JobStatus]:
        """Must be called from a running event loop; the worker is spawned on it."""

        if not work or not work.strip():
            raise JobValidationError("job work must not be empty")
        if self._active >= self._max_concurrent:
            log.warning("job_admission_rejected", active=self._active, limit=self._max_concurrent)
            raise AdmissionRejectedError(self._max_concurrent)

        self._counter += 1
        job_id = f"{self._counter % ID_MODULUS:06d}"
        now = self._clock()
        task = AgentTask(
            id=job_id,
            work=work,
            created_at=now,
            owner_key=owner_key,
            channel=channel,
            chat_id=chat_id,
            logs=deque(maxlen=self._log_capacity),
        )
        task.append_log("job created", at=now)
        self._jobs[job_id] = task
        self._active += 1
        task.worker = asyncio.get_running_loop().create_task(
            self._run(task), name=f"background-job-{job_id}"
        )
        log.info("job_started", job_id=job_id, owner_key=owner_key, channel=channel)
        return job_id, task.status

    async def stop_job(self, job_id: str, requester_key: str = "") -> tuple[bool, JobStatus]:
        job_id = normalize_job_id(job_id)
        task = self._jobs.get(job_id)
        if task is None:
            # Terminal jobs have already left the live map.
            archived = await asyncio.to_thread(self._archive.find, job_id)
            if archived is None:
                raise JobNotFoundError(job_id)
            if archived.owner_key != requester_key:
                raise OwnershipDeniedError(job_id)
            return False, archived.status
        if task.owner_key != requester_key:
            raise OwnershipDeniedError(job_id)
        if task.status.terminal:
            return False, task.status

        self._request_stop(task)
        task.status = JobStatus.stopped
        task.append_log("job stopped", at=self._clock())
        log.info("job_stop_requested", job_id=job_id)
        return True, task.status

    def _request_stop(self, task: AgentTask) -> None:
        # A worker that has not started yet sees the flag on its first step; cancelling it
        # before then would skip its bookkeeping entirely.
        started = task.status != JobStatus.pending
        task.stop_requested = True
        if started and task.worker is not None:
            task.worker.cancel()

    async def get_job(self, job_id: str, requester_key: str | None = None) -> JobInfo:
        job_id = normalize_job_id(job_id)
        task = self._jobs.get(job_id)
        if task is not None:
            info = task.info()
        else:
            archived = await asyncio.to_thread(self._archive.find, job_id)
            if archived is None:
                raise JobNotFoundError(job_id)
            info = archived.info()
        if requester_key is not None and info.owner_key != requester_key:
            raise OwnershipDeniedError(job_id)
        return info

    async def list_jobs(self, requester_key: str | None = None) -> list[JobInfo]:
        infos = [task.info() for task in self._jobs.values()]
        seen = {info.id for info in infos}
        today = self._clock().date()
        archived = await asyncio.to_thread(self._archive.list_day, today)
        infos.extend(a.info() for a in archived if a.status.terminal and a.id not in seen)
        if requester_key is not None:
            infos = [i for i in infos if i.owner_key == requester_key]
        return infos

    async def wait(self, job_id: str) -> None:
        task = self._jobs.get(normalize_job_id(job_id))
        if task is None or task.worker is None:
            return
        await asyncio.wait({task.worker})

    async def shutdown(self) -> None:
        workers = []
        for task in list(self._jobs.values()):
            if task.worker is None or task.worker.done():
                continue
            if not task.stop_requested:
                self._request_stop(task)
            workers.append(task.worker)
        if workers:
            log.info("job_manager_shutdown", cancelled=len(workers))
            await asyncio.gather(*workers, return_exceptions=True)

    # --- worker -------------------------------------------------------------------

    async def _run(self, task: AgentTask) -> None:
        with bound_context(job_id=task.id):
            if task.stop_requested:
                await self._finish(task, reply="", failure=None)
                return
            task.status = JobStatus.running
            task.append_log("job running", at=self._clock())
            failure: str | None = None
            reply = ""
            try:
                async with asyncio.timeout(self._timeout):
                    reply = await self._execute(task)
            except TimeoutError:
                failure = f"deadline of {self._timeout:g}s exceeded"
            except asyncio.CancelledError:
                if not task.stop_requested:
                    raise
                current = asyncio.current_task()
                if current is not None:
                    current.uncancel()
            except Exception as e:
                failure = str(e) or type(e).__name__

            await self._finish(task, reply=reply, failure=failure)

    async def _execute(self, task: AgentTask) -> str:
        task.checkpoint_id = f"job_{task.id}_{next_stamp()}"
        messages = [
            ChatMessage(role="system", content=BACKGROUND_JOB_INSTRUCTION),
            ChatMessage(role="user", content=task.work),
        ]
        reply = ""
        suspended = False
        async for event in self._executor.run(
            messages, checkpoint_id=task.checkpoint_id, max_steps=self._max_steps
        ):
            if event.error is not None:
                raise TurnExecutionError(str(event.error)) from event.error
            if event.output:
                reply = event.output
            suspended = event.suspended
        if suspended:
            raise TurnExecutionError("job requires user input")
        return reply

    async def _finish(self, task: AgentTask, *, reply: str, failure: str | None) -> None:
        now = self._clock()
        if task.stop_requested:
            task.status = JobStatus.stopped
            task.append_log("job stopped", at=now)
        elif failure is not None:
            task.status = JobStatus.failed
            task.result = failure
            task.append_log(f"job failed: {failure}", at=now)
        else:
            task.status = JobStatus.finished
            task.result = reply
            task.append_log("job finished", at=now)
        task.completed_at = now
        log.info("job_terminal", status=str(task.status))

        try:
            await asyncio.to_thread(self._archive.append, task.to_archive(), last_id=self._counter)
        except Exception:
            log.exception("job_persist_failed")
        if task.checkpoint_id:
            try:
                await self._executor.finish(task.checkpoint_id)
            except Exception:
                log.exception("job_release_failed")

        self._jobs.pop(task.id, None)
        self._active -= 1
        await self._notify(task)

    async def _notify(self, task: AgentTask) -> None:
        if self._on_complete is None:
            return
        result = "" if task.status == JobStatus.stopped else task.result
        try:
            outcome: Any = self._on_complete(task.channel, task.chat_id, task.id, task.status, result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            log.exception("job_completion_callback_failed")


# --- Module Notes -----------------------------------------------------------
# Admission uses a running counter instead of scanning the live map; the counter only moves
# on the event loop, in `start_job` and in `_finish`.
# Jobs never wait on a human: a suspension ends the job as failed.

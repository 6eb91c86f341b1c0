"""
nanobot_orchestrator.api.routers.jobs

Background job endpoints. The `x-requester-key` header identifies the caller; jobs are only
visible to and stoppable by the key that started them.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from starlette.status import HTTP_202_ACCEPTED

from nanobot_orchestrator.api.deps import requester_key, runtime_dep
from nanobot_orchestrator.jobs.manager import normalize_job_id
from nanobot_orchestrator.runtime import Runtime

router = APIRouter(prefix="/v1/jobs", tags=["jobs"])


class StartJobRequest(BaseModel):
    work: str
    channel: str = ""
    chat_id: str = ""


class StartJobResponse(BaseModel):
    job_id: str
    status: str


class StopJobResponse(BaseModel):
    job_id: str
    stopped: bool
    status: str


@router.post("", response_model=StartJobResponse, status_code=HTTP_202_ACCEPTED)
async def start_job(
    body: StartJobRequest,
    owner: str = Depends(requester_key),
    runtime: Runtime = Depends(runtime_dep),
) -> StartJobResponse:
    job_id, status = runtime.jobs.start_job(
        body.work, owner_key=owner, channel=body.channel, chat_id=body.chat_id
    )
    return StartJobResponse(job_id=job_id, status=str(status))


@router.get("")
async def list_jobs(
    owner: str = Depends(requester_key),
    runtime: Runtime = Depends(runtime_dep),
) -> list[dict[str, Any]]:
    return [info.to_dict() for info in await runtime.jobs.list_jobs(owner)]


@router.get("/{job_id}")
async def get_job(
    job_id: str,
    owner: str = Depends(requester_key),
    runtime: Runtime = Depends(runtime_dep),
) -> dict[str, Any]:
    info = await runtime.jobs.get_job(job_id, owner)
    return info.to_dict()


@router.post("/{job_id}/stop", response_model=StopJobResponse)
async def stop_job(
    job_id: str,
    owner: str = Depends(requester_key),
    runtime: Runtime = Depends(runtime_dep),
) -> StopJobResponse:
    stopped, status = await runtime.jobs.stop_job(job_id, owner)
    return StopJobResponse(job_id=normalize_job_id(job_id), stopped=stopped, status=str(status))

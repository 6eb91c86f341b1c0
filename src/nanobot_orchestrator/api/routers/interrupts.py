"""
nanobot_orchestrator.api.routers.interrupts

Operator view of the interrupt registry.

Responsibilities:
- Look up the question a session is waiting on; answer or cancel it by checkpoint id.
- Expose the bounded audit history and summary stats.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from starlette.status import HTTP_404_NOT_FOUND

from nanobot_orchestrator.api.deps import runtime_dep
from nanobot_orchestrator.api.routers.messages import MessageResponse
from nanobot_orchestrator.orchestrator.outcomes import Completed
from nanobot_orchestrator.runtime import Runtime

router = APIRouter(prefix="/v1/interrupts", tags=["interrupts"])


class AnswerRequest(BaseModel):
    answer: str


@router.get("/pending/{session_key}")
async def get_pending(session_key: str, runtime: Runtime = Depends(runtime_dep)) -> dict[str, Any]:
    request = runtime.registry.get_pending(session_key)
    if request is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="No pending interrupt")
    return request.to_dict()


@router.post("/{checkpoint_id}/answer", response_model=MessageResponse)
async def answer(
    checkpoint_id: str,
    body: AnswerRequest,
    runtime: Runtime = Depends(runtime_dep),
) -> MessageResponse:
    outcome = await runtime.flow.resume(checkpoint_id, body.answer)
    if isinstance(outcome, Completed):
        return MessageResponse(status="completed", reply=outcome.reply)
    return MessageResponse(
        status="awaiting_human",
        checkpoint_id=outcome.checkpoint_id,
        interrupt_id=outcome.interrupt_id,
        question=outcome.question,
    )


@router.post("/{checkpoint_id}/cancel")
async def cancel(checkpoint_id: str, runtime: Runtime = Depends(runtime_dep)) -> dict[str, str]:
    if runtime.registry.get_by_checkpoint(checkpoint_id) is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="No pending interrupt")
    await runtime.flow.cancel(checkpoint_id)
    return {"checkpoint_id": checkpoint_id, "status": "cancelled"}


@router.get("/history")
async def history(
    limit: int = Query(default=50, ge=0, le=1000),
    runtime: Runtime = Depends(runtime_dep),
) -> list[dict[str, Any]]:
    return [r.to_dict() for r in runtime.registry.history(limit)]


@router.get("/stats")
async def stats(runtime: Runtime = Depends(runtime_dep)) -> dict[str, Any]:
    return runtime.registry.stats()

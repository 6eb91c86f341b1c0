"""
nanobot_orchestrator.api.routers.messages

Chat ingress: one inbound message drives one resumable turn.

Responsibilities:
- Run `ResumableFlow.process` (fresh turn, or the answer to the session's pending question).
- Report either the reply or the checkpoint the turn is now waiting on.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from nanobot_orchestrator.api.deps import runtime_dep
from nanobot_orchestrator.bus import InboundMessage
from nanobot_orchestrator.orchestrator.outcomes import Completed
from nanobot_orchestrator.runtime import Runtime

router = APIRouter(prefix="/v1/messages", tags=["messages"])


class MessageRequest(BaseModel):
    channel: str = Field(min_length=1, max_length=64)
    chat_id: str = Field(min_length=1, max_length=256)
    content: str
    sender_id: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    status: str
    reply: str | None = None
    checkpoint_id: str | None = None
    interrupt_id: str | None = None
    question: str | None = None


@router.post("", response_model=MessageResponse)
async def post_message(
    body: MessageRequest,
    runtime: Runtime = Depends(runtime_dep),
) -> MessageResponse:
    outcome = await runtime.flow.process(
        InboundMessage(
            channel=body.channel,
            chat_id=body.chat_id,
            content=body.content,
            sender_id=body.sender_id,
            metadata=body.metadata,
        )
    )
    if isinstance(outcome, Completed):
        return MessageResponse(status="completed", reply=outcome.reply)
    return MessageResponse(
        status="awaiting_human",
        checkpoint_id=outcome.checkpoint_id,
        interrupt_id=outcome.interrupt_id,
        question=outcome.question,
    )

"""
nanobot_orchestrator.orchestrator.graph

Minimal single-node chat graph for `LangGraphTurnExecutor`.

Responsibilities:
- Define the graph state (append-only message list).
- Wrap a responder callable as the graph's only node.
- Compile with an in-process checkpointer so interrupted threads can be resumed.

A responder that needs a human calls `langgraph.types.interrupt(...)` with an
`AskUserInfo`-shaped dict (`{"question": ..., "options": [...]}`); the answer comes back as
the return value of that call when the turn is resumed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Annotated, Any, TypedDict

from langgraph.checkpoint.memory import InMemorySaver
from langgraph.graph import END, StateGraph

Responder = Callable[[list[dict[str, Any]]], Awaitable[str]]


def append_messages(
    left: list[dict[str, Any]] | None, right: list[dict[str, Any]] | None
) -> list[dict[str, Any]]:
    if not left:
        return list(right or [])
    if not right:
        return list(left)
    return [*left, *right]


class ChatState(TypedDict, total=False):
    messages: Annotated[list[dict[str, Any]], append_messages]


async def echo_responder(messages: list[dict[str, Any]]) -> str:
    """Replies with the last user message; the default when no model is wired in."""

    for msg in reversed(messages):
        if msg.get("role") == "user":
            return str(msg.get("content", ""))
    return ""


def build_chat_graph(*, responder: Responder = echo_responder, checkpointer: Any = None):
    """
    Returns a compiled LangGraph runnable.
    """

    graph = StateGraph(ChatState)
    graph.add_node("respond", _bind_responder(responder))
    graph.set_entry_point("respond")
    graph.add_edge("respond", END)
    return graph.compile(checkpointer=checkpointer or InMemorySaver())


def _bind_responder(responder: Responder) -> Callable[[ChatState], Awaitable[ChatState]]:
    async def _respond(state: ChatState) -> ChatState:
        reply = await responder(list(state.get("messages", [])))
        return {"messages": [{"role": "assistant", "content": reply}]}

    return _respond

"""
nanobot_orchestrator.sessions

Conversational session history (the flow's view of the durable per-chat context).
"""

from nanobot_orchestrator.sessions.store import InMemorySessionStore, SessionStore, SqlSessionStore

__all__ = ["InMemorySessionStore", "SessionStore", "SqlSessionStore"]

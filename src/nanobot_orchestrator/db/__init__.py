"""
nanobot_orchestrator.db

Durable chat history: ORM models, async engine helpers, schema bootstrap and the session
repository behind `sessions.SqlSessionStore`.
"""

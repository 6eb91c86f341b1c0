"""
nanobot_orchestrator.observability

structlog setup, turn/job-scoped log context and the HTTP request-context middleware.
"""

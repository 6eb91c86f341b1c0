"""
nanobot_orchestrator.api

HTTP transport for the orchestrator.

Responsibilities:
- FastAPI app factory and router modules.
- Dependency wiring and request/response models.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Routers only translate HTTP to runtime calls; domain errors are mapped to status codes
# in one place (`api.app`).

"""
nanobot_orchestrator

Top-level package for the resumable agent-turn orchestrator.

Responsibilities:
- Expose package version metadata.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"


# --- Module Notes -----------------------------------------------------------
# Subpackages are imported explicitly; `runtime` pulls in LangGraph and SQLAlchemy, so
# nothing is re-exported here.

"""
nanobot_orchestrator.orchestrator

Resumable turn execution.

Responsibilities:
- Executor contract and tagged outcomes.
- The resumable flow (fresh turn, suspension, resumption), checkpoint storage and post-turn hooks.
- The LangGraph-backed turn executor.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Submodules are imported directly; this marker stays empty so the interrupt registry can
# depend on `orchestrator.checkpoints` without import cycles.

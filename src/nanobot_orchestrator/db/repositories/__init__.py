"""
nanobot_orchestrator.db.repositories

Data access for session history; import repositories from their submodules.
"""

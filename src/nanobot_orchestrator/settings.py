"""
nanobot_orchestrator.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the registry, flow and job manager.
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Env-driven configuration (prefix `NANOBOT_`).
    Defaults are safe for local dev; sizes <= 0 fall back to component defaults.
    """

    model_config = SettingsConfigDict(env_prefix="NANOBOT_", case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "nanobot-orchestrator"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Session history store
    database_url: str = "sqlite+aiosqlite:///./nanobot.db"

    # Job archives are written to `<workspace_dir>/tasks/<date>.yaml`.
    workspace_dir: Path = Path("./workspace")

    # Interrupt registry
    interrupt_default_timeout_seconds: int = 30 * 60
    interrupt_max_pending: int = 100
    interrupt_max_history: int = 1000

    # Resumable flow
    agent_max_steps: int = 10
    agent_origin: Literal["master", "supervisor"] = "master"
    agent_system_prompt: str = ""
    session_history_window: int = 10
    history_compaction_threshold: int = 40
    history_compaction_keep: int = Field(default=20, ge=0)

    # Background jobs
    job_max_concurrent: int = 3
    job_timeout_seconds: int = 0
    job_log_capacity: int = 10
    job_max_steps: int = 10

    @property
    def interrupt_default_timeout(self) -> timedelta | None:
        if self.interrupt_default_timeout_seconds <= 0:
            return None
        return timedelta(seconds=self.interrupt_default_timeout_seconds)

    @property
    def job_timeout(self) -> timedelta | None:
        if self.job_timeout_seconds <= 0:
            return None
        return timedelta(seconds=self.job_timeout_seconds)

    @property
    def tasks_dir(self) -> Path:
        return self.workspace_dir / "tasks"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Components accept plain values (timedelta, ints) rather than the Settings object so they
# can be constructed directly in tests; `runtime.build_runtime` does the mapping.

"""
nanobot_orchestrator.runtime

Composition root: builds every long-lived component explicitly from `Settings`.

Responsibilities:
- Wire bus, checkpoint store, interrupt registry, session store, hooks, resumable flow and
  background job manager together (no global singletons).
- Own startup (schema bootstrap) and shutdown (cancel jobs, dispose the DB engine).
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from nanobot_orchestrator.bus import MessageBus
from nanobot_orchestrator.db.init_db import init_db
from nanobot_orchestrator.db.session import create_engine, create_sessionmaker
from nanobot_orchestrator.interrupts.registry import InterruptRegistry
from nanobot_orchestrator.jobs.archive import JobArchive
from nanobot_orchestrator.jobs.manager import BackgroundJobManager, completion_announcer
from nanobot_orchestrator.observability.logging import get_logger
from nanobot_orchestrator.orchestrator.checkpoints import CheckpointStore, InMemoryCheckpointStore
from nanobot_orchestrator.orchestrator.events import TurnExecutor
from nanobot_orchestrator.orchestrator.flow import ResumableFlow
from nanobot_orchestrator.orchestrator.graph import build_chat_graph
from nanobot_orchestrator.orchestrator.hooks import HistoryCompactionHook, HookManager
from nanobot_orchestrator.orchestrator.langgraph_executor import LangGraphTurnExecutor
from nanobot_orchestrator.sessions.store import SqlSessionStore
from nanobot_orchestrator.settings import Settings

log = get_logger(__name__)


@dataclass(slots=True)
class Runtime:
    settings: Settings
    bus: MessageBus
    checkpoint_store: CheckpointStore
    registry: InterruptRegistry
    sessions: SqlSessionStore
    hooks: HookManager
    executor: TurnExecutor
    flow: ResumableFlow
    jobs: BackgroundJobManager
    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]

    async def start(self) -> None:
        await init_db(self.engine)
        log.info(
            "runtime_started",
            env=self.settings.env,
            origin=self.settings.agent_origin,
            tasks_dir=str(self.settings.tasks_dir),
        )

    async def close(self) -> None:
        await self.jobs.shutdown()
        await self.engine.dispose()
        log.info("runtime_closed")


def build_runtime(settings: Settings, *, executor: TurnExecutor | None = None) -> Runtime:
    engine = create_engine(settings.database_url)
    sessionmaker = create_sessionmaker(engine)
    sessions = SqlSessionStore(sessionmaker)

    bus = MessageBus()
    checkpoint_store = InMemoryCheckpointStore()
    registry = InterruptRegistry(
        sink=bus,
        default_timeout=settings.interrupt_default_timeout,
        max_pending=settings.interrupt_max_pending,
        max_history=settings.interrupt_max_history,
        checkpoint_store=checkpoint_store,
    )
    if executor is None:
        executor = LangGraphTurnExecutor(
            build_chat_graph(), checkpoint_store=checkpoint_store, sessions=sessions
        )

    hooks = HookManager(
        [
            HistoryCompactionHook(
                sessions,
                threshold=settings.history_compaction_threshold,
                keep=settings.history_compaction_keep,
            )
        ]
    )
    flow = ResumableFlow(
        registry=registry,
        executor=executor,
        sessions=sessions,
        hooks=hooks,
        origin=settings.agent_origin,
        max_steps=settings.agent_max_steps,
        history_window=settings.session_history_window,
        system_prompt=settings.agent_system_prompt,
    )
    jobs = BackgroundJobManager(
        executor=executor,
        archive=JobArchive(settings.tasks_dir),
        max_concurrent=settings.job_max_concurrent,
        timeout=settings.job_timeout,
        log_capacity=settings.job_log_capacity,
        max_steps=settings.job_max_steps,
        on_complete=completion_announcer(bus),
    )
    return Runtime(
        settings=settings,
        bus=bus,
        checkpoint_store=checkpoint_store,
        registry=registry,
        sessions=sessions,
        hooks=hooks,
        executor=executor,
        flow=flow,
        jobs=jobs,
        engine=engine,
        sessionmaker=sessionmaker,
    )

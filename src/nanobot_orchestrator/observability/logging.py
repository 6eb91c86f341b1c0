"""
nanobot_orchestrator.observability.logging

Structured logging configuration for the orchestrator.

Responsibilities:
- Configure `structlog` (JSON in prod/test, console rendering in dev).
- Provide bound loggers and helpers that scope turn/job identifiers into contextvars.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog


def configure_logging(*, service_name: str, level: str, json_logs: bool = True) -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_service_name(service_name),
            structlog.processors.dict_tracebacks,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _add_service_name(service_name: str):
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def bound_context(**fields: Any) -> Iterator[None]:
    """
    Bind identifiers (session_key, checkpoint_id, job_id, ...) for the duration of a turn.

    Only the keys bound here are removed on exit, so request-level context bound by the
    HTTP middleware survives nested turns.
    """

    clean = {k: v for k, v in fields.items() if v not in (None, "")}
    structlog.contextvars.bind_contextvars(**clean)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*clean.keys())


# --- Module Notes -----------------------------------------------------------
# Background job workers run as separate asyncio tasks; each task copies the contextvars
# of its creator, so job ids bound inside a worker never leak into the request that
# started it.

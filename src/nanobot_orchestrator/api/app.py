"""
nanobot_orchestrator.api.app

FastAPI app factory for the orchestrator service.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Build (or accept) the `Runtime` and tie its lifecycle to the process.
- Map domain errors to HTTP status codes in one place.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status

from nanobot_orchestrator import __version__
from nanobot_orchestrator.api.routers.health import router as health_router
from nanobot_orchestrator.api.routers.interrupts import router as interrupts_router
from nanobot_orchestrator.api.routers.jobs import router as jobs_router
from nanobot_orchestrator.api.routers.messages import router as messages_router
from nanobot_orchestrator.errors import (
    AdmissionRejectedError,
    BackpressureError,
    InterruptConflictError,
    InterruptExpiredError,
    InterruptNotFoundError,
    JobNotFoundError,
    JobValidationError,
    OperationCancelledError,
    OrchestratorError,
    OwnershipDeniedError,
    ResponseValidationError,
    TurnExecutionError,
)
from nanobot_orchestrator.observability.logging import configure_logging, get_logger
from nanobot_orchestrator.observability.middleware import RequestContextMiddleware
from nanobot_orchestrator.orchestrator.events import TurnExecutor
from nanobot_orchestrator.runtime import Runtime, build_runtime
from nanobot_orchestrator.settings import Settings

log = get_logger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[OrchestratorError], int], ...] = (
    (InterruptNotFoundError, status.HTTP_404_NOT_FOUND),
    (JobNotFoundError, status.HTTP_404_NOT_FOUND),
    (InterruptExpiredError, status.HTTP_410_GONE),
    # 422 by value: Starlette renamed its constant between releases.
    (ResponseValidationError, 422),
    (JobValidationError, 422),
    (BackpressureError, status.HTTP_429_TOO_MANY_REQUESTS),
    (AdmissionRejectedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (InterruptConflictError, status.HTTP_409_CONFLICT),
    (OwnershipDeniedError, status.HTTP_403_FORBIDDEN),
    (TurnExecutionError, status.HTTP_502_BAD_GATEWAY),
    (OperationCancelledError, status.HTTP_504_GATEWAY_TIMEOUT),
)


def status_for(exc: OrchestratorError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(
    *,
    settings: Settings,
    executor: TurnExecutor | None = None,
    runtime: Runtime | None = None,
) -> FastAPI:
    configure_logging(
        service_name=settings.service_name,
        level=settings.log_level,
        json_logs=settings.env != "dev",
    )

    app = FastAPI(
        title="Nanobot Orchestrator",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )

    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(messages_router)
    app.include_router(interrupts_router)
    app.include_router(jobs_router)

    if runtime is not None:
        app.state.runtime = runtime

    @app.exception_handler(OrchestratorError)
    async def _orchestrator_error(request: Request, exc: OrchestratorError) -> JSONResponse:
        code = status_for(exc)
        log.warning("request_failed", error=type(exc).__name__, status_code=code, detail=str(exc))
        return JSONResponse(status_code=code, content={"detail": str(exc)})

    @app.on_event("startup")
    async def _startup() -> None:
        if getattr(app.state, "runtime", None) is None:
            app.state.runtime = build_runtime(settings, executor=executor)
        await app.state.runtime.start()
        log.info("startup", env=settings.env)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        rt = getattr(app.state, "runtime", None)
        if rt is not None:
            await rt.close()
        log.info("shutdown")

    return app

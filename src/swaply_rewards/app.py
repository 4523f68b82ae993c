from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from swaply_rewards.core.settings import settings
from swaply_rewards.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.rewards.errors import RewardError
from .workers import RewardAuditWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    audit_worker = RewardAuditWorker(
        session_factory=_session_factory,
        interval_seconds=settings.reward_audit_interval_seconds,
    )
    app.state.reward_audit_worker = audit_worker

    audit_enabled = settings.reward_audit_worker_enabled
    if audit_enabled:
        audit_worker.start()
    else:
        logger.info("Reward audit worker disabled", reason="reward_audit_worker_enabled is false")

    try:
        yield
    finally:
        if audit_enabled and audit_worker.is_running:
            await audit_worker.stop()


async def reward_error_handler(request: Request, exc: RewardError) -> JSONResponse:
    log = logger.bind(path=request.url.path, code=exc.code, status_code=exc.status_code)
    if exc.status_code >= 500:
        log.error("Reward request failed", message=exc.message)
    else:
        log.info("Reward request rejected", message=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.as_payload()})


def create_app() -> FastAPI:
    """Application factory for the Swaply rewards service."""
    configure_logging(
        service_name="swaply-rewards",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Swaply Rewards API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="swaply-rewards",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.add_exception_handler(RewardError, reward_error_handler)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app

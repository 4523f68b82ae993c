from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from swaply_rewards.core.settings import settings
from swaply_rewards.db.session import get_session


router = APIRouter(prefix="/health")


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    components["database"] = await _evaluate_database(session)
    if components["database"].status == "error":
        status = "error"

    audit_worker = getattr(request.app.state, "reward_audit_worker", None)
    if settings.reward_audit_worker_enabled and audit_worker is not None:
        running = bool(getattr(audit_worker, "is_running", False))
        worker_status: Literal["ready", "starting", "disabled", "error"] = "ready" if running else "starting"
        detail = None if running else "Reward audit worker not running"
        last_error = getattr(audit_worker, "last_error", None)
        if last_error:
            worker_status = "error"
            detail = last_error
        if worker_status != "ready" and status == "ready":
            status = "degraded"
        components["reward_audit"] = ComponentStatus(status=worker_status, detail=detail)
    else:
        components["reward_audit"] = ComponentStatus(
            status="disabled",
            detail="Reward audit worker disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)


async def _evaluate_database(session: AsyncSession) -> ComponentStatus:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        return ComponentStatus(status="error", detail=f"Database unreachable ({error.__class__.__name__})")
    return ComponentStatus(status="ready")

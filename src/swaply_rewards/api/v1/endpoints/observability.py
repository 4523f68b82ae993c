"""Observability endpoints for the reward ledger."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from swaply_rewards.api.dependencies.security import require_operator_api_key
from swaply_rewards.observability.rewards import get_reward_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/rewards",
    dependencies=[Depends(require_operator_api_key)],
    summary="Reward ledger observability snapshot",
)
async def get_reward_snapshot() -> dict[str, object]:
    """Aggregated qualification, grant, spin, refund, and audit counters (requires operator API key)."""
    return get_reward_store().snapshot().as_dict()

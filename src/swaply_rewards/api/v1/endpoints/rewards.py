"""API endpoints for listing rewards, spins, and the reward center."""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from swaply_rewards.api.dependencies.security import require_operator_api_key
from swaply_rewards.api.dependencies.session import require_member_identity
from swaply_rewards.db.session import get_session
from swaply_rewards.services.auth import Identity
from swaply_rewards.services.rewards import (
    ListingRewardOutcome,
    RewardCenterState,
    RewardService,
    SpinOutcome,
)
from swaply_rewards.services.rewards.audit import RewardAuditService
from swaply_rewards.services.rewards.campaigns import PoolItem
from swaply_rewards.services.rewards.triggers import Progress


router = APIRouter(prefix="/rewards", tags=["Rewards"])


class ListingPublishedRequest(BaseModel):
    itemId: UUID
    deviceId: Optional[str] = None
    campaignCode: Optional[str] = None


class SpinRequest(BaseModel):
    clientRequestId: str = Field(..., min_length=1, max_length=128)
    campaignCode: Optional[str] = None
    itemId: Optional[UUID] = None
    deviceId: Optional[str] = None

    @field_validator("clientRequestId")
    @classmethod
    def _strip_request_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("clientRequestId must not be blank")
        return value


class CenterStateRequest(BaseModel):
    campaignCode: Optional[str] = None


class PoolItemResponse(BaseModel):
    id: UUID
    title: str
    kind: str
    weight: int
    reward: dict[str, Any]


class LoopProgressResponse(BaseModel):
    enabled: bool
    startAt: Optional[int] = None
    interval: Optional[int] = None
    nextAt: Optional[int] = None
    remaining: Optional[int] = None
    progressText: Optional[str] = None


class TriggeredGrantResponse(BaseModel):
    status: str
    trigger: dict[str, Any]
    reward: dict[str, Any]
    balanceAfter: Optional[int] = None


class ListingPublishedResponse(BaseModel):
    qualified: bool
    reason: Optional[str] = None
    campaignCode: str
    qualifiedCount: int
    pointBalance: int
    spinBalance: int
    rewardPool: list[PoolItemResponse]
    triggeredGrants: list[TriggeredGrantResponse]
    loopProgress: LoopProgressResponse
    milestoneSteps: list[int]
    milestoneSpinsEach: int
    milestoneProgressText: str
    spinGrantedNow: bool
    spinsAddedNow: int
    spinGrantTriggerN: Optional[int] = None
    reward: Optional[dict[str, Any]] = None
    qualification: dict[str, Any] = Field(default_factory=dict)


class SpinResponse(BaseModel):
    status: str
    spinsLeft: int
    pointBalance: int
    reward: Optional[dict[str, Any]] = None
    idempotent: bool
    reason: Optional[str] = None


class CenterStateResponse(BaseModel):
    campaignCode: str
    qualifiedCount: int
    pointBalance: int
    spinBalance: int
    rewardPool: list[PoolItemResponse]
    loopProgress: LoopProgressResponse
    milestoneSteps: list[int]
    milestoneSpinsEach: int
    milestoneProgressText: str


@router.post(
    "/listings/published",
    response_model=ListingPublishedResponse,
    summary="Process a published listing for campaign rewards",
)
async def listing_published(
    payload: ListingPublishedRequest,
    identity: Identity = Depends(require_member_identity),
    db: AsyncSession = Depends(get_session),
) -> ListingPublishedResponse:
    service = RewardService(db)
    outcome = await service.process_listing_published(
        identity.user_id,
        payload.itemId,
        device_id=payload.deviceId or identity.device_fingerprint,
        campaign_code=payload.campaignCode,
    )
    return _listing_response(outcome)


@router.post("/spin", response_model=SpinResponse, summary="Consume one spin and draw a reward")
async def spin(
    payload: SpinRequest,
    identity: Identity = Depends(require_member_identity),
    db: AsyncSession = Depends(get_session),
) -> SpinResponse:
    service = RewardService(db)
    outcome = await service.spin(
        identity.user_id,
        request_id=payload.clientRequestId,
        campaign_code=payload.campaignCode,
        listing_id=payload.itemId,
        device_id=payload.deviceId,
    )
    return _spin_response(outcome)


@router.get("/state", response_model=CenterStateResponse, summary="Reward center state")
async def center_state(
    campaign_code: Optional[str] = Query(None, alias="campaignCode"),
    identity: Identity = Depends(require_member_identity),
    db: AsyncSession = Depends(get_session),
) -> CenterStateResponse:
    state = await RewardService(db).center_state(identity.user_id, campaign_code=campaign_code)
    return _center_response(state)


@router.post("/state", response_model=CenterStateResponse, summary="Reward center state")
async def center_state_post(
    payload: CenterStateRequest | None = None,
    identity: Identity = Depends(require_member_identity),
    db: AsyncSession = Depends(get_session),
) -> CenterStateResponse:
    campaign_code = payload.campaignCode if payload else None
    state = await RewardService(db).center_state(identity.user_id, campaign_code=campaign_code)
    return _center_response(state)


@router.get(
    "/audit/entries",
    dependencies=[Depends(require_operator_api_key)],
    summary="Reward grants and spins needing manual remediation",
)
async def audit_entries(
    campaign_code: Optional[str] = Query(None, alias="campaignCode"),
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    report = await RewardAuditService(db).scan(campaign_code=campaign_code)
    return report.as_dict()


def _pool_response(pool: tuple[PoolItem, ...]) -> list[PoolItemResponse]:
    return [
        PoolItemResponse(
            id=item.id,
            title=item.title,
            kind=item.reward.kind.value,
            weight=item.weight,
            reward=item.reward.describe(),
        )
        for item in pool
    ]


def _loop_response(progress: Progress) -> LoopProgressResponse:
    return LoopProgressResponse(**progress.loop.as_dict(), progressText=progress.loop_text)


def _listing_response(outcome: ListingRewardOutcome) -> ListingPublishedResponse:
    triggers = outcome.campaign.triggers
    return ListingPublishedResponse(
        qualified=outcome.qualified,
        reason=outcome.reason,
        campaignCode=outcome.campaign.code,
        qualifiedCount=outcome.state.qualified_count,
        pointBalance=outcome.state.point_balance,
        spinBalance=outcome.state.spin_balance,
        rewardPool=_pool_response(outcome.pool),
        triggeredGrants=[TriggeredGrantResponse(**grant.describe()) for grant in outcome.grants],
        loopProgress=_loop_response(outcome.progress),
        milestoneSteps=list(outcome.progress.milestone_steps),
        milestoneSpinsEach=triggers.milestone_spins_each,
        milestoneProgressText=outcome.progress.milestone_text,
        spinGrantedNow=outcome.spin_granted_now,
        spinsAddedNow=outcome.spins_added_now,
        spinGrantTriggerN=outcome.spin_grant_trigger_n,
        reward=outcome.reward,
        qualification=outcome.qualification_detail,
    )


def _spin_response(outcome: SpinOutcome) -> SpinResponse:
    return SpinResponse(
        status=outcome.status.value,
        spinsLeft=outcome.state.spin_balance,
        pointBalance=outcome.state.point_balance,
        reward=outcome.reward,
        idempotent=outcome.idempotent,
        reason=outcome.reason,
    )


def _center_response(center: RewardCenterState) -> CenterStateResponse:
    return CenterStateResponse(
        campaignCode=center.campaign.code,
        qualifiedCount=center.state.qualified_count,
        pointBalance=center.state.point_balance,
        spinBalance=center.state.spin_balance,
        rewardPool=_pool_response(center.campaign.pool),
        loopProgress=_loop_response(center.progress),
        milestoneSteps=list(center.progress.milestone_steps),
        milestoneSpinsEach=center.campaign.triggers.milestone_spins_each,
        milestoneProgressText=center.progress.milestone_text,
    )

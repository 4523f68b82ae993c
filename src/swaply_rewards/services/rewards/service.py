"""Reward pipeline orchestration for listing publication, spins, and the reward center."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from swaply_rewards.core.settings import settings
from swaply_rewards.models.listing import Listing
from swaply_rewards.observability.rewards import RewardObservabilityStore, get_reward_store
from swaply_rewards.services.rewards.campaigns import CampaignConfig, PoolItem, load_campaign_config
from swaply_rewards.services.rewards.coupons import CouponIssuer
from swaply_rewards.services.rewards.errors import ForbiddenError, NotFoundError, ValidationError
from swaply_rewards.services.rewards.grants import GrantExecutor, GrantResult
from swaply_rewards.services.rewards.ledger import RewardLedgerStore
from swaply_rewards.services.rewards.qualification import ListingSnapshot, evaluate_listing
from swaply_rewards.services.rewards.spin import SpinOutcome, SpinResolutionEngine
from swaply_rewards.services.rewards.triggers import PointsFloor, Progress, describe_progress, resolve_triggers
from swaply_rewards.services.rewards.types import PointsReward, RewardStateSnapshot, SpinsReward


@dataclass
class ListingRewardOutcome:
    """Everything the client needs after a listing publication was processed."""

    qualified: bool
    state: RewardStateSnapshot
    campaign: CampaignConfig
    progress: Progress
    reason: str | None = None
    qualification_detail: dict[str, Any] = field(default_factory=dict)
    grants: list[GrantResult] = field(default_factory=list)
    reward: dict[str, Any] | None = None
    spin_granted_now: bool = False
    spins_added_now: int = 0
    spin_grant_trigger_n: int | None = None

    @property
    def pool(self) -> tuple[PoolItem, ...]:
        return self.campaign.pool


@dataclass(frozen=True)
class RewardCenterState:
    state: RewardStateSnapshot
    campaign: CampaignConfig
    progress: Progress


class RewardService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        rng: random.Random | None = None,
        observability: RewardObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._observability = observability or get_reward_store()
        self._store = RewardLedgerStore(db_session)
        coupons = CouponIssuer(db_session)
        self._grants = GrantExecutor(self._store, coupons, observability=self._observability)
        self._spins = SpinResolutionEngine(
            self._store,
            coupons,
            rng=rng,
            refund_max_attempts=settings.reward_spin_refund_max_attempts,
            observability=self._observability,
        )

    @property
    def store(self) -> RewardLedgerStore:
        return self._store

    async def process_listing_published(
        self,
        user_id: UUID,
        listing_id: UUID,
        *,
        device_id: str | None = None,
        campaign_code: str | None = None,
    ) -> ListingRewardOutcome:
        """Qualify a published listing, bump the counter once, and grant what the new count triggers."""

        campaign = await load_campaign_config(self._db, campaign_code or settings.default_campaign_code)
        log = logger.bind(user_id=str(user_id), campaign_code=campaign.code, listing_id=str(listing_id))

        listing = await self._db.get(Listing, listing_id)
        if listing is None:
            raise NotFoundError("Listing not found", code="listing_not_found", detail={"listingId": str(listing_id)})
        if listing.user_id != user_id:
            raise ForbiddenError("Not your listing", code="not_listing_owner", detail={"listingId": str(listing_id)})

        evaluation = evaluate_listing(ListingSnapshot.from_record(listing), campaign.qualification)
        if not evaluation.qualified:
            log.info("Listing did not qualify", failed_checks=list(evaluation.failures))
            self._observability.record_qualification("not_qualified")
            state = await self._store.read_state(user_id, campaign.code)
            return ListingRewardOutcome(
                qualified=False,
                reason=evaluation.reason,
                qualification_detail=evaluation.detail,
                state=state,
                campaign=campaign,
                progress=describe_progress(state.qualified_count, campaign.triggers),
            )

        if campaign.device_fingerprint_enabled and device_id:
            await self._guard_device(user_id, campaign.code, device_id, log)

        event = await self._store.record_qualifying_event(user_id, campaign.code, listing_id, device_id=device_id)
        if event.already_processed:
            log.info("Listing already processed")
            self._observability.record_qualification("already_processed")
            return ListingRewardOutcome(
                qualified=True,
                reason="already_processed",
                qualification_detail=evaluation.detail,
                state=event.state,
                campaign=campaign,
                progress=describe_progress(event.state.qualified_count, campaign.triggers),
            )

        self._observability.record_qualification("qualified")
        counter = event.state.qualified_count
        current_points = event.state.point_balance
        outcome = ListingRewardOutcome(
            qualified=True,
            qualification_detail=evaluation.detail,
            state=event.state,
            campaign=campaign,
            progress=describe_progress(counter, campaign.triggers),
        )

        for trigger in resolve_triggers(counter, campaign.triggers):
            if isinstance(trigger.reward, PointsFloor):
                amount = trigger.reward.amount_for(current_points)
                if amount <= 0:
                    log.info("Point guarantee already satisfied", point_balance=current_points)
                    continue
                result = await self._grants.grant_once(
                    user_id=user_id,
                    campaign_code=campaign.code,
                    key=trigger.key,
                    reward=PointsReward(amount=amount),
                    listing_id=listing_id,
                    reason="guarantee",
                )
                outcome.grants.append(result)
                if result.granted and result.balance_after is not None:
                    current_points = result.balance_after
                    outcome.reward = {
                        **result.reward.describe(),
                        "reason": "guarantee",
                        "pointBalance": result.balance_after,
                    }
                continue

            spins: SpinsReward = trigger.reward
            result = await self._grants.grant_once(
                user_id=user_id,
                campaign_code=campaign.code,
                key=trigger.key,
                reward=spins,
                listing_id=listing_id,
            )
            outcome.grants.append(result)
            if result.granted:
                outcome.spins_added_now += spins.amount
                if not outcome.spin_granted_now:
                    outcome.spin_granted_now = True
                    outcome.spin_grant_trigger_n = counter

        outcome.state = await self._store.read_state(user_id, campaign.code)
        log.info(
            "Qualifying listing processed",
            qualified_count=outcome.state.qualified_count,
            spins_added=outcome.spins_added_now,
            grants=len(outcome.grants),
        )
        return outcome

    async def spin(
        self,
        user_id: UUID,
        *,
        request_id: str,
        campaign_code: str | None = None,
        listing_id: UUID | None = None,
        device_id: str | None = None,
    ) -> SpinOutcome:
        request_id = (request_id or "").strip()
        if not request_id:
            raise ValidationError("clientRequestId is required", code="client_request_id_required")
        campaign = await load_campaign_config(self._db, campaign_code or settings.default_campaign_code)
        return await self._spins.spin(
            user_id=user_id,
            campaign=campaign,
            request_id=request_id,
            listing_id=listing_id,
            device_id=device_id,
        )

    async def center_state(self, user_id: UUID, *, campaign_code: str | None = None) -> RewardCenterState:
        campaign = await load_campaign_config(self._db, campaign_code or settings.default_campaign_code)
        state = await self._store.read_state(user_id, campaign.code)
        return RewardCenterState(
            state=state,
            campaign=campaign,
            progress=describe_progress(state.qualified_count, campaign.triggers),
        )

    async def _guard_device(self, user_id: UUID, campaign_code: str, device_id: str, log: Any) -> None:
        """Only a user's first qualifying listing is checked against the device map."""

        state = await self._store.read_state(user_id, campaign_code)
        if state.qualified_count > 0:
            return
        if await self._store.claim_device(device_id, user_id):
            return
        log.warning("First-listing reward blocked for shared device")
        self._observability.record_qualification("device_blocked")
        raise ForbiddenError(
            "This device has already claimed a first-listing reward",
            code="device_blocked",
            detail={"campaignCode": campaign_code},
        )


__all__ = ["ListingRewardOutcome", "RewardCenterState", "RewardService"]

"""Spin consumption, weighted draw, and idempotent issuance."""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence, TypeVar
from uuid import UUID

from loguru import logger

from swaply_rewards.core.settings import settings
from swaply_rewards.models.reward import RewardKind
from swaply_rewards.observability.rewards import RewardObservabilityStore, get_reward_store
from swaply_rewards.observability.tracing import get_tracer
from swaply_rewards.services.rewards.campaigns import CampaignConfig, PoolItem
from swaply_rewards.services.rewards.coupons import CouponIssuer
from swaply_rewards.services.rewards.errors import ConfigurationError, PartialFailureError, RewardError
from swaply_rewards.services.rewards.ledger import BalanceField, InsertOutcome, RewardLedgerStore
from swaply_rewards.services.rewards.types import CouponReward, PointsReward, RewardStateSnapshot


NO_SPINS_REASON = "no_spins"

_Weighted = TypeVar("_Weighted", bound=PoolItem)


class SpinStatus(str, Enum):
    RESOLVED = "resolved"
    REPLAYED = "replayed"
    PENDING = "pending"
    NO_SPINS = "no_spins"


@dataclass(frozen=True)
class SpinOutcome:
    status: SpinStatus
    reward: dict[str, Any] | None
    state: RewardStateSnapshot

    @property
    def idempotent(self) -> bool:
        return self.status in {SpinStatus.REPLAYED, SpinStatus.PENDING}

    @property
    def reason(self) -> str | None:
        if self.status is SpinStatus.NO_SPINS:
            return NO_SPINS_REASON
        if self.reward is not None and self.reward.get("reason") == NO_SPINS_REASON:
            return NO_SPINS_REASON
        return None


def pick_weighted(items: Sequence[_Weighted], rng: random.Random) -> _Weighted:
    """Draw in ``[1, total]`` and return the first item whose cumulative weight reaches it."""

    if not items:
        raise ConfigurationError("No reward pool configured", code="empty_pool")
    total = sum(item.weight for item in items)
    if total <= 0:
        raise ConfigurationError("Reward pool weights must sum to a positive total", code="invalid_pool_weight")

    draw = rng.randint(1, total)
    cumulative = 0
    for item in items:
        cumulative += item.weight
        if draw <= cumulative:
            return item
    return items[-1]


class SpinResolutionEngine:
    """Resolves one spin per (user, campaign, client request id)."""

    def __init__(
        self,
        store: RewardLedgerStore,
        coupons: CouponIssuer,
        *,
        rng: random.Random | None = None,
        refund_max_attempts: int | None = None,
        observability: RewardObservabilityStore | None = None,
    ) -> None:
        self._store = store
        self._coupons = coupons
        self._rng = rng or random.SystemRandom()
        self._refund_max_attempts = refund_max_attempts or settings.reward_spin_refund_max_attempts
        self._observability = observability or get_reward_store()

    async def spin(
        self,
        *,
        user_id: UUID,
        campaign: CampaignConfig,
        request_id: str,
        listing_id: UUID | None = None,
        device_id: str | None = None,
    ) -> SpinOutcome:
        log = logger.bind(user_id=str(user_id), campaign_code=campaign.code, request_id=request_id)

        with get_tracer().start_as_current_span("rewards.spin") as span:
            span.set_attribute("reward.campaign_code", campaign.code)

            reservation = await self._store.reserve_spin_request(
                user_id=user_id,
                campaign_code=campaign.code,
                request_id=request_id,
                listing_id=listing_id,
                device_id=device_id,
            )
            if reservation is InsertOutcome.DUPLICATE:
                return await self._replay(user_id, campaign.code, request_id, log)

            try:
                remaining = await self._store.consume_spin(user_id, campaign.code)
            except RewardError:
                await self._finalize(user_id, campaign.code, request_id, {"kind": "none", "reason": "consume_error"},
                                     failure_reason="consume_error", log=log)
                raise

            if remaining is None:
                payload = {"kind": RewardKind.NONE.value, "reason": NO_SPINS_REASON}
                await self._finalize(user_id, campaign.code, request_id, payload, failure_reason=NO_SPINS_REASON, log=log)
                log.info("Spin requested without balance")
                self._observability.record_spin(SpinStatus.NO_SPINS.value)
                state = await self._store.read_state(user_id, campaign.code)
                return SpinOutcome(status=SpinStatus.NO_SPINS, reward=payload, state=state)

            try:
                selected = pick_weighted(campaign.pool, self._rng)
            except ConfigurationError:
                await self._refund_and_finalize(user_id, campaign.code, request_id, "no_pool_refunded", log)
                raise

            span.set_attribute("reward.pool_item_id", str(selected.id))
            try:
                payload = await self._issue(user_id, campaign, request_id, selected, listing_id, device_id)
            except Exception as exc:
                log.error("Spin reward issuance failed", pool_item_id=str(selected.id), error=str(exc))
                reason = f"{selected.reward.kind.value}_error_refunded"
                await self._refund_and_finalize(user_id, campaign.code, request_id, reason, log)
                raise PartialFailureError(
                    "Spin reward could not be issued; the spin was refunded",
                    code="spin_issue_failed",
                    detail={"requestId": request_id, "poolItemId": str(selected.id)},
                ) from exc

            # The reward is out; a failed finalize is logged, never rolled back.
            await self._finalize(user_id, campaign.code, request_id, payload, log=log)
            self._observability.record_spin(f"{SpinStatus.RESOLVED.value}:{payload['kind']}")
            log.info("Spin resolved", pool_item_id=str(selected.id), reward_kind=payload["kind"])
            state = await self._read_state_after(user_id, campaign.code, remaining, payload)
            return SpinOutcome(status=SpinStatus.RESOLVED, reward=payload, state=state)

    async def _replay(self, user_id: UUID, campaign_code: str, request_id: str, log: Any) -> SpinOutcome:
        record = await self._store.read_spin_request(user_id, campaign_code, request_id)
        state = await self._store.read_state(user_id, campaign_code)
        if record is None or record.pending:
            log.info("Spin request still pending")
            self._observability.record_spin(SpinStatus.PENDING.value)
            return SpinOutcome(status=SpinStatus.PENDING, reward=None, state=state)
        log.info("Spin request replayed", result_type=record.result_type)
        self._observability.record_spin(SpinStatus.REPLAYED.value)
        reward = record.result_payload or {"kind": record.result_type}
        return SpinOutcome(status=SpinStatus.REPLAYED, reward=reward, state=state)

    async def _issue(
        self,
        user_id: UUID,
        campaign: CampaignConfig,
        request_id: str,
        selected: PoolItem,
        listing_id: UUID | None,
        device_id: str | None,
    ) -> dict[str, Any]:
        reward = selected.reward
        base = {"poolItemId": str(selected.id), "title": selected.title}
        if isinstance(reward, PointsReward):
            balance = await self._store.mutate_balance(user_id, campaign.code, BalanceField.POINTS, reward.amount)
            return {**reward.describe(), **base, "pointBalance": balance}
        if isinstance(reward, CouponReward):
            coupon = await self._coupons.issue(
                user_id,
                reward,
                source="spin_reward",
                reason="Spin reward",
                description="Spin reward",
                metadata={
                    "source": "spin_reward",
                    "request_id": request_id,
                    "listing_id": str(listing_id) if listing_id else None,
                    "device_id": device_id,
                    "campaign_code": campaign.code,
                    "pool_item_id": str(selected.id),
                },
            )
            return {**coupon.describe(), **base}
        return {**reward.describe(), **base}

    async def _refund_and_finalize(
        self,
        user_id: UUID,
        campaign_code: str,
        request_id: str,
        reason: str,
        log: Any,
    ) -> None:
        try:
            balance = await self._store.refund_spin(user_id, campaign_code, max_attempts=self._refund_max_attempts)
        except RewardError as exc:
            self._observability.record_refund(success=False)
            log.critical("Spin refund failed; manual correction required", reason=reason, error=str(exc))
            reason = "refund_failed"
        else:
            self._observability.record_refund(success=True)
            log.warning("Spin refunded", reason=reason, spins_left=balance)
        await self._finalize(
            user_id,
            campaign_code,
            request_id,
            {"kind": RewardKind.NONE.value, "reason": reason},
            failure_reason=reason,
            log=log,
        )

    async def _finalize(
        self,
        user_id: UUID,
        campaign_code: str,
        request_id: str,
        payload: dict[str, Any],
        *,
        failure_reason: str | None = None,
        log: Any,
    ) -> None:
        try:
            await self._store.finalize_spin_request(
                user_id=user_id,
                campaign_code=campaign_code,
                request_id=request_id,
                result_type=payload["kind"],
                payload=payload,
                failure_reason=failure_reason,
            )
        except RewardError as exc:
            log.error("Failed to finalize spin request", error=str(exc))

    async def _read_state_after(
        self,
        user_id: UUID,
        campaign_code: str,
        spins_left: int,
        payload: dict[str, Any],
    ) -> RewardStateSnapshot:
        try:
            return await self._store.read_state(user_id, campaign_code)
        except RewardError:
            return RewardStateSnapshot(
                user_id=user_id,
                campaign_code=campaign_code,
                spin_balance=spins_left,
                point_balance=int(payload.get("pointBalance") or 0),
            )


__all__ = ["NO_SPINS_REASON", "SpinOutcome", "SpinResolutionEngine", "SpinStatus", "pick_weighted"]

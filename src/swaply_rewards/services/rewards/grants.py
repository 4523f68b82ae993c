"""Exactly-once reward grants keyed by trigger."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from loguru import logger

from swaply_rewards.models.reward import RewardEntryStatus
from swaply_rewards.observability.rewards import RewardObservabilityStore, get_reward_store
from swaply_rewards.observability.tracing import get_tracer
from swaply_rewards.services.rewards.coupons import CouponIssuer
from swaply_rewards.services.rewards.errors import PartialFailureError, RewardError
from swaply_rewards.services.rewards.ledger import BalanceField, InsertOutcome, RewardLedgerStore
from swaply_rewards.services.rewards.triggers import TriggerKey
from swaply_rewards.services.rewards.types import CouponReward, GrantReward, IssuedCoupon, PointsReward, SpinsReward


class GrantStatus(str, Enum):
    GRANTED = "granted"
    ALREADY_GRANTED = "already_granted"


@dataclass(frozen=True)
class GrantResult:
    status: GrantStatus
    key: TriggerKey
    reward: GrantReward
    entry_id: UUID | None = None
    balance_after: int | None = None
    coupon: IssuedCoupon | None = None

    @property
    def granted(self) -> bool:
        return self.status is GrantStatus.GRANTED

    def describe(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": self.status.value,
            "trigger": self.key.as_dict(),
            "reward": self.coupon.describe() if self.coupon else self.reward.describe(),
        }
        if self.balance_after is not None:
            payload["balanceAfter"] = self.balance_after
        return payload


class GrantExecutor:
    """Reserve a grant row, mutate the balance, then record the outcome on the row.

    A row left ``failed`` (or ``pending`` after a crash) blocks the trigger for
    good; the audit service reports such rows for manual remediation.
    """

    def __init__(
        self,
        store: RewardLedgerStore,
        coupons: CouponIssuer,
        *,
        observability: RewardObservabilityStore | None = None,
    ) -> None:
        self._store = store
        self._coupons = coupons
        self._observability = observability or get_reward_store()

    async def grant_once(
        self,
        *,
        user_id: UUID,
        campaign_code: str,
        key: TriggerKey,
        reward: GrantReward,
        listing_id: UUID | None = None,
        reason: str | None = None,
    ) -> GrantResult:
        reason = reason or f"{key.family.value}_{key.counter}"
        base_payload: dict[str, Any] = {**reward.describe(), "reason": reason, "trigger": key.as_dict()}
        log = logger.bind(
            user_id=str(user_id),
            campaign_code=campaign_code,
            trigger_n=key.counter,
            trigger_kind=key.family.value,
            reward_kind=reward.kind.value,
        )

        with get_tracer().start_as_current_span("rewards.grant_once") as span:
            span.set_attribute("reward.trigger_n", key.counter)
            span.set_attribute("reward.trigger_kind", key.family.value)
            span.set_attribute("reward.kind", reward.kind.value)

            outcome, entry_id = await self._store.insert_reward_entry(
                user_id=user_id,
                campaign_code=campaign_code,
                trigger_n=key.counter,
                trigger_kind=key.family.value,
                result_type=reward.kind.value,
                listing_id=listing_id,
                payload={**base_payload, "status": RewardEntryStatus.PENDING.value},
            )
            if outcome is InsertOutcome.DUPLICATE or entry_id is None:
                log.info("Reward trigger already granted")
                self._observability.record_grant(reward.kind.value, GrantStatus.ALREADY_GRANTED.value)
                return GrantResult(status=GrantStatus.ALREADY_GRANTED, key=key, reward=reward)

            try:
                balance_after, coupon = await self._apply(
                    user_id, campaign_code, key, reward, listing_id=listing_id, reason=reason
                )
            except Exception as exc:
                log.error("Reward grant mutation failed", entry_id=str(entry_id), error=str(exc))
                await self._mark_failed(entry_id, base_payload, exc, log)
                self._observability.record_grant(reward.kind.value, RewardEntryStatus.FAILED.value)
                raise PartialFailureError(
                    "Reward grant failed after the trigger was reserved",
                    code="grant_failed",
                    detail={"entryId": str(entry_id), "trigger": key.as_dict(), "kind": reward.kind.value},
                ) from exc

            completed_payload = {**base_payload, "status": RewardEntryStatus.COMPLETED.value}
            if balance_after is not None:
                completed_payload["balanceAfter"] = balance_after
            if coupon is not None:
                completed_payload["coupon"] = coupon.describe()
            try:
                await self._store.update_reward_entry(
                    entry_id,
                    status=RewardEntryStatus.COMPLETED,
                    payload=completed_payload,
                )
            except RewardError as exc:
                # The balance already moved; the pending row still blocks a regrant.
                log.error("Reward granted but entry completion failed", entry_id=str(entry_id), error=str(exc))

            log.info("Reward granted", entry_id=str(entry_id), balance_after=balance_after)
            self._observability.record_grant(reward.kind.value, RewardEntryStatus.COMPLETED.value)
            return GrantResult(
                status=GrantStatus.GRANTED,
                key=key,
                reward=reward,
                entry_id=entry_id,
                balance_after=balance_after,
                coupon=coupon,
            )

    async def _apply(
        self,
        user_id: UUID,
        campaign_code: str,
        key: TriggerKey,
        reward: GrantReward,
        *,
        listing_id: UUID | None,
        reason: str,
    ) -> tuple[int | None, IssuedCoupon | None]:
        if isinstance(reward, SpinsReward):
            balance = await self._store.mutate_balance(user_id, campaign_code, BalanceField.SPINS, reward.amount)
            return balance, None
        if isinstance(reward, PointsReward):
            balance = await self._store.mutate_balance(user_id, campaign_code, BalanceField.POINTS, reward.amount)
            return balance, None
        if isinstance(reward, CouponReward):
            coupon = await self._coupons.issue(
                user_id,
                reward,
                source="listing_reward",
                reason=f"Listing #{key.counter} reward",
                description=f"Reward for publishing #{key.counter} qualified listing",
                metadata={
                    "source": "listing_reward",
                    "trigger_n": key.counter,
                    "listing_id": str(listing_id) if listing_id else None,
                    "campaign_code": campaign_code,
                    "reason": reason,
                },
            )
            return None, coupon
        raise TypeError(f"Unsupported grant reward {reward!r}")

    async def _mark_failed(
        self,
        entry_id: UUID,
        base_payload: dict[str, Any],
        exc: Exception,
        log: Any,
    ) -> None:
        try:
            await self._store.update_reward_entry(
                entry_id,
                status=RewardEntryStatus.FAILED,
                payload={**base_payload, "status": RewardEntryStatus.FAILED.value},
                error=str(exc),
            )
        except RewardError as mark_error:
            log.critical(
                "Could not mark reward entry failed; it remains pending",
                entry_id=str(entry_id),
                error=str(mark_error),
            )


__all__ = ["GrantExecutor", "GrantResult", "GrantStatus"]

"""Closed reward payload types shared by grants and spins."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union
from uuid import UUID

from swaply_rewards.models.reward import CouponScope, RewardKind


@dataclass(frozen=True)
class NoneReward:
    kind: RewardKind = RewardKind.NONE

    def describe(self) -> dict[str, Any]:
        return {"kind": self.kind.value}


@dataclass(frozen=True)
class PointsReward:
    amount: int
    kind: RewardKind = RewardKind.POINTS

    def describe(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "points": self.amount}


@dataclass(frozen=True)
class SpinsReward:
    amount: int
    kind: RewardKind = RewardKind.SPINS

    def describe(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "spins": self.amount}


@dataclass(frozen=True)
class CouponReward:
    scope: CouponScope
    duration_days: int
    kind: RewardKind = RewardKind.COUPON

    def describe(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "scope": self.scope.value, "durationDays": self.duration_days}


PoolReward = Union[NoneReward, PointsReward, CouponReward]
GrantReward = Union[PointsReward, SpinsReward, CouponReward]


@dataclass(frozen=True)
class RewardStateSnapshot:
    """Point-in-time copy of a user's counters for one campaign."""

    user_id: UUID
    campaign_code: str
    qualified_count: int = 0
    point_balance: int = 0
    spin_balance: int = 0
    last_qualified_listing_id: UUID | None = None


@dataclass(frozen=True)
class IssuedCoupon:
    id: UUID
    code: str
    coupon_type: str
    scope: CouponScope
    duration_days: int
    scope_applied: bool

    def describe(self) -> dict[str, Any]:
        return {
            "kind": RewardKind.COUPON.value,
            "couponId": str(self.id),
            "couponCode": self.code,
            "scope": self.scope.value,
            "durationDays": self.duration_days,
        }


__all__ = [
    "CouponReward",
    "GrantReward",
    "IssuedCoupon",
    "NoneReward",
    "PointsReward",
    "PoolReward",
    "RewardStateSnapshot",
    "SpinsReward",
]

"""Load campaign rules and the spin pool into typed configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swaply_rewards.core.settings import settings
from swaply_rewards.models.reward import (
    CouponScope,
    RewardCampaign,
    RewardKind,
    RewardPoolItem,
    RewardRule,
    RewardRuleType,
)
from swaply_rewards.services.rewards.errors import ConfigurationError, NotFoundError
from swaply_rewards.services.rewards.qualification import QualificationRules, build_rules
from swaply_rewards.services.rewards.triggers import (
    GuaranteeRule,
    LoopRule,
    MilestoneRule,
    TriggerConfig,
    build_loop_rule,
)
from swaply_rewards.services.rewards.types import CouponReward, NoneReward, PointsReward, PoolReward


DEFAULT_GUARANTEE_MIN_POINTS = 100
DEFAULT_LOOP_INTERVAL = 10


@dataclass(frozen=True)
class PoolItem:
    id: UUID
    title: str
    weight: int
    sort_order: int
    reward: PoolReward

    def describe(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "weight": self.weight,
            "reward": self.reward.describe(),
        }


@dataclass(frozen=True)
class CampaignConfig:
    id: UUID
    code: str
    qualification: QualificationRules
    triggers: TriggerConfig
    pool: tuple[PoolItem, ...]
    device_fingerprint_enabled: bool = False


def parse_pool_reward(item_type: str | None, payload: dict[str, Any] | None, *, item_id: Any = None) -> PoolReward:
    """Validate a pool row payload into the closed reward union."""

    payload = payload or {}
    try:
        kind = RewardKind(item_type)
    except ValueError as error:
        raise ConfigurationError(
            f"Unsupported pool item type {item_type!r}",
            code="invalid_pool_item",
            detail={"poolItemId": str(item_id)},
        ) from error

    if kind is RewardKind.NONE:
        return NoneReward()

    if kind is RewardKind.POINTS:
        points = _positive_int(payload.get("points"))
        if points is None:
            raise ConfigurationError(
                "Points pool item requires a positive 'points' payload",
                code="invalid_pool_item",
                detail={"poolItemId": str(item_id), "payload": payload},
            )
        return PointsReward(amount=points)

    if kind is RewardKind.COUPON:
        raw_scope = payload.get("scope") or payload.get("coupon_type") or CouponScope.CATEGORY.value
        try:
            scope = CouponScope(raw_scope)
        except ValueError as error:
            raise ConfigurationError(
                f"Unsupported coupon scope {raw_scope!r}",
                code="invalid_pool_item",
                detail={"poolItemId": str(item_id)},
            ) from error
        raw_days = payload.get("duration_days", payload.get("pin_days"))
        days = _positive_int(raw_days) if raw_days is not None else settings.reward_coupon_default_pin_days
        if days is None:
            raise ConfigurationError(
                "Coupon pool item requires a positive duration",
                code="invalid_pool_item",
                detail={"poolItemId": str(item_id), "payload": payload},
            )
        return CouponReward(scope=scope, duration_days=days)

    raise ConfigurationError(
        "Spins cannot be drawn from a reward pool",
        code="invalid_pool_item",
        detail={"poolItemId": str(item_id)},
    )


def build_pool(rows: Iterable[RewardPoolItem]) -> tuple[PoolItem, ...]:
    items: list[PoolItem] = []
    for row in rows:
        weight = _positive_int(row.weight)
        if weight is None:
            raise ConfigurationError(
                "Pool item weight must be a positive integer",
                code="invalid_pool_weight",
                detail={"poolItemId": str(row.id), "weight": row.weight},
            )
        items.append(
            PoolItem(
                id=row.id,
                title=row.title,
                weight=weight,
                sort_order=int(row.sort_order or 0),
                reward=parse_pool_reward(row.item_type, row.payload, item_id=row.id),
            )
        )
    return tuple(items)


def build_trigger_config(rules: Iterable[RewardRule]) -> TriggerConfig:
    milestones: list[MilestoneRule] = []
    loop: LoopRule | None = None
    guarantee: GuaranteeRule | None = None

    for rule in sorted(rules, key=lambda item: int(item.trigger_n or 0)):
        payload = rule.payload or {}
        if rule.trigger_type == RewardRuleType.SPIN_GRANT.value:
            spins = _positive_int(payload.get("spins"))
            if spins is not None:
                milestones.append(MilestoneRule(counter=int(rule.trigger_n), spins=spins))
        elif rule.trigger_type == RewardRuleType.SPIN_GRANT_LOOP.value:
            if loop is not None:
                logger.warning("Ignoring additional spin loop rule", rule_id=str(rule.id))
                continue
            loop = build_loop_rule(
                rule.trigger_n,
                payload.get("loop_interval", DEFAULT_LOOP_INTERVAL),
                payload.get("spins", 1),
            )
        elif rule.trigger_type == RewardRuleType.GUARANTEE_POINTS.value:
            min_points = _positive_int(payload.get("min_points")) or DEFAULT_GUARANTEE_MIN_POINTS
            guarantee = GuaranteeRule(counter=int(rule.trigger_n), min_points=min_points)
        else:
            logger.warning("Ignoring unknown reward rule type", rule_id=str(rule.id), trigger_type=rule.trigger_type)

    return TriggerConfig(milestones=tuple(milestones), loop=loop, guarantee=guarantee)


async def load_campaign_config(db: AsyncSession, code: str) -> CampaignConfig:
    """Resolve an enabled campaign with its rules and active pool."""

    stmt = select(RewardCampaign).where(RewardCampaign.code == code, RewardCampaign.is_enabled.is_(True))
    campaign = (await db.execute(stmt)).scalar_one_or_none()
    if campaign is None:
        raise NotFoundError("Campaign not found or disabled", code="campaign_not_found", detail={"campaignCode": code})

    rules_stmt = select(RewardRule).where(
        RewardRule.campaign_id == campaign.id,
        RewardRule.is_enabled.is_(True),
    )
    rule_rows = (await db.execute(rules_stmt)).scalars().all()

    pool_stmt = (
        select(RewardPoolItem)
        .where(RewardPoolItem.campaign_code == campaign.code, RewardPoolItem.is_active.is_(True))
        .order_by(RewardPoolItem.sort_order.asc(), RewardPoolItem.created_at.asc())
    )
    pool_rows = (await db.execute(pool_stmt)).scalars().all()

    raw_rules = dict(campaign.rules or {})
    return CampaignConfig(
        id=campaign.id,
        code=campaign.code,
        qualification=build_rules(
            raw_rules,
            default_min_price=settings.reward_default_min_listing_price,
            default_min_image_count=settings.reward_default_min_image_count,
            qualifying_statuses=settings.reward_qualifying_statuses,
        ),
        triggers=build_trigger_config(rule_rows),
        pool=build_pool(pool_rows),
        device_fingerprint_enabled=_truthy(raw_rules.get("device_fingerprint_enabled")),
    )


def _positive_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    # Fractional weights and amounts are rejected rather than truncated.
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"true", "1", "yes"}


__all__ = [
    "CampaignConfig",
    "PoolItem",
    "build_pool",
    "build_trigger_config",
    "load_campaign_config",
    "parse_pool_reward",
]

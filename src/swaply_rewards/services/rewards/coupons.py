"""Boost coupon issuance: base record, scope patch, audit line."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from swaply_rewards.core.settings import settings
from swaply_rewards.models.reward import Coupon, CouponScope, RewardLog
from swaply_rewards.services.rewards.errors import LedgerError
from swaply_rewards.services.rewards.types import CouponReward, IssuedCoupon


COUPON_TYPE_BY_SCOPE = {
    CouponScope.CATEGORY: "category",
    CouponScope.SEARCH: "featured",
    CouponScope.TRENDING: "featured",
}

_SCOPE_LABELS = {
    CouponScope.CATEGORY: "Category",
    CouponScope.SEARCH: "Search",
    CouponScope.TRENDING: "Trending",
}


def coupon_type_for(scope: CouponScope) -> str:
    return COUPON_TYPE_BY_SCOPE[scope]


def coupon_title(reward: CouponReward) -> str:
    return f"{reward.duration_days}-Day {_SCOPE_LABELS[reward.scope]} Boost"


class CouponIssuer:
    """Issues boost coupons; only the base record is required to succeed."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        valid_days: int | None = None,
        code_prefix: str | None = None,
    ) -> None:
        self._db = db_session
        self._valid_days = valid_days or settings.reward_coupon_valid_days
        self._code_prefix = code_prefix or settings.reward_coupon_code_prefix

    async def issue(
        self,
        user_id: UUID,
        reward: CouponReward,
        *,
        source: str,
        reason: str,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> IssuedCoupon:
        coupon_id, code = await self._insert_base(
            user_id, reward, source=source, description=description, metadata=metadata
        )
        scope_applied = await self._apply_scope(coupon_id, reward)
        await self._write_log(user_id, coupon_id, reward, source=source, reason=reason, metadata=metadata)
        return IssuedCoupon(
            id=coupon_id,
            code=code,
            coupon_type=coupon_type_for(reward.scope),
            scope=reward.scope,
            duration_days=reward.duration_days,
            scope_applied=scope_applied,
        )

    async def _insert_base(
        self,
        user_id: UUID,
        reward: CouponReward,
        *,
        source: str,
        description: str,
        metadata: dict[str, Any] | None,
    ) -> tuple[UUID, str]:
        coupon = Coupon(
            id=uuid4(),
            user_id=user_id,
            code=f"{self._code_prefix}-{uuid4().hex[:10].upper()}",
            source=source,
            coupon_type=coupon_type_for(reward.scope),
            title=coupon_title(reward),
            description=description,
            valid_until=datetime.now(timezone.utc) + timedelta(days=self._valid_days),
            metadata_json=dict(metadata or {}),
        )
        coupon_id, code = coupon.id, coupon.code
        self._db.add(coupon)
        try:
            await self._db.commit()
        except SQLAlchemyError as error:
            await self._db.rollback()
            raise LedgerError("Failed to issue coupon", code="coupon_issue_failed", detail={"source": source}) from error
        return coupon_id, code

    async def _apply_scope(self, coupon_id: UUID, reward: CouponReward) -> bool:
        stmt = (
            update(Coupon.__table__)
            .where(Coupon.__table__.c.id == coupon_id)
            .values(
                pin_scope=reward.scope.value,
                pin_days=reward.duration_days,
                duration_days=reward.duration_days,
                updated_at=func.now(),
            )
        )
        try:
            await self._db.execute(stmt)
            await self._db.commit()
        except SQLAlchemyError as error:
            await self._db.rollback()
            logger.warning(
                "Coupon scope patch failed; coupon keeps default placement",
                coupon_id=str(coupon_id),
                error=str(error),
            )
            return False
        return True

    async def _write_log(
        self,
        user_id: UUID,
        coupon_id: UUID,
        reward: CouponReward,
        *,
        source: str,
        reason: str,
        metadata: dict[str, Any] | None,
    ) -> None:
        log_metadata = {"pin_scope": reward.scope.value, "pin_days": reward.duration_days}
        if metadata and metadata.get("campaign_code"):
            log_metadata["campaign_code"] = metadata["campaign_code"]
        self._db.add(
            RewardLog(
                user_id=user_id,
                reward_type=source,
                reward_reason=reason,
                coupon_id=coupon_id,
                metadata_json=log_metadata,
            )
        )
        try:
            await self._db.commit()
        except SQLAlchemyError as error:
            await self._db.rollback()
            logger.warning("Coupon audit log write failed", coupon_id=str(coupon_id), error=str(error))


__all__ = ["COUPON_TYPE_BY_SCOPE", "CouponIssuer", "coupon_title", "coupon_type_for"]

"""Reward campaign, ledger, and spin models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from swaply_rewards.db.base import Base


class RewardRuleType(str, Enum):
    """Rule families configured per campaign."""

    SPIN_GRANT = "spin_grant"
    SPIN_GRANT_LOOP = "spin_grant_loop"
    GUARANTEE_POINTS = "guarantee_points"


class RewardKind(str, Enum):
    """Balances and artifacts a grant or spin can produce."""

    NONE = "none"
    POINTS = "points"
    SPINS = "spins"
    COUPON = "coupon"


class TriggerFamily(str, Enum):
    MILESTONE = "milestone"
    LOOP = "loop"
    GUARANTEE = "guarantee"


class RewardEntryStatus(str, Enum):
    """Lifecycle of a grant audit row."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CouponScope(str, Enum):
    """Placement a boost coupon pins a listing to."""

    CATEGORY = "category"
    SEARCH = "search"
    TRENDING = "trending"


class RewardCampaign(Base):
    """Independently configurable reward program."""

    __tablename__ = "reward_campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=True, server_default="true")
    rules = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class RewardRule(Base):
    """Trigger rule attached to a campaign (milestone, loop, guarantee)."""

    __tablename__ = "reward_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_id = Column(
        UUID(as_uuid=True),
        ForeignKey("reward_campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    trigger_type = Column(String(length=32), nullable=False)
    trigger_n = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    is_enabled = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class RewardPoolItem(Base):
    """Weighted spin outcome owned by campaign configuration."""

    __tablename__ = "reward_pool_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_code = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    item_type = Column(String(length=16), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    weight = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    sort_order = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class UserRewardState(Base):
    """Per user and campaign counters, mutated only through atomic statements."""

    __tablename__ = "user_reward_state"
    __table_args__ = (
        UniqueConstraint("user_id", "campaign_code", name="uq_user_reward_state_user_campaign"),
        CheckConstraint("qualified_count >= 0", name="ck_user_reward_state_qualified_count"),
        CheckConstraint("point_balance >= 0", name="ck_user_reward_state_point_balance"),
        CheckConstraint("spin_balance >= 0", name="ck_user_reward_state_spin_balance"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    campaign_code = Column(String, nullable=False)
    qualified_count = Column(Integer, nullable=False, default=0, server_default="0")
    point_balance = Column(Integer, nullable=False, default=0, server_default="0")
    spin_balance = Column(Integer, nullable=False, default=0, server_default="0")
    last_qualified_listing_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class RewardListingEvent(Base):
    """Immutable record that a listing qualified; its existence is the idempotency guard."""

    __tablename__ = "reward_listing_events"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "campaign_code",
            "listing_id",
            name="uq_reward_listing_events_user_campaign_listing",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    campaign_code = Column(String, nullable=False)
    listing_id = Column(UUID(as_uuid=True), nullable=False)
    device_fingerprint = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class RewardEntry(Base):
    """Append-only grant audit row; the unique key blocks double grants per trigger."""

    __tablename__ = "reward_entries"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "campaign_code",
            "trigger_n",
            "trigger_kind",
            "result_type",
            name="uq_reward_entries_trigger",
        ),
        Index("ix_reward_entries_status_created_at", "status", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    campaign_code = Column(String, nullable=False)
    trigger_n = Column(Integer, nullable=False)
    trigger_kind = Column(String(length=16), nullable=False)
    result_type = Column(String(length=16), nullable=False)
    listing_id = Column(UUID(as_uuid=True), nullable=True)
    status = Column(
        String(length=16),
        nullable=False,
        default=RewardEntryStatus.PENDING.value,
        server_default=RewardEntryStatus.PENDING.value,
    )
    result_payload = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class RewardSpinRequest(Base):
    """Client-keyed spin reservation; a null result_type means still pending."""

    __tablename__ = "reward_spin_requests"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "campaign_code",
            "request_id",
            name="uq_reward_spin_requests_user_campaign_request",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    campaign_code = Column(String, nullable=False)
    request_id = Column(String, nullable=False)
    listing_id = Column(UUID(as_uuid=True), nullable=True)
    device_id = Column(String, nullable=True)
    result_type = Column(String(length=16), nullable=True)
    result_payload = Column(JSON, nullable=True)
    failure_reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)


class RewardDeviceMap(Base):
    """First user that claimed a first-listing reward from a device."""

    __tablename__ = "reward_device_map"

    device_id = Column(String, primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    first_seen_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Coupon(Base):
    """Boost coupon issued as a reward."""

    __tablename__ = "coupons"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String, nullable=False, unique=True)
    source = Column(String, nullable=False)
    coupon_type = Column(String(length=16), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    pin_scope = Column(String(length=16), nullable=True)
    pin_days = Column(Integer, nullable=True)
    duration_days = Column(Integer, nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class RewardLog(Base):
    """Audit line written after a coupon reward is issued."""

    __tablename__ = "reward_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reward_type = Column(String, nullable=False)
    reward_reason = Column(String, nullable=True)
    coupon_id = Column(UUID(as_uuid=True), ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

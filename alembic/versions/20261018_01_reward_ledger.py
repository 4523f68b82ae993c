"""Reward ledger, campaign configuration, and spin tables.

Revision ID: 20261018_01
Revises: 
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*, with_updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)
        )
    return columns


def _user_fk(*, index: bool = False) -> sa.Column:
    return sa.Column(
        "user_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=index,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("session_token", sa.String(), nullable=False),
        _user_fk(index=True),
        sa.Column("expires", sa.DateTime(timezone=True), nullable=False),
        sa.Column("device_fingerprint", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_sessions_session_token", "sessions", ["session_token"], unique=True)

    op.create_table(
        "listings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk(index=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("images", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.text("true")),
        *_timestamps(),
    )

    op.create_table(
        "reward_campaigns",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("rules", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_reward_campaigns_code", "reward_campaigns", ["code"], unique=True)

    op.create_table(
        "reward_rules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "campaign_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("reward_campaigns.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("trigger_type", sa.String(length=32), nullable=False),
        sa.Column("trigger_n", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(with_updated=False),
        sa.CheckConstraint(
            "trigger_type IN ('spin_grant','spin_grant_loop','guarantee_points')",
            name="ck_reward_rules_trigger_type_valid",
        ),
    )

    op.create_table(
        "reward_pool_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("campaign_code", sa.String(), nullable=False, index=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("item_type", sa.String(length=16), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(with_updated=False),
        sa.CheckConstraint("item_type IN ('none','points','coupon')", name="ck_reward_pool_items_item_type_valid"),
        sa.CheckConstraint("weight > 0", name="ck_reward_pool_items_weight_positive"),
    )

    op.create_table(
        "user_reward_state",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk(),
        sa.Column("campaign_code", sa.String(), nullable=False),
        sa.Column("qualified_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("point_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("spin_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_qualified_listing_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "campaign_code", name="uq_user_reward_state_user_campaign"),
        sa.CheckConstraint("qualified_count >= 0", name="ck_user_reward_state_qualified_count"),
        sa.CheckConstraint("point_balance >= 0", name="ck_user_reward_state_point_balance"),
        sa.CheckConstraint("spin_balance >= 0", name="ck_user_reward_state_spin_balance"),
    )

    op.create_table(
        "reward_listing_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk(),
        sa.Column("campaign_code", sa.String(), nullable=False),
        sa.Column("listing_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("device_fingerprint", sa.String(), nullable=True),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint(
            "user_id",
            "campaign_code",
            "listing_id",
            name="uq_reward_listing_events_user_campaign_listing",
        ),
    )

    op.create_table(
        "reward_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk(),
        sa.Column("campaign_code", sa.String(), nullable=False),
        sa.Column("trigger_n", sa.Integer(), nullable=False),
        sa.Column("trigger_kind", sa.String(length=16), nullable=False),
        sa.Column("result_type", sa.String(length=16), nullable=False),
        sa.Column("listing_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("result_payload", sa.JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id",
            "campaign_code",
            "trigger_n",
            "trigger_kind",
            "result_type",
            name="uq_reward_entries_trigger",
        ),
        sa.CheckConstraint("status IN ('pending','completed','failed')", name="ck_reward_entries_status_valid"),
    )
    op.create_index("ix_reward_entries_status_created_at", "reward_entries", ["status", "created_at"])

    op.create_table(
        "reward_spin_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk(),
        sa.Column("campaign_code", sa.String(), nullable=False),
        sa.Column("request_id", sa.String(), nullable=False),
        sa.Column("listing_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("device_id", sa.String(), nullable=True),
        sa.Column("result_type", sa.String(length=16), nullable=True),
        sa.Column("result_payload", sa.JSON(), nullable=True),
        sa.Column("failure_reason", sa.String(), nullable=True),
        *_timestamps(with_updated=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "user_id",
            "campaign_code",
            "request_id",
            name="uq_reward_spin_requests_user_campaign_request",
        ),
    )

    op.create_table(
        "reward_device_map",
        sa.Column("device_id", sa.String(), primary_key=True),
        _user_fk(),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "coupons",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk(index=True),
        sa.Column("code", sa.String(), nullable=False, unique=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("coupon_type", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("pin_scope", sa.String(length=16), nullable=True),
        sa.Column("pin_days", sa.Integer(), nullable=True),
        sa.Column("duration_days", sa.Integer(), nullable=True),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "reward_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk(),
        sa.Column("reward_type", sa.String(), nullable=False),
        sa.Column("reward_reason", sa.String(), nullable=True),
        sa.Column(
            "coupon_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("coupons.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(with_updated=False),
    )


def downgrade() -> None:
    op.drop_table("reward_logs")
    op.drop_table("coupons")
    op.drop_table("reward_device_map")
    op.drop_table("reward_spin_requests")
    op.drop_index("ix_reward_entries_status_created_at", table_name="reward_entries")
    op.drop_table("reward_entries")
    op.drop_table("reward_listing_events")
    op.drop_table("user_reward_state")
    op.drop_table("reward_pool_items")
    op.drop_table("reward_rules")
    op.drop_index("ix_reward_campaigns_code", table_name="reward_campaigns")
    op.drop_table("reward_campaigns")
    op.drop_table("listings")
    op.drop_index("ix_sessions_session_token", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

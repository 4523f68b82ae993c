from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from swaply_rewards.app import create_app
from swaply_rewards.db.base import Base
from swaply_rewards.db.session import get_session
from swaply_rewards.models.auth_identity import AuthSession
from swaply_rewards.models.listing import Listing
from swaply_rewards.models.reward import (
    RewardCampaign,
    RewardPoolItem,
    RewardRule,
    RewardRuleType,
    UserRewardState,
)
from swaply_rewards.models.user import User
from swaply_rewards.observability.rewards import get_reward_store


DEFAULT_POOL: list[dict[str, Any]] = [
    {"title": "No luck", "item_type": "none", "payload": {}, "weight": 50},
    {"title": "10 Points", "item_type": "points", "payload": {"points": 10}, "weight": 30},
    {
        "title": "3-Day Category Boost",
        "item_type": "coupon",
        "payload": {"scope": "category", "duration_days": 3},
        "weight": 20,
    },
]


@dataclass(frozen=True)
class Member:
    user_id: UUID
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so every session gets its own connection."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'rewards.db'}",
        future=True,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture(autouse=True)
async def reset_reward_store():
    get_reward_store().reset()
    yield
    get_reward_store().reset()


@pytest_asyncio.fixture
async def campaign_factory(session_factory):
    async def create(
        *,
        code: str = "launch_v1",
        rules: dict[str, Any] | None = None,
        milestones: tuple[int, ...] = (1, 5, 10, 20, 30),
        guarantee: tuple[int, int] | None = (30, 100),
        loop: tuple[int, int] | None = (40, 10),
        pool: list[dict[str, Any]] | None = None,
        is_enabled: bool = True,
    ) -> UUID:
        async with session_factory() as session:
            campaign = RewardCampaign(
                code=code,
                name=code,
                is_enabled=is_enabled,
                rules=rules if rules is not None else {"min_listing_price": 50, "min_image_count": 2},
            )
            session.add(campaign)
            await session.flush()
            rows: list[Any] = [
                RewardRule(
                    campaign_id=campaign.id,
                    trigger_type=RewardRuleType.SPIN_GRANT.value,
                    trigger_n=step,
                    payload={"spins": 1},
                )
                for step in milestones
            ]
            if guarantee is not None:
                rows.append(
                    RewardRule(
                        campaign_id=campaign.id,
                        trigger_type=RewardRuleType.GUARANTEE_POINTS.value,
                        trigger_n=guarantee[0],
                        payload={"min_points": guarantee[1]},
                    )
                )
            if loop is not None:
                rows.append(
                    RewardRule(
                        campaign_id=campaign.id,
                        trigger_type=RewardRuleType.SPIN_GRANT_LOOP.value,
                        trigger_n=loop[0],
                        payload={"loop_interval": loop[1], "spins": 1},
                    )
                )
            for index, item in enumerate(DEFAULT_POOL if pool is None else pool):
                rows.append(RewardPoolItem(campaign_code=code, sort_order=index, **item))
            session.add_all(rows)
            await session.commit()
            return campaign.id

    return create


@pytest_asyncio.fixture
async def member_factory(session_factory):
    async def create(
        *,
        expires_in: timedelta = timedelta(days=1),
        device_fingerprint: str | None = None,
    ) -> Member:
        token = f"token-{uuid4().hex}"
        async with session_factory() as session:
            user = User(email=f"{uuid4().hex[:8]}@swaply.test", display_name="Member")
            session.add(user)
            await session.flush()
            session.add(
                AuthSession(
                    session_token=token,
                    user_id=user.id,
                    expires=datetime.now(timezone.utc) + expires_in,
                    device_fingerprint=device_fingerprint,
                )
            )
            await session.commit()
            return Member(user_id=user.id, token=token)

    return create


@pytest_asyncio.fixture
async def listing_factory(session_factory):
    async def create(user_id: UUID, **overrides: Any) -> UUID:
        values: dict[str, Any] = {
            "title": "Road bike",
            "category": "sports",
            "city": "Lagos",
            "price": Decimal("120.00"),
            "images": ["front.jpg", "side.jpg"],
            "status": "active",
            "is_active": True,
        }
        values.update(overrides)
        async with session_factory() as session:
            listing = Listing(user_id=user_id, **values)
            session.add(listing)
            await session.commit()
            return listing.id

    return create


@pytest_asyncio.fixture
async def state_factory(session_factory):
    async def create(
        user_id: UUID,
        *,
        campaign_code: str = "launch_v1",
        qualified_count: int = 0,
        point_balance: int = 0,
        spin_balance: int = 0,
    ) -> None:
        async with session_factory() as session:
            session.add(
                UserRewardState(
                    user_id=user_id,
                    campaign_code=campaign_code,
                    qualified_count=qualified_count,
                    point_balance=point_balance,
                    spin_balance=spin_balance,
                )
            )
            await session.commit()

    return create

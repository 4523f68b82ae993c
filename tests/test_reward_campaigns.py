from types import SimpleNamespace
from uuid import uuid4

import pytest

from swaply_rewards.models.reward import CouponScope
from swaply_rewards.services.rewards.campaigns import (
    build_pool,
    build_trigger_config,
    load_campaign_config,
    parse_pool_reward,
)
from swaply_rewards.services.rewards.errors import ConfigurationError, NotFoundError
from swaply_rewards.services.rewards.types import CouponReward, NoneReward, PointsReward


def _rule(trigger_type: str, trigger_n: int, payload: dict) -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), trigger_type=trigger_type, trigger_n=trigger_n, payload=payload)


def _pool_row(item_type: str, payload: dict, weight, sort_order: int = 0) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid4(),
        title=item_type,
        item_type=item_type,
        payload=payload,
        weight=weight,
        sort_order=sort_order,
    )


def test_parse_pool_reward_variants() -> None:
    assert parse_pool_reward("none", None) == NoneReward()
    assert parse_pool_reward("points", {"points": 25}) == PointsReward(amount=25)
    assert parse_pool_reward("coupon", {"scope": "search", "duration_days": 7}) == CouponReward(
        scope=CouponScope.SEARCH, duration_days=7
    )


def test_coupon_defaults_to_category_scope() -> None:
    reward = parse_pool_reward("coupon", {"pin_days": 5})

    assert reward == CouponReward(scope=CouponScope.CATEGORY, duration_days=5)


@pytest.mark.parametrize(
    ("item_type", "payload"),
    [
        ("points", {}),
        ("points", {"points": 0}),
        ("points", {"points": 2.5}),
        ("coupon", {"scope": "homepage"}),
        ("coupon", {"duration_days": -1}),
        ("spins", {"spins": 1}),
        ("jackpot", {}),
    ],
)
def test_invalid_pool_payloads_are_configuration_errors(item_type: str, payload: dict) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        parse_pool_reward(item_type, payload)

    assert exc_info.value.code == "invalid_pool_item"


def test_build_pool_rejects_non_positive_weight() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        build_pool([_pool_row("none", {}, 0)])

    assert exc_info.value.code == "invalid_pool_weight"


def test_build_pool_keeps_row_order() -> None:
    pool = build_pool([_pool_row("none", {}, 3, 0), _pool_row("points", {"points": 5}, 1, 1)])

    assert [item.weight for item in pool] == [3, 1]
    assert pool[1].reward == PointsReward(amount=5)


def test_build_trigger_config_from_rules() -> None:
    config = build_trigger_config(
        [
            _rule("spin_grant", 5, {"spins": 1}),
            _rule("spin_grant", 1, {"spins": 1}),
            _rule("spin_grant", 3, {"spins": 0}),
            _rule("guarantee_points", 30, {}),
            _rule("spin_grant_loop", 40, {"loop_interval": 10, "spins": 2}),
            _rule("mystery", 2, {}),
        ]
    )

    assert [rule.counter for rule in config.milestones] == [1, 5]
    assert config.guarantee is not None and config.guarantee.min_points == 100
    assert config.loop is not None and (config.loop.start_at, config.loop.interval, config.loop.spins_each) == (40, 10, 2)
    assert config.milestone_steps == (1, 5, 30)


@pytest.mark.asyncio
async def test_load_campaign_config_reads_rules_and_pool(session_factory, campaign_factory) -> None:
    await campaign_factory(rules={"min_listing_price": 80, "device_fingerprint_enabled": "true"})

    async with session_factory() as session:
        config = await load_campaign_config(session, "launch_v1")

    assert config.code == "launch_v1"
    assert config.device_fingerprint_enabled is True
    assert str(config.qualification.min_price) == "80"
    assert config.triggers.milestone_steps == (1, 5, 10, 20, 30)
    assert [item.title for item in config.pool] == ["No luck", "10 Points", "3-Day Category Boost"]
    assert config.triggers.guarantee is not None and config.triggers.guarantee.counter == 30


@pytest.mark.asyncio
async def test_disabled_campaign_is_not_found(session_factory, campaign_factory) -> None:
    await campaign_factory(is_enabled=False)

    async with session_factory() as session:
        with pytest.raises(NotFoundError) as exc_info:
            await load_campaign_config(session, "launch_v1")

    assert exc_info.value.code == "campaign_not_found"
    assert exc_info.value.status_code == 404

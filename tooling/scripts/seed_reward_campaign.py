"""Seed a reward campaign with its trigger rules and spin pool.

Re-running is safe: the campaign row is updated in place and its rules and
pool are replaced.

Example:
    python tooling/scripts/seed_reward_campaign.py --code launch_v1
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from loguru import logger


MILESTONE_STEPS = (1, 5, 10, 20, 30)

DEFAULT_POOL: list[dict[str, Any]] = [
    {"title": "Better luck next time", "item_type": "none", "payload": {}, "weight": 40},
    {"title": "10 Airtime Points", "item_type": "points", "payload": {"points": 10}, "weight": 30},
    {"title": "50 Airtime Points", "item_type": "points", "payload": {"points": 50}, "weight": 10},
    {
        "title": "3-Day Category Boost",
        "item_type": "coupon",
        "payload": {"scope": "category", "duration_days": 3},
        "weight": 12,
    },
    {
        "title": "3-Day Search Boost",
        "item_type": "coupon",
        "payload": {"scope": "search", "duration_days": 3},
        "weight": 5,
    },
    {
        "title": "7-Day Trending Boost",
        "item_type": "coupon",
        "payload": {"scope": "trending", "duration_days": 7},
        "weight": 3,
    },
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed a reward campaign, its rules, and its spin pool")
    parser.add_argument("--code", default="launch_v1", help="Campaign code to create or refresh.")
    parser.add_argument("--name", default="Launch rewards", help="Display name for the campaign.")
    parser.add_argument("--min-price", type=float, default=50.0, help="Minimum qualifying listing price.")
    parser.add_argument("--min-images", type=int, default=2, help="Minimum qualifying image count.")
    parser.add_argument("--guarantee-at", type=int, default=30, help="Counter value of the point guarantee.")
    parser.add_argument("--guarantee-points", type=int, default=100, help="Guaranteed point floor.")
    parser.add_argument("--loop-start", type=int, default=40, help="First counter value of the spin loop.")
    parser.add_argument("--loop-interval", type=int, default=10, help="Counter interval of the spin loop.")
    parser.add_argument(
        "--device-fingerprint",
        action="store_true",
        help="Enable the first-listing device fingerprint guard.",
    )
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    src = repo_root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))

    from sqlalchemy import delete, select  # type: ignore import-position

    from swaply_rewards.db.session import async_session, engine  # type: ignore import-position
    from swaply_rewards.models.reward import (  # type: ignore import-position
        RewardCampaign,
        RewardPoolItem,
        RewardRule,
        RewardRuleType,
    )

    rules = {
        "min_listing_price": args.min_price,
        "min_image_count": args.min_images,
        "device_fingerprint_enabled": args.device_fingerprint,
    }

    try:
        async with async_session() as session:
            campaign = (
                await session.execute(select(RewardCampaign).where(RewardCampaign.code == args.code))
            ).scalar_one_or_none()
            if campaign is None:
                campaign = RewardCampaign(code=args.code, name=args.name, is_enabled=True, rules=rules)
                session.add(campaign)
                await session.flush()
            else:
                campaign.name = args.name
                campaign.is_enabled = True
                campaign.rules = rules

            await session.execute(delete(RewardRule).where(RewardRule.campaign_id == campaign.id))
            await session.execute(delete(RewardPoolItem).where(RewardPoolItem.campaign_code == campaign.code))

            rule_rows = [
                RewardRule(
                    campaign_id=campaign.id,
                    trigger_type=RewardRuleType.SPIN_GRANT.value,
                    trigger_n=step,
                    payload={"spins": 1},
                )
                for step in MILESTONE_STEPS
            ]
            rule_rows.append(
                RewardRule(
                    campaign_id=campaign.id,
                    trigger_type=RewardRuleType.GUARANTEE_POINTS.value,
                    trigger_n=args.guarantee_at,
                    payload={"min_points": args.guarantee_points},
                )
            )
            rule_rows.append(
                RewardRule(
                    campaign_id=campaign.id,
                    trigger_type=RewardRuleType.SPIN_GRANT_LOOP.value,
                    trigger_n=args.loop_start,
                    payload={"loop_interval": args.loop_interval, "spins": 1},
                )
            )
            pool_rows = [
                RewardPoolItem(campaign_code=campaign.code, sort_order=index, **item)
                for index, item in enumerate(DEFAULT_POOL)
            ]
            session.add_all([*rule_rows, *pool_rows])
            await session.commit()
    finally:
        await engine.dispose()

    return {"rules": len(rule_rows), "pool_items": len(pool_rows)}


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args))
    logger.success("Reward campaign seeded", campaign_code=args.code, **summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())

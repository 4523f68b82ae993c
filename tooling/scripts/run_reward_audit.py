"""Run the failed-grant audit once and print its findings.

Intended usage: schedule via cron when the in-process audit worker is
disabled, or run by hand during remediation.

Example:
    python tooling/scripts/run_reward_audit.py --campaign launch_v1
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scan for failed or stuck reward grants")
    parser.add_argument("--campaign", default=None, help="Restrict the scan to one campaign code.")
    parser.add_argument(
        "--grace-seconds",
        type=int,
        default=None,
        help="Override how old a pending row must be before it is reported.",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum rows reported per category.")
    return parser.parse_args()


async def _run(campaign: str | None, grace_seconds: int | None, limit: int | None) -> dict[str, Any]:
    repo_root = Path(__file__).resolve().parents[2]
    src = repo_root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))

    from swaply_rewards.db.session import async_session, engine  # type: ignore import-position
    from swaply_rewards.services.rewards.audit import RewardAuditService  # type: ignore import-position

    try:
        async with async_session() as session:
            service = RewardAuditService(session, grace_seconds=grace_seconds, limit=limit)
            report = await service.scan(campaign_code=campaign)
    finally:
        await engine.dispose()
    return report.as_dict()


def main() -> int:
    args = parse_args()
    report = asyncio.run(_run(args.campaign, args.grace_seconds, args.limit))
    print(json.dumps(report, indent=2))
    logger.success("Reward audit completed", total=report["total"])
    return 1 if report["total"] else 0


if __name__ == "__main__":
    sys.exit(main())

from datetime import datetime, timedelta, timezone

import pytest

from swaply_rewards.models.reward import RewardEntryStatus
from swaply_rewards.observability.rewards import RewardObservabilityStore
from swaply_rewards.services.rewards.audit import RewardAuditService
from swaply_rewards.services.rewards.ledger import RewardLedgerStore
from swaply_rewards.workers import RewardAuditWorker


CAMPAIGN = "launch_v1"


async def _seed_findings(session, user_id) -> None:
    store = RewardLedgerStore(session)
    _, failed_id = await store.insert_reward_entry(
        user_id=user_id,
        campaign_code=CAMPAIGN,
        trigger_n=1,
        trigger_kind="milestone",
        result_type="spins",
        listing_id=None,
        payload={"kind": "spins", "spins": 1},
    )
    await store.update_reward_entry(
        failed_id,
        status=RewardEntryStatus.FAILED,
        payload={"kind": "spins", "spins": 1, "status": "failed"},
        error="balance update failed",
    )
    await store.insert_reward_entry(
        user_id=user_id,
        campaign_code=CAMPAIGN,
        trigger_n=5,
        trigger_kind="milestone",
        result_type="spins",
        listing_id=None,
        payload={"kind": "spins", "spins": 1},
    )
    _, completed_id = await store.insert_reward_entry(
        user_id=user_id,
        campaign_code=CAMPAIGN,
        trigger_n=10,
        trigger_kind="milestone",
        result_type="spins",
        listing_id=None,
        payload={"kind": "spins", "spins": 1},
    )
    await store.update_reward_entry(
        completed_id,
        status=RewardEntryStatus.COMPLETED,
        payload={"kind": "spins", "spins": 1, "status": "completed"},
    )
    await store.reserve_spin_request(
        user_id=user_id,
        campaign_code=CAMPAIGN,
        request_id="abandoned",
        listing_id=None,
        device_id=None,
    )


@pytest.mark.asyncio
async def test_scan_reports_failed_stuck_and_unresolved(session_factory, member_factory) -> None:
    member = await member_factory()
    observability = RewardObservabilityStore()
    later = datetime.now(timezone.utc) + timedelta(days=1)

    async with session_factory() as session:
        await _seed_findings(session, member.user_id)
        service = RewardAuditService(session, grace_seconds=0, observability=observability)
        report = await service.scan(now=later)

    assert [item.trigger_n for item in report.failed_entries] == [1]
    assert report.failed_entries[0].error == "balance update failed"
    assert [item.trigger_n for item in report.stuck_entries] == [5]
    assert [item.request_id for item in report.stuck_spin_requests] == ["abandoned"]
    assert report.total == 3

    body = report.as_dict()
    assert body["total"] == 3
    assert body["failedEntries"][0]["triggerKind"] == "milestone"
    assert body["stuckSpinRequests"][0]["requestId"] == "abandoned"

    assert observability.snapshot().audit == {
        "failed_entries": 1,
        "stuck_entries": 1,
        "stuck_spin_requests": 1,
    }


@pytest.mark.asyncio
async def test_recent_pending_rows_are_within_grace(session_factory, member_factory) -> None:
    member = await member_factory()

    async with session_factory() as session:
        await _seed_findings(session, member.user_id)
        service = RewardAuditService(session, grace_seconds=3600, observability=RewardObservabilityStore())
        report = await service.scan()

    assert len(report.failed_entries) == 1
    assert report.stuck_entries == []
    assert report.stuck_spin_requests == []


@pytest.mark.asyncio
async def test_scan_filters_by_campaign(session_factory, member_factory) -> None:
    member = await member_factory()
    later = datetime.now(timezone.utc) + timedelta(days=1)

    async with session_factory() as session:
        await _seed_findings(session, member.user_id)
        service = RewardAuditService(session, grace_seconds=0, observability=RewardObservabilityStore())
        report = await service.scan(now=later, campaign_code="other_campaign")

    assert report.total == 0


@pytest.mark.asyncio
async def test_worker_run_once_records_last_run(session_factory, member_factory) -> None:
    member = await member_factory()
    async with session_factory() as session:
        await _seed_findings(session, member.user_id)

    worker = RewardAuditWorker(
        session_factory,
        interval_seconds=60,
        service_factory=lambda session: RewardAuditService(
            session, grace_seconds=3600, observability=RewardObservabilityStore()
        ),
    )
    report = await worker.run_once()

    assert len(report.failed_entries) == 1
    assert worker.last_run_at is not None
    assert worker.last_error is None
    assert worker.is_running is False

import asyncio
from dataclasses import replace
from uuid import uuid4

import pytest
from sqlalchemy import select

from swaply_rewards.models.reward import RewardListingEvent
from swaply_rewards.services.rewards.errors import LedgerError
from swaply_rewards.services.rewards.ledger import BalanceField, InsertOutcome, RewardLedgerStore


CAMPAIGN = "launch_v1"


@pytest.mark.asyncio
async def test_qualifying_event_increments_once(session_factory, member_factory) -> None:
    member = await member_factory()
    listing_id = uuid4()

    async with session_factory() as session:
        store = RewardLedgerStore(session)
        first = await store.record_qualifying_event(member.user_id, CAMPAIGN, listing_id)
        second = await store.record_qualifying_event(member.user_id, CAMPAIGN, listing_id)

    assert first.already_processed is False
    assert first.state.qualified_count == 1
    assert first.state.last_qualified_listing_id == listing_id
    assert second.already_processed is True
    assert second.state == first.state

    async with session_factory() as session:
        events = (await session.execute(select(RewardListingEvent))).scalars().all()
    assert len(events) == 1


@pytest.mark.asyncio
async def test_counter_is_scoped_per_campaign(session_factory, member_factory) -> None:
    member = await member_factory()
    listing_id = uuid4()

    async with session_factory() as session:
        store = RewardLedgerStore(session)
        launch = await store.record_qualifying_event(member.user_id, CAMPAIGN, listing_id)
        other = await store.record_qualifying_event(member.user_id, "summer", listing_id)

    assert launch.already_processed is False
    assert other.already_processed is False
    assert other.state.qualified_count == 1


@pytest.mark.asyncio
async def test_failed_counter_bump_is_fatal(session_factory, member_factory, monkeypatch) -> None:
    member = await member_factory()

    async with session_factory() as session:
        store = RewardLedgerStore(session)

        async def broken_upsert(*args, **kwargs):
            raise LedgerError("boom")

        monkeypatch.setattr(store, "_upsert_counters", broken_upsert)
        with pytest.raises(LedgerError) as exc_info:
            await store.record_qualifying_event(member.user_id, CAMPAIGN, uuid4())

    assert exc_info.value.code == "orphaned_qualification_event"


@pytest.mark.asyncio
async def test_read_state_defaults_to_zero(session_factory, member_factory) -> None:
    member = await member_factory()

    async with session_factory() as session:
        state = await RewardLedgerStore(session).read_state(member.user_id, CAMPAIGN)

    assert (state.qualified_count, state.point_balance, state.spin_balance) == (0, 0, 0)


@pytest.mark.asyncio
async def test_mutate_balance_returns_new_value(session_factory, member_factory) -> None:
    member = await member_factory()

    async with session_factory() as session:
        store = RewardLedgerStore(session)
        assert await store.mutate_balance(member.user_id, CAMPAIGN, BalanceField.POINTS, 40) == 40
        assert await store.mutate_balance(member.user_id, CAMPAIGN, BalanceField.POINTS, 60) == 100
        assert await store.mutate_balance(member.user_id, CAMPAIGN, BalanceField.SPINS, 2) == 2
        with pytest.raises(LedgerError):
            await store.mutate_balance(member.user_id, CAMPAIGN, BalanceField.SPINS, 0)


@pytest.mark.asyncio
async def test_consume_spin_never_goes_negative(session_factory, member_factory) -> None:
    member = await member_factory()

    async with session_factory() as session:
        store = RewardLedgerStore(session)
        assert await store.consume_spin(member.user_id, CAMPAIGN) is None

        await store.mutate_balance(member.user_id, CAMPAIGN, BalanceField.SPINS, 1)
        assert await store.consume_spin(member.user_id, CAMPAIGN) == 0
        assert await store.consume_spin(member.user_id, CAMPAIGN) is None
        assert (await store.read_state(member.user_id, CAMPAIGN)).spin_balance == 0


@pytest.mark.asyncio
async def test_refund_retries_after_lost_compare_and_set(session_factory, member_factory, monkeypatch) -> None:
    member = await member_factory()

    async with session_factory() as session:
        store = RewardLedgerStore(session)
        await store.mutate_balance(member.user_id, CAMPAIGN, BalanceField.SPINS, 2)
        real_read = store.read_state
        calls = {"count": 0}

        async def stale_then_fresh(user_id, campaign_code):
            calls["count"] += 1
            state = await real_read(user_id, campaign_code)
            if calls["count"] == 1:
                return replace(state, spin_balance=state.spin_balance + 5)
            return state

        monkeypatch.setattr(store, "read_state", stale_then_fresh)
        balance = await store.refund_spin(member.user_id, CAMPAIGN, max_attempts=3)

    assert balance == 3
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_refund_gives_up_after_max_attempts(session_factory, member_factory, monkeypatch) -> None:
    member = await member_factory()

    async with session_factory() as session:
        store = RewardLedgerStore(session)
        await store.mutate_balance(member.user_id, CAMPAIGN, BalanceField.SPINS, 1)
        real_read = store.read_state

        async def always_stale(user_id, campaign_code):
            state = await real_read(user_id, campaign_code)
            return replace(state, spin_balance=state.spin_balance + 1)

        monkeypatch.setattr(store, "read_state", always_stale)
        with pytest.raises(LedgerError) as exc_info:
            await store.refund_spin(member.user_id, CAMPAIGN, max_attempts=2)

    assert exc_info.value.code == "refund_exhausted"


@pytest.mark.asyncio
async def test_claim_device_binds_first_user(session_factory, member_factory) -> None:
    first = await member_factory()
    second = await member_factory()

    async with session_factory() as session:
        store = RewardLedgerStore(session)
        assert await store.claim_device("device-1", first.user_id) is True
        assert await store.claim_device("device-1", first.user_id) is True
        assert await store.claim_device("device-1", second.user_id) is False


@pytest.mark.asyncio
async def test_spin_request_reservation_and_terminal_finalize(session_factory, member_factory) -> None:
    member = await member_factory()

    async with session_factory() as session:
        store = RewardLedgerStore(session)
        kwargs = {"user_id": member.user_id, "campaign_code": CAMPAIGN, "request_id": "req-1"}
        assert await store.reserve_spin_request(**kwargs, listing_id=None, device_id=None) is InsertOutcome.INSERTED
        assert await store.reserve_spin_request(**kwargs, listing_id=None, device_id=None) is InsertOutcome.DUPLICATE

        pending = await store.read_spin_request(member.user_id, CAMPAIGN, "req-1")
        assert pending is not None and pending.pending

        assert await store.finalize_spin_request(**kwargs, result_type="points", payload={"kind": "points"}) is True
        assert await store.finalize_spin_request(**kwargs, result_type="none", payload={"kind": "none"}) is False

        record = await store.read_spin_request(member.user_id, CAMPAIGN, "req-1")

    assert record is not None
    assert record.result_type == "points"
    assert record.result_payload == {"kind": "points"}


@pytest.mark.asyncio
async def test_reward_entry_unique_per_trigger(session_factory, member_factory) -> None:
    member = await member_factory()

    async with session_factory() as session:
        store = RewardLedgerStore(session)
        kwargs = {
            "user_id": member.user_id,
            "campaign_code": CAMPAIGN,
            "trigger_n": 1,
            "trigger_kind": "milestone",
            "listing_id": None,
            "payload": {},
        }
        outcome, entry_id = await store.insert_reward_entry(**kwargs, result_type="spins")
        duplicate, duplicate_id = await store.insert_reward_entry(**kwargs, result_type="spins")
        other_kind, _ = await store.insert_reward_entry(**kwargs, result_type="points")

    assert outcome is InsertOutcome.INSERTED and entry_id is not None
    assert duplicate is InsertOutcome.DUPLICATE and duplicate_id is None
    assert other_kind is InsertOutcome.INSERTED


@pytest.mark.asyncio
async def test_overlapping_submissions_count_listing_once(file_session_factory) -> None:
    user_id = uuid4()
    listing_id = uuid4()

    async def submit():
        async with file_session_factory() as session:
            return await RewardLedgerStore(session).record_qualifying_event(user_id, CAMPAIGN, listing_id)

    results = await asyncio.gather(*(submit() for _ in range(6)))

    assert sum(1 for result in results if not result.already_processed) == 1
    assert all(result.state.qualified_count == 1 for result in results if not result.already_processed)

    async with file_session_factory() as session:
        state = await RewardLedgerStore(session).read_state(user_id, CAMPAIGN)
        events = (await session.execute(select(RewardListingEvent))).scalars().all()
    assert state.qualified_count == 1
    assert len(events) == 1

"""Reward ledger store.

Every state transition is committed as soon as it happens: a reservation row
must be visible to concurrent requests before any balance moves, and a failed
step must leave its audit row behind. Counters only change through single
atomic statements (upsert-increment, conditional decrement, compare-and-set).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from swaply_rewards.models.reward import (
    RewardDeviceMap,
    RewardEntry,
    RewardEntryStatus,
    RewardListingEvent,
    RewardSpinRequest,
    UserRewardState,
)
from swaply_rewards.services.rewards.errors import LedgerError
from swaply_rewards.services.rewards.types import RewardStateSnapshot


_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

_state = UserRewardState.__table__


class InsertOutcome(str, Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"


class BalanceField(str, Enum):
    POINTS = "point_balance"
    SPINS = "spin_balance"


@dataclass(frozen=True)
class QualifyingEventResult:
    already_processed: bool
    state: RewardStateSnapshot


@dataclass(frozen=True)
class SpinRequestRecord:
    request_id: str
    result_type: str | None
    result_payload: dict[str, Any] | None
    failure_reason: str | None

    @property
    def pending(self) -> bool:
        return self.result_type is None


def is_unique_violation(error: IntegrityError) -> bool:
    orig = getattr(error, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == "23505"
    message = str(orig or error).lower()
    return "unique constraint" in message or "duplicate key" in message


class RewardLedgerStore:
    """Persistence gateway for reward counters, idempotency rows, and audit rows."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    # -- uniqueness-guarded inserts ------------------------------------------------

    async def insert_unique(self, row: Any) -> InsertOutcome:
        """Insert and commit ``row``; a uniqueness conflict is reported, not raised."""

        self._db.add(row)
        try:
            await self._db.commit()
        except IntegrityError as error:
            await self._db.rollback()
            if is_unique_violation(error):
                return InsertOutcome.DUPLICATE
            raise LedgerError(
                "Ledger insert violated a constraint",
                code="ledger_constraint",
                detail={"table": getattr(row, "__tablename__", None)},
            ) from error
        except SQLAlchemyError as error:
            await self._db.rollback()
            raise LedgerError("Ledger insert failed", detail={"table": getattr(row, "__tablename__", None)}) from error
        return InsertOutcome.INSERTED

    async def record_qualifying_event(
        self,
        user_id: UUID,
        campaign_code: str,
        listing_id: UUID,
        *,
        device_id: str | None = None,
    ) -> QualifyingEventResult:
        """At-most-once gate for a qualifying listing followed by the atomic counter bump."""

        event = RewardListingEvent(
            user_id=user_id,
            campaign_code=campaign_code,
            listing_id=listing_id,
            device_fingerprint=device_id,
        )
        outcome = await self.insert_unique(event)
        if outcome is InsertOutcome.DUPLICATE:
            state = await self.read_state(user_id, campaign_code)
            return QualifyingEventResult(already_processed=True, state=state)

        try:
            state = await self._upsert_counters(
                user_id,
                campaign_code,
                qualified=1,
                last_listing_id=listing_id,
            )
        except LedgerError as error:
            logger.critical(
                "Qualifying event recorded but counter increment failed",
                user_id=str(user_id),
                campaign_code=campaign_code,
                listing_id=str(listing_id),
                error=str(error.__cause__ or error),
            )
            raise LedgerError(
                "Qualifying event recorded but the counter was not incremented",
                code="orphaned_qualification_event",
                detail={"listingId": str(listing_id), "campaignCode": campaign_code},
            ) from error
        return QualifyingEventResult(already_processed=False, state=state)

    # -- counters ------------------------------------------------------------------

    async def read_state(self, user_id: UUID, campaign_code: str) -> RewardStateSnapshot:
        stmt = select(
            _state.c.qualified_count,
            _state.c.point_balance,
            _state.c.spin_balance,
            _state.c.last_qualified_listing_id,
        ).where(_state.c.user_id == user_id, _state.c.campaign_code == campaign_code)
        row = (await self._db.execute(stmt)).first()
        if row is None:
            return RewardStateSnapshot(user_id=user_id, campaign_code=campaign_code)
        return RewardStateSnapshot(
            user_id=user_id,
            campaign_code=campaign_code,
            qualified_count=int(row.qualified_count or 0),
            point_balance=int(row.point_balance or 0),
            spin_balance=int(row.spin_balance or 0),
            last_qualified_listing_id=row.last_qualified_listing_id,
        )

    async def mutate_balance(self, user_id: UUID, campaign_code: str, field: BalanceField, delta: int) -> int:
        """Atomically add ``delta`` to a balance and return the new value."""

        if delta <= 0:
            raise LedgerError("Balance increments must be positive", detail={"field": field.value, "delta": delta})
        if field is BalanceField.POINTS:
            state = await self._upsert_counters(user_id, campaign_code, points=delta)
            return state.point_balance
        state = await self._upsert_counters(user_id, campaign_code, spins=delta)
        return state.spin_balance

    async def consume_spin(self, user_id: UUID, campaign_code: str) -> int | None:
        """Decrement the spin balance by one if positive; ``None`` when there was nothing to consume."""

        stmt = (
            update(_state)
            .where(
                _state.c.user_id == user_id,
                _state.c.campaign_code == campaign_code,
                _state.c.spin_balance > 0,
            )
            .values(spin_balance=_state.c.spin_balance - 1, updated_at=func.now())
            .returning(_state.c.spin_balance)
        )
        row = await self._execute_and_commit(stmt, action="consume_spin")
        return None if row is None else int(row.spin_balance)

    async def refund_spin(self, user_id: UUID, campaign_code: str, *, max_attempts: int) -> int:
        """Give one spin back with a compare-and-set retry loop."""

        for attempt in range(1, max_attempts + 1):
            current = await self.read_state(user_id, campaign_code)
            stmt = (
                update(_state)
                .where(
                    _state.c.user_id == user_id,
                    _state.c.campaign_code == campaign_code,
                    _state.c.spin_balance == current.spin_balance,
                )
                .values(spin_balance=current.spin_balance + 1, updated_at=func.now())
                .returning(_state.c.spin_balance)
            )
            row = await self._execute_and_commit(stmt, action="refund_spin")
            if row is not None:
                return int(row.spin_balance)
            logger.warning(
                "Spin refund lost compare-and-set race",
                user_id=str(user_id),
                campaign_code=campaign_code,
                attempt=attempt,
            )

        raise LedgerError(
            "Spin refund did not converge",
            code="refund_exhausted",
            detail={"campaignCode": campaign_code, "attempts": max_attempts},
        )

    async def _upsert_counters(
        self,
        user_id: UUID,
        campaign_code: str,
        *,
        qualified: int = 0,
        points: int = 0,
        spins: int = 0,
        last_listing_id: UUID | None = None,
    ) -> RewardStateSnapshot:
        insert = self._dialect_insert()
        updates: dict[str, Any] = {"updated_at": func.now()}
        if qualified:
            updates["qualified_count"] = _state.c.qualified_count + qualified
        if points:
            updates["point_balance"] = _state.c.point_balance + points
        if spins:
            updates["spin_balance"] = _state.c.spin_balance + spins
        if last_listing_id is not None:
            updates["last_qualified_listing_id"] = last_listing_id

        stmt = (
            insert(_state)
            .values(
                id=uuid4(),
                user_id=user_id,
                campaign_code=campaign_code,
                qualified_count=qualified,
                point_balance=points,
                spin_balance=spins,
                last_qualified_listing_id=last_listing_id,
                updated_at=func.now(),
            )
            .on_conflict_do_update(
                index_elements=[_state.c.user_id, _state.c.campaign_code],
                set_=updates,
            )
            .returning(
                _state.c.qualified_count,
                _state.c.point_balance,
                _state.c.spin_balance,
                _state.c.last_qualified_listing_id,
            )
        )
        row = await self._execute_and_commit(stmt, action="upsert_counters")
        if row is None:
            raise LedgerError("Counter upsert returned no row", detail={"campaignCode": campaign_code})
        return RewardStateSnapshot(
            user_id=user_id,
            campaign_code=campaign_code,
            qualified_count=int(row.qualified_count),
            point_balance=int(row.point_balance),
            spin_balance=int(row.spin_balance),
            last_qualified_listing_id=row.last_qualified_listing_id,
        )

    # -- device fingerprint --------------------------------------------------------

    async def claim_device(self, device_id: str, user_id: UUID) -> bool:
        """Bind a device to its first claimant; ``False`` if another user holds it."""

        insert = self._dialect_insert()
        stmt = (
            insert(RewardDeviceMap.__table__)
            .values(device_id=device_id, user_id=user_id, first_seen_at=func.now())
            .on_conflict_do_nothing(index_elements=[RewardDeviceMap.__table__.c.device_id])
        )
        await self._execute_and_commit(stmt, action="claim_device", returns_rows=False)
        owner = await self._db.scalar(
            select(RewardDeviceMap.user_id).where(RewardDeviceMap.device_id == device_id)
        )
        return owner == user_id

    # -- grant entries -------------------------------------------------------------

    async def insert_reward_entry(
        self,
        *,
        user_id: UUID,
        campaign_code: str,
        trigger_n: int,
        trigger_kind: str,
        result_type: str,
        listing_id: UUID | None,
        payload: dict[str, Any],
    ) -> tuple[InsertOutcome, UUID | None]:
        entry = RewardEntry(
            id=uuid4(),
            user_id=user_id,
            campaign_code=campaign_code,
            trigger_n=trigger_n,
            trigger_kind=trigger_kind,
            result_type=result_type,
            listing_id=listing_id,
            status=RewardEntryStatus.PENDING.value,
            result_payload=payload,
        )
        entry_id = entry.id
        outcome = await self.insert_unique(entry)
        return outcome, entry_id if outcome is InsertOutcome.INSERTED else None

    async def update_reward_entry(
        self,
        entry_id: UUID,
        *,
        status: RewardEntryStatus,
        payload: dict[str, Any],
        error: str | None = None,
    ) -> None:
        stmt = (
            update(RewardEntry.__table__)
            .where(RewardEntry.__table__.c.id == entry_id)
            .values(status=status.value, result_payload=payload, error=error, updated_at=func.now())
        )
        await self._execute_and_commit(stmt, action="update_reward_entry", returns_rows=False)

    # -- spin requests -------------------------------------------------------------

    async def reserve_spin_request(
        self,
        *,
        user_id: UUID,
        campaign_code: str,
        request_id: str,
        listing_id: UUID | None,
        device_id: str | None,
    ) -> InsertOutcome:
        reservation = RewardSpinRequest(
            user_id=user_id,
            campaign_code=campaign_code,
            request_id=request_id,
            listing_id=listing_id,
            device_id=device_id,
        )
        return await self.insert_unique(reservation)

    async def read_spin_request(self, user_id: UUID, campaign_code: str, request_id: str) -> SpinRequestRecord | None:
        table = RewardSpinRequest.__table__
        stmt = select(table.c.request_id, table.c.result_type, table.c.result_payload, table.c.failure_reason).where(
            table.c.user_id == user_id,
            table.c.campaign_code == campaign_code,
            table.c.request_id == request_id,
        )
        row = (await self._db.execute(stmt)).first()
        if row is None:
            return None
        return SpinRequestRecord(
            request_id=row.request_id,
            result_type=row.result_type,
            result_payload=row.result_payload,
            failure_reason=row.failure_reason,
        )

    async def finalize_spin_request(
        self,
        *,
        user_id: UUID,
        campaign_code: str,
        request_id: str,
        result_type: str,
        payload: dict[str, Any],
        failure_reason: str | None = None,
    ) -> bool:
        """Write the terminal outcome; a request that is already resolved is left untouched."""

        table = RewardSpinRequest.__table__
        stmt = (
            update(table)
            .where(
                table.c.user_id == user_id,
                table.c.campaign_code == campaign_code,
                table.c.request_id == request_id,
                table.c.result_type.is_(None),
            )
            .values(
                result_type=result_type,
                result_payload=payload,
                failure_reason=failure_reason,
                resolved_at=datetime.now(timezone.utc),
            )
            .returning(table.c.id)
        )
        row = await self._execute_and_commit(stmt, action="finalize_spin_request")
        return row is not None

    # -- plumbing ------------------------------------------------------------------

    def _dialect_insert(self):
        dialect = self._db.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect]
        except KeyError as error:
            raise LedgerError(
                "Atomic upserts are not supported on this database",
                code="unsupported_dialect",
                detail={"dialect": dialect},
            ) from error

    async def _execute_and_commit(self, stmt: Any, *, action: str, returns_rows: bool = True) -> Any:
        try:
            result = await self._db.execute(stmt)
            row = result.first() if returns_rows else None
            await self._db.commit()
        except SQLAlchemyError as error:
            await self._db.rollback()
            logger.error("Reward ledger statement failed", action=action, error=str(error))
            raise LedgerError("Reward ledger statement failed", detail={"action": action}) from error
        return row


__all__ = [
    "BalanceField",
    "InsertOutcome",
    "QualifyingEventResult",
    "RewardLedgerStore",
    "SpinRequestRecord",
    "is_unique_violation",
]

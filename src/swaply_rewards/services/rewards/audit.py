"""Surface reward grants and spin requests that need operator remediation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from swaply_rewards.core.settings import settings
from swaply_rewards.models.reward import RewardEntry, RewardEntryStatus, RewardSpinRequest
from swaply_rewards.observability.rewards import RewardObservabilityStore, get_reward_store


@dataclass(frozen=True)
class AuditFinding:
    id: UUID
    user_id: UUID
    campaign_code: str
    status: str
    created_at: datetime | None
    trigger_n: int | None = None
    trigger_kind: str | None = None
    result_type: str | None = None
    request_id: str | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "userId": str(self.user_id),
            "campaignCode": self.campaign_code,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "triggerN": self.trigger_n,
            "triggerKind": self.trigger_kind,
            "resultType": self.result_type,
            "requestId": self.request_id,
            "error": self.error,
        }


@dataclass
class AuditReport:
    scanned_at: datetime
    failed_entries: list[AuditFinding] = field(default_factory=list)
    stuck_entries: list[AuditFinding] = field(default_factory=list)
    stuck_spin_requests: list[AuditFinding] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.failed_entries) + len(self.stuck_entries) + len(self.stuck_spin_requests)

    def as_dict(self) -> dict[str, Any]:
        return {
            "scannedAt": self.scanned_at.isoformat(),
            "total": self.total,
            "failedEntries": [item.as_dict() for item in self.failed_entries],
            "stuckEntries": [item.as_dict() for item in self.stuck_entries],
            "stuckSpinRequests": [item.as_dict() for item in self.stuck_spin_requests],
        }


class RewardAuditService:
    """Read-only scan for failed grants, stale pending grants, and unresolved spins.

    Nothing here retries a grant: a failed row may hide a partially applied
    mutation, so remediation stays manual.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        grace_seconds: int | None = None,
        limit: int | None = None,
        observability: RewardObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        if grace_seconds is None:
            grace_seconds = settings.reward_audit_pending_grace_seconds
        self._grace = timedelta(seconds=grace_seconds)
        self._limit = limit or settings.reward_audit_limit
        self._observability = observability or get_reward_store()

    async def scan(self, *, now: datetime | None = None, campaign_code: str | None = None) -> AuditReport:
        now = now or datetime.now(timezone.utc)
        cutoff = now - self._grace
        report = AuditReport(scanned_at=now)

        entry_stmt = (
            select(RewardEntry)
            .where(
                or_(
                    RewardEntry.status == RewardEntryStatus.FAILED.value,
                    and_(
                        RewardEntry.status == RewardEntryStatus.PENDING.value,
                        RewardEntry.created_at <= cutoff,
                    ),
                )
            )
            .order_by(RewardEntry.created_at.asc())
            .limit(self._limit)
            .execution_options(populate_existing=True)
        )
        if campaign_code:
            entry_stmt = entry_stmt.where(RewardEntry.campaign_code == campaign_code)

        for entry in (await self._db.execute(entry_stmt)).scalars():
            finding = AuditFinding(
                id=entry.id,
                user_id=entry.user_id,
                campaign_code=entry.campaign_code,
                status=entry.status,
                created_at=entry.created_at,
                trigger_n=entry.trigger_n,
                trigger_kind=entry.trigger_kind,
                result_type=entry.result_type,
                error=entry.error,
            )
            if entry.status == RewardEntryStatus.FAILED.value:
                report.failed_entries.append(finding)
            else:
                report.stuck_entries.append(finding)

        spin_stmt = (
            select(RewardSpinRequest)
            .where(RewardSpinRequest.result_type.is_(None), RewardSpinRequest.created_at <= cutoff)
            .order_by(RewardSpinRequest.created_at.asc())
            .limit(self._limit)
            .execution_options(populate_existing=True)
        )
        if campaign_code:
            spin_stmt = spin_stmt.where(RewardSpinRequest.campaign_code == campaign_code)

        for request in (await self._db.execute(spin_stmt)).scalars():
            report.stuck_spin_requests.append(
                AuditFinding(
                    id=request.id,
                    user_id=request.user_id,
                    campaign_code=request.campaign_code,
                    status="pending",
                    created_at=request.created_at,
                    request_id=request.request_id,
                )
            )

        for finding in report.failed_entries:
            logger.warning("Reward entry failed; manual remediation required", **_log_context(finding))
        for finding in report.stuck_entries:
            logger.warning("Reward entry stuck in pending", **_log_context(finding))
        for finding in report.stuck_spin_requests:
            logger.warning("Spin request never resolved", **_log_context(finding))

        self._observability.record_audit(
            failed_entries=len(report.failed_entries),
            stuck_entries=len(report.stuck_entries),
            stuck_spins=len(report.stuck_spin_requests),
        )
        logger.info("Reward audit scan completed", total=report.total)
        return report


def _log_context(finding: AuditFinding) -> dict[str, Any]:
    return {
        "record_id": str(finding.id),
        "user_id": str(finding.user_id),
        "campaign_code": finding.campaign_code,
        "trigger_n": finding.trigger_n,
        "trigger_kind": finding.trigger_kind,
        "request_id": finding.request_id,
    }


__all__ = ["AuditFinding", "AuditReport", "RewardAuditService"]

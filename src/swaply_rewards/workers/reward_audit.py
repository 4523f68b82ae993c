"""Worker that periodically scans for failed or stuck reward grants."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from swaply_rewards.core.settings import settings
from swaply_rewards.services.rewards.audit import AuditReport, RewardAuditService

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]
ServiceFactory = Callable[[AsyncSession], RewardAuditService]


class RewardAuditWorker:
    """Runs the reward audit scan on an interval so failed grants are alerted on."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        service_factory: ServiceFactory | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.reward_audit_interval_seconds
        self._service_factory = service_factory
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False
        self.last_error: str | None = None
        self.last_run_at: datetime | None = None
        self._logger = logger.bind(worker="reward_audit")

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        self._logger.info("Reward audit worker started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        self._logger.info("Reward audit worker stopped")

    async def run_once(self) -> AuditReport:
        session = await self._ensure_session()
        async with session as managed_session:
            service = self._build_service(managed_session)
            report = await service.scan()
        self.last_run_at = datetime.now(timezone.utc)
        self.last_error = None
        return report

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                report = await self.run_once()
                if report.total:
                    self._logger.warning(
                        "Reward audit found records needing remediation",
                        failed_entries=len(report.failed_entries),
                        stuck_entries=len(report.stuck_entries),
                        stuck_spin_requests=len(report.stuck_spin_requests),
                    )
            except Exception as exc:  # pragma: no cover - defensive logging
                self.last_error = str(exc)
                self._logger.exception("Reward audit iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    def _build_service(self, session: AsyncSession) -> RewardAuditService:
        if self._service_factory:
            return self._service_factory(session)
        return RewardAuditService(session)

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


__all__ = ["RewardAuditWorker"]

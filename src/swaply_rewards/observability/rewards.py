from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RewardSnapshot:
    qualifications: Dict[str, int]
    grants: Dict[str, int]
    spins: Dict[str, int]
    refunds: Dict[str, int]
    audit: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "qualifications": dict(self.qualifications),
            "grants": dict(self.grants),
            "spins": dict(self.spins),
            "refunds": dict(self.refunds),
            "audit": dict(self.audit),
        }


class RewardObservabilityStore:
    """Collect reward ledger telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._qualifications: Dict[str, int] = defaultdict(int)
        self._grants: Dict[str, int] = defaultdict(int)
        self._spins: Dict[str, int] = defaultdict(int)
        self._refunds: Dict[str, int] = defaultdict(int)
        self._audit: Dict[str, int] = {}

    def record_qualification(self, outcome: str) -> None:
        with self._lock:
            self._qualifications[outcome] += 1

    def record_grant(self, kind: str, status: str) -> None:
        with self._lock:
            self._grants[f"{kind}:{status}"] += 1
            self._grants[f"status:{status}"] += 1

    def record_spin(self, outcome: str) -> None:
        with self._lock:
            self._spins[outcome] += 1

    def record_refund(self, *, success: bool) -> None:
        with self._lock:
            self._refunds["succeeded" if success else "failed"] += 1

    def record_audit(self, *, failed_entries: int, stuck_entries: int, stuck_spins: int) -> None:
        with self._lock:
            self._audit = {
                "failed_entries": failed_entries,
                "stuck_entries": stuck_entries,
                "stuck_spin_requests": stuck_spins,
            }

    def snapshot(self) -> RewardSnapshot:
        with self._lock:
            return RewardSnapshot(
                qualifications=dict(self._qualifications),
                grants=dict(self._grants),
                spins=dict(self._spins),
                refunds=dict(self._refunds),
                audit=dict(self._audit),
            )

    def reset(self) -> None:
        with self._lock:
            self._qualifications.clear()
            self._grants.clear()
            self._spins.clear()
            self._refunds.clear()
            self._audit = {}


_STORE = RewardObservabilityStore()


def get_reward_store() -> RewardObservabilityStore:
    return _STORE


__all__ = ["get_reward_store", "RewardObservabilityStore", "RewardSnapshot"]

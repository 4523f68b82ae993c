from .reward_audit import RewardAuditWorker

__all__ = ["RewardAuditWorker"]

from .errors import (
    AuthError,
    ConfigurationError,
    ForbiddenError,
    LedgerError,
    NotFoundError,
    PartialFailureError,
    RewardError,
    ValidationError,
)
from .service import ListingRewardOutcome, RewardCenterState, RewardService
from .spin import SpinOutcome, SpinStatus

__all__ = [
    "AuthError",
    "ConfigurationError",
    "ForbiddenError",
    "LedgerError",
    "ListingRewardOutcome",
    "NotFoundError",
    "PartialFailureError",
    "RewardCenterState",
    "RewardError",
    "RewardService",
    "SpinOutcome",
    "SpinStatus",
    "ValidationError",
]

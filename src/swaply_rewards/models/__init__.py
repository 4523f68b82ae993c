"""SQLAlchemy models package."""

from .auth_identity import AuthSession  # noqa: F401
from .listing import Listing  # noqa: F401
from .reward import (  # noqa: F401
    Coupon,
    CouponScope,
    RewardCampaign,
    RewardDeviceMap,
    RewardEntry,
    RewardEntryStatus,
    RewardKind,
    RewardListingEvent,
    RewardLog,
    RewardPoolItem,
    RewardRule,
    RewardRuleType,
    RewardSpinRequest,
    TriggerFamily,
    UserRewardState,
)
from .user import User  # noqa: F401

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./swaply_rewards.db"
    database_echo: bool = False

    # Operator surfaces (audit, observability)
    operator_api_key: str = ""

    # Reward campaigns
    default_campaign_code: str = "launch_v1"
    reward_default_min_listing_price: float = 50.0
    reward_default_min_image_count: int = 2
    reward_qualifying_statuses: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["active"])

    @field_validator("reward_qualifying_statuses", mode="before")
    @classmethod
    def _parse_status_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    # Spin resolution
    reward_spin_refund_max_attempts: int = 6

    # Coupon issuance
    reward_coupon_valid_days: int = 30
    reward_coupon_code_prefix: str = "RWD"
    reward_coupon_default_pin_days: int = 3

    # Failed grant audit
    reward_audit_worker_enabled: bool = False
    reward_audit_interval_seconds: int = 15 * 60
    reward_audit_pending_grace_seconds: int = 10 * 60
    reward_audit_limit: int = 100


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()

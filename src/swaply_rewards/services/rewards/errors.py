"""Reward domain error taxonomy.

Duplicate detection (already processed, already granted, idempotent replay)
and an empty spin balance are results, not errors, and never appear here.
"""

from __future__ import annotations

from typing import Any


class RewardError(Exception):
    """Base error carrying a stable machine-readable code."""

    status_code: int = 500
    code: str = "reward_error"
    retryable: bool = False

    def __init__(self, message: str, *, code: str | None = None, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.detail = dict(detail or {})

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message, "retryable": self.retryable}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class ValidationError(RewardError):
    status_code = 400
    code = "validation_error"
    retryable = True


class AuthError(RewardError):
    status_code = 401
    code = "unauthenticated"


class ForbiddenError(RewardError):
    status_code = 403
    code = "forbidden"


class NotFoundError(RewardError):
    status_code = 404
    code = "not_found"


class ConfigurationError(RewardError):
    """Campaign configuration cannot be used (empty pool, invalid weights, bad payloads)."""

    status_code = 500
    code = "configuration_error"


class LedgerError(RewardError):
    """An atomic ledger statement failed; state may need operator review."""

    status_code = 500
    code = "ledger_error"


class PartialFailureError(RewardError):
    """A reservation row exists but the balance mutation did not complete."""

    status_code = 500
    code = "partial_failure"


__all__ = [
    "AuthError",
    "ConfigurationError",
    "ForbiddenError",
    "LedgerError",
    "NotFoundError",
    "PartialFailureError",
    "RewardError",
    "ValidationError",
]

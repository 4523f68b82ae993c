"""Resolve bearer session tokens into member identities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swaply_rewards.models.auth_identity import AuthSession
from swaply_rewards.services.rewards.errors import AuthError


@dataclass(frozen=True)
class Identity:
    user_id: UUID
    session_id: UUID
    device_fingerprint: str | None = None


class SessionIdentityVerifier:
    """Look up an unexpired session row for the presented token."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def verify(self, token: str, *, now: datetime | None = None) -> Identity:
        token = (token or "").strip()
        if not token:
            raise AuthError("Missing bearer token", code="missing_token")

        stmt = select(AuthSession.id, AuthSession.user_id, AuthSession.expires, AuthSession.device_fingerprint).where(
            AuthSession.session_token == token
        )
        row = (await self._db.execute(stmt)).first()
        if row is None:
            raise AuthError("Authentication failed", code="invalid_token")

        now = now or datetime.now(timezone.utc)
        if _ensure_aware(row.expires) <= now:
            raise AuthError("Session expired", code="session_expired")

        return Identity(user_id=row.user_id, session_id=row.id, device_fingerprint=row.device_fingerprint)


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = ["Identity", "SessionIdentityVerifier"]

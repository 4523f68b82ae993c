"""Bearer session dependencies for member reward APIs."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from swaply_rewards.db.session import get_session
from swaply_rewards.services.auth import Identity, SessionIdentityVerifier
from swaply_rewards.services.rewards.errors import AuthError


async def require_member_identity(
    authorization: str | None = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_session),
) -> Identity:
    """Resolve the authenticated member from the ``Authorization: Bearer`` header."""

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "missing_token", "message": "No authorization header"},
        )

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "invalid_token", "message": "Authorization header must be a bearer token"},
        )

    try:
        return await SessionIdentityVerifier(db).verify(token)
    except AuthError as error:
        raise HTTPException(status_code=error.status_code, detail=error.as_payload()) from error

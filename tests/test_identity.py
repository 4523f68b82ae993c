from datetime import timedelta

import pytest

from swaply_rewards.services.auth import SessionIdentityVerifier
from swaply_rewards.services.rewards.errors import AuthError


@pytest.mark.asyncio
async def test_valid_token_resolves_identity(session_factory, member_factory) -> None:
    member = await member_factory(device_fingerprint="device-abc")

    async with session_factory() as session:
        identity = await SessionIdentityVerifier(session).verify(member.token)

    assert identity.user_id == member.user_id
    assert identity.device_fingerprint == "device-abc"


@pytest.mark.asyncio
async def test_expired_session_is_rejected(session_factory, member_factory) -> None:
    member = await member_factory(expires_in=timedelta(seconds=-1))

    async with session_factory() as session:
        with pytest.raises(AuthError) as excinfo:
            await SessionIdentityVerifier(session).verify(member.token)

    assert excinfo.value.code == "session_expired"
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("token,code", [("", "missing_token"), ("unknown-token", "invalid_token")])
async def test_missing_or_unknown_token(session_factory, token, code) -> None:
    async with session_factory() as session:
        with pytest.raises(AuthError) as excinfo:
            await SessionIdentityVerifier(session).verify(token)

    assert excinfo.value.code == code

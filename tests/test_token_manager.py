"""
Tests for the token manager (active token, refresh, revoke).
"""

from datetime import datetime, timedelta, timezone

import pytest

from oauth.errors import CredentialNotFound
from oauth.token_manager import TokenManager

from conftest import SEED


def _authenticated(expires_in: timedelta, **extra) -> dict:
    return {
        **SEED,
        "accessToken": "ya29.current",
        "refreshToken": "1//refresh",
        "tokenExpiry": (datetime.now(timezone.utc) + expires_in).isoformat(),
        "authStatus": "authenticated",
        **extra,
    }


class TestGetActiveToken:
    @pytest.mark.asyncio
    async def test_valid_token_is_returned_without_network(self, registry, store, backend):
        cid = store.add("gmailOAuth", _authenticated(timedelta(hours=1)))
        assert await TokenManager(registry, store).get_active_token(cid) == "ya29.current"
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_not_authenticated_gives_none(self, registry, store):
        cid = store.add("gmailOAuth", {**SEED, "authStatus": "notAuthenticated"})
        assert await TokenManager(registry, store).get_active_token(cid) is None

    @pytest.mark.asyncio
    async def test_near_expiry_token_is_refreshed(self, registry, store, backend):
        cid = store.add("gmailOAuth", _authenticated(timedelta(seconds=30)))
        backend.token_response = {"access_token": "ya29.fresh", "expires_in": 3599}

        token = await TokenManager(registry, store, refresh_buffer=120).get_active_token(cid)

        assert token == "ya29.fresh"
        fields = store.records[cid].fields
        assert fields["accessToken"] == "ya29.fresh"
        assert fields["refreshToken"] == "1//refresh"
        assert fields["authStatus"] == "authenticated"

    @pytest.mark.asyncio
    async def test_refresh_failure_downgrades(self, registry, store, backend):
        cid = store.add("gmailOAuth", _authenticated(timedelta(seconds=-5)))
        backend.token_status = 400
        backend.token_response = {"error": "invalid_grant"}

        assert await TokenManager(registry, store).get_active_token(cid) is None
        assert store.records[cid].fields["authStatus"] == "notAuthenticated"

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self, registry, store, backend):
        cid = store.add("gmailOAuth", _authenticated(timedelta(seconds=-5), refreshToken=None))
        assert await TokenManager(registry, store).get_active_token(cid) is None
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_epoch_millisecond_expiry_is_understood(self, registry, store, backend):
        expiry_ms = (datetime.now(timezone.utc) + timedelta(hours=1)).timestamp() * 1000
        cid = store.add("gmailOAuth", _authenticated(timedelta(), tokenExpiry=expiry_ms))
        assert await TokenManager(registry, store).get_active_token(cid) == "ya29.current"
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_unknown_credential(self, registry, store):
        with pytest.raises(CredentialNotFound):
            await TokenManager(registry, store).get_active_token("nope")


class TestRevoke:
    @pytest.mark.asyncio
    async def test_revoke_clears_tokens(self, registry, store, backend):
        cid = store.add("gmailOAuth", _authenticated(timedelta(hours=1)))
        assert await TokenManager(registry, store).revoke(cid) is True
        fields = store.records[cid].fields
        assert fields["accessToken"] is None
        assert fields["refreshToken"] is None
        assert fields["authStatus"] == "notAuthenticated"
        assert backend.paths() == ["/revoke"]

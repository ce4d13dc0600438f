"""
Tests for the callback state machine.
"""

import base64
import json

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from oauth.callback import CallbackHandler, CallbackStage
from oauth.context import CredentialSeed
from oauth.state import CorrelationState, ExistingCredential, PendingCredential, encode_state

from conftest import SEED


def _existing_state(cid: str, provider_key="gmail") -> str:
    return encode_state(CorrelationState(ExistingCredential(cid), provider_key, "node-1"))


def _new_state(provider_key="gmail") -> str:
    seed = CredentialSeed.model_validate(SEED)
    return encode_state(CorrelationState(PendingCredential(seed), provider_key, "node-1"))


class TestCallbackParameters:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,state", [(None, "x"), ("c", None), ("", "x"), ("c", "  ")])
    async def test_missing_parameters(self, registry, store, backend, code, state):
        outcome = await CallbackHandler(registry, store).handle(code, state, "gmail")
        assert not outcome.success
        assert outcome.status_code == 400
        assert outcome.stage is CallbackStage.AWAITING_PARAMETERS
        assert backend.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "state",
        ["%%%not-base64%%%", base64.b64encode(b"{not json").decode()],
    )
    async def test_invalid_state(self, registry, store, backend, state):
        outcome = await CallbackHandler(registry, store).handle("code", state, "gmail")
        assert outcome.status_code == 400
        assert outcome.stage is CallbackStage.PARAMETERS_VALIDATED
        assert outcome.message == "Invalid state parameter."
        assert outcome.provider_key == "gmail"
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_new_flow_without_seed(self, registry, store):
        state = base64.b64encode(json.dumps({"credentialId": "new", "providerKey": "gmail"}).encode()).decode()
        outcome = await CallbackHandler(registry, store).handle("code", state, "gmail")
        assert outcome.status_code == 400
        assert store.created == []


class TestProviderResolution:
    @pytest.mark.asyncio
    async def test_unknown_provider(self, registry, store, backend):
        cid = store.add("gmailOAuth", SEED)
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid, "dropbox"), "dropbox")
        assert outcome.status_code == 404
        assert outcome.stage is CallbackStage.STATE_DECODED
        assert "dropbox" in outcome.message
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_state_provider_wins_over_path(self, registry, store, backend):
        cid = store.add("gmailOAuth", SEED)
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid, "gmail"), "calendar")
        assert outcome.success
        assert outcome.provider_key == "gmail"
        assert "/gmail/v1/users/me/profile" in backend.paths()

    @pytest.mark.asyncio
    async def test_path_provider_used_when_state_has_none(self, registry, store):
        cid = store.add("googleCalendarOAuth", SEED)
        state = encode_state(CorrelationState(ExistingCredential(cid), None))
        outcome = await CallbackHandler(registry, store).handle("code", state, "calendar")
        assert outcome.success
        assert outcome.provider_key == "calendar"

    @pytest.mark.asyncio
    async def test_no_provider_anywhere(self, registry, store):
        state = encode_state(CorrelationState(ExistingCredential("c"), None))
        outcome = await CallbackHandler(registry, store).handle("code", state, None)
        assert outcome.status_code == 400


class TestCredentialContext:
    @pytest.mark.asyncio
    async def test_missing_credential_record(self, registry, store, backend):
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state("gone"), "gmail")
        assert outcome.status_code == 404
        assert outcome.stage is CallbackStage.PROVIDER_RESOLVED
        assert outcome.message == "Credential not found."
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_store_failure_while_loading(self, registry, store, backend):
        store.fail_load = True
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state("x"), "gmail")
        assert outcome.status_code == 500
        assert outcome.message == "An unexpected error occurred."
        assert backend.calls == []


class TestExchangeAndReconcile:
    @pytest.mark.asyncio
    async def test_existing_credential_success(self, registry, store):
        cid = store.add("gmailOAuth", {**SEED, "authStatus": "notAuthenticated"})
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid), "gmail")

        assert outcome.success
        assert outcome.status_code == 200
        assert outcome.stage is CallbackStage.RESPONSE_RENDERED
        assert outcome.credential_id == cid
        fields = store.records[cid].fields
        assert fields["authStatus"] == "authenticated"
        assert fields["accessToken"] == "ya29.access"
        assert fields["refreshToken"] == "1//refresh"
        assert fields["tokenExpiry"]
        assert fields["clientSecret"] == SEED["clientSecret"]

    @pytest.mark.asyncio
    async def test_existing_credential_keeps_refresh_token_when_omitted(self, registry, store, backend):
        cid = store.add("gmailOAuth", {**SEED, "refreshToken": "1//kept"})
        backend.token_response = {"access_token": "ya29.second", "expires_in": 3599}
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid), "gmail")
        assert outcome.success
        assert store.records[cid].fields["refreshToken"] == "1//kept"

    @pytest.mark.asyncio
    async def test_failing_probe_marks_existing_credential_not_authenticated(self, registry, store, backend):
        cid = store.add("gmailOAuth", {**SEED, "authStatus": "authenticated"})
        backend.probe_status = 401
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid), "gmail")

        assert not outcome.success
        assert outcome.status_code == 400
        assert outcome.stage is CallbackStage.RESPONSE_RENDERED
        assert store.updates == [(cid, {"authStatus": "notAuthenticated"})]
        fields = store.records[cid].fields
        assert fields["authStatus"] == "notAuthenticated"
        assert "accessToken" not in fields

    @pytest.mark.asyncio
    async def test_array_probe_body_marks_existing_credential_not_authenticated(
        self, registry, store, backend
    ):
        cid = store.add("gmailOAuth", {**SEED, "authStatus": "authenticated"})
        backend.probe_body = ["unexpected"]
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid), "gmail")

        assert outcome.status_code == 400
        assert outcome.stage is CallbackStage.RESPONSE_RENDERED
        assert "Unable to access Gmail" in outcome.message
        assert store.records[cid].fields["authStatus"] == "notAuthenticated"

    @pytest.mark.asyncio
    async def test_new_credential_success_creates_record(self, registry, store):
        outcome = await CallbackHandler(registry, store).handle("code", _new_state("calendar"), "calendar")

        assert outcome.success
        assert store.created == [outcome.credential_id]
        record = store.records[outcome.credential_id]
        assert record.credential_type == "googleCalendarOAuth"
        assert record.name == "Google Calendar"
        assert record.fields["clientId"] == SEED["clientId"]
        assert record.fields["redirectUri"] == SEED["redirectUri"]
        assert record.fields["accessToken"] == "ya29.access"
        assert record.fields["authStatus"] == "authenticated"

    @pytest.mark.asyncio
    async def test_new_credential_failure_writes_nothing(self, registry, store, backend):
        backend.probe_status = 403
        outcome = await CallbackHandler(registry, store).handle("code", _new_state(), "gmail")
        assert not outcome.success
        assert outcome.credential_id is None
        assert store.records == {}

    @pytest.mark.asyncio
    async def test_rejected_exchange_is_friendly_failure(self, registry, store, backend):
        cid = store.add("gmailOAuth", SEED)
        backend.token_status = 400
        backend.token_response = {"error": "redirect_uri_mismatch", "error_description": "Bad Request xyz-raw"}
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid), "gmail")

        assert not outcome.success
        assert outcome.message.startswith("Redirect URI mismatch")
        assert "xyz-raw" not in outcome.message
        assert store.records[cid].fields["authStatus"] == "notAuthenticated"
        assert backend.paths() == ["/token"]

    @pytest.mark.asyncio
    async def test_exchange_timeout_is_authentication_failure(self, registry, store, backend):
        cid = store.add("gmailOAuth", SEED)
        backend.raise_on_token = httpx.ReadTimeout("timed out")
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid), "gmail")
        assert not outcome.success
        assert outcome.status_code == 400
        assert store.records[cid].fields["authStatus"] == "notAuthenticated"

    @pytest.mark.asyncio
    async def test_store_failure_during_reconcile_keeps_outcome(self, registry, store):
        cid = store.add("gmailOAuth", SEED)
        store.fail_writes = True
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid), "gmail")
        assert outcome.success
        assert outcome.status_code == 200
        assert outcome.stage is CallbackStage.RESPONSE_RENDERED

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_is_internal(self, registry, store, backend):
        cid = store.add("gmailOAuth", SEED)
        backend.raise_on_token = RuntimeError("boom")
        outcome = await CallbackHandler(registry, store).handle("code", _existing_state(cid), "gmail")
        assert outcome.status_code == 500
        assert outcome.stage is CallbackStage.CREDENTIAL_CONTEXT_RESOLVED
        assert "boom" not in outcome.message


class TestReconcileCalls:
    @pytest.mark.asyncio
    async def test_new_credential_is_created_once_with_provider_type(self, registry):
        store = MagicMock()
        store.create = AsyncMock(return_value="created-id")
        store.update = AsyncMock()
        store.load = AsyncMock()

        outcome = await CallbackHandler(registry, store).handle("code", _new_state("github"), None)

        assert outcome.credential_id == "created-id"
        store.load.assert_not_called()
        store.update.assert_not_called()
        store.create.assert_awaited_once()
        args, kwargs = store.create.call_args
        assert args[0] == "githubOAuth"
        assert args[1]["authStatus"] == "authenticated"
        assert args[1]["clientSecret"] == SEED["clientSecret"]
        assert kwargs == {"name": "GitHub"}


class TestUnexpectedErrors:
    @pytest.mark.asyncio
    async def test_deeply_nested_state_is_a_bad_request(self, registry, store):
        state = base64.b64encode(b"[" * 100000).decode()
        outcome = await CallbackHandler(registry, store).handle("code", state, "gmail")

        assert outcome.status_code == 400
        assert outcome.stage is CallbackStage.PARAMETERS_VALIDATED
        assert outcome.message == "Invalid state parameter."

    @pytest.mark.asyncio
    async def test_outcome_reports_stage_reached(self, registry):
        store = MagicMock()
        store.load = AsyncMock(side_effect=RuntimeError("driver exploded"))

        outcome = await CallbackHandler(registry, store).handle("code", _existing_state("cid-1"), "gmail")

        assert outcome.status_code == 500
        assert outcome.stage is CallbackStage.PROVIDER_RESOLVED
        assert outcome.message == "An unexpected error occurred."
        assert "driver exploded" not in outcome.message

"""
Shared fixtures: an in-memory credential store and a scripted provider
backend served through ``httpx.MockTransport``.
"""

import json
import uuid
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from credentials.store import CredentialRecord, CredentialStoreError
from oauth.registry import build_default_registry

SEED = {
    "clientId": "client-123.apps.googleusercontent.com",
    "clientSecret": "s3cret",
    "redirectUri": "http://localhost:8000/api/v1/oauth/callback/gmail",
}


class InMemoryCredentialStore:
    """Dict-backed CredentialStore with switchable failures."""

    def __init__(self) -> None:
        self.records: Dict[str, CredentialRecord] = {}
        self.created: List[str] = []
        self.updates: List[tuple] = []
        self.fail_load = False
        self.fail_writes = False

    def add(self, credential_type: str, fields: Dict[str, Any]) -> str:
        cid = str(uuid.uuid4())
        self.records[cid] = CredentialRecord(id=cid, credential_type=credential_type, fields=dict(fields))
        return cid

    async def load(self, credential_id: str) -> Optional[CredentialRecord]:
        if self.fail_load:
            raise CredentialStoreError("database unavailable")
        record = self.records.get(credential_id)
        return record.model_copy(deep=True) if record else None

    async def create(self, credential_type, fields, *, name=None) -> str:
        if self.fail_writes:
            raise CredentialStoreError("database unavailable")
        cid = str(uuid.uuid4())
        self.records[cid] = CredentialRecord(
            id=cid, name=name or "", credential_type=credential_type, fields=dict(fields)
        )
        self.created.append(cid)
        return cid

    async def update(self, credential_id, fields) -> None:
        if self.fail_writes:
            raise CredentialStoreError("database unavailable")
        record = self.records.get(credential_id)
        if record is None:
            raise CredentialStoreError(f"Credential {credential_id} not found")
        record.fields.update(fields)
        self.updates.append((credential_id, dict(fields)))


class FakeProviderBackend:
    """
    Answers token, profile and revoke requests.

    ``token_response`` / ``probe_status`` etc. are mutated by tests;
    every request is recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.calls: List[httpx.Request] = []
        self.token_status = 200
        self.token_response: Dict[str, Any] = {
            "access_token": "ya29.access",
            "refresh_token": "1//refresh",
            "expires_in": 3599,
            "scope": "https://mail.google.com/",
            "token_type": "Bearer",
        }
        self.probe_status = 200
        self.probe_body: Optional[Any] = None
        self.raise_on_token: Optional[Exception] = None
        self.raise_on_probe: Optional[Exception] = None

    def paths(self) -> List[str]:
        return [request.url.path for request in self.calls]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if path in ("/token", "/login/oauth/access_token"):
            if self.raise_on_token is not None:
                raise self.raise_on_token
            return httpx.Response(self.token_status, json=self.token_response)
        if path == "/revoke":
            return httpx.Response(200)
        if self.raise_on_probe is not None:
            raise self.raise_on_probe
        if self.probe_body is not None:
            return httpx.Response(self.probe_status, json=self.probe_body)
        if path.endswith("/users/me/profile"):
            return httpx.Response(self.probe_status, json={"emailAddress": "someone@example.com"})
        if path.endswith("/users/me/calendarList"):
            return httpx.Response(
                self.probe_status,
                json={"items": [{"id": "someone@example.com", "primary": True}]},
            )
        if path == "/user":
            return httpx.Response(self.probe_status, json={"login": "octocat", "id": 1})
        return httpx.Response(404, json={"error": "not_found"})


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def backend() -> FakeProviderBackend:
    return FakeProviderBackend()


@pytest.fixture
def registry(backend):
    return build_default_registry(timeout=2.0, transport=httpx.MockTransport(backend.handler))


def form(request: httpx.Request) -> Dict[str, str]:
    """Decode an application/x-www-form-urlencoded request body."""
    return dict(httpx.QueryParams(request.content.decode()))


def json_body(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content.decode())

"""
Correlation state carried in the OAuth ``state`` query parameter.

The payload is base64-encoded JSON, round-tripped through the identity
provider unmodified::

    {"nodeId": "...", "credentialId": "<id>" | "new", "providerKey": "gmail",
     "credentialData": {"clientId": ..., "clientSecret": ..., "redirectUri": ...},
     "nonce": "..."}

It is NOT encrypted or signed.  ``credentialData`` is only present for a
credential that does not exist yet, and only holds what the initiating
caller already supplied.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from oauth.context import CredentialSeed
from oauth.errors import InvalidState

NEW_CREDENTIAL = "new"


@dataclass(frozen=True)
class ExistingCredential:
    """Tokens will be attached to an already-stored credential."""

    credential_id: str


@dataclass(frozen=True)
class PendingCredential:
    """A credential will be created once authentication succeeds."""

    seed: CredentialSeed


CredentialRef = Union[ExistingCredential, PendingCredential]


@dataclass(frozen=True)
class CorrelationState:
    credential: CredentialRef
    provider_key: Optional[str] = None
    node_id: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return isinstance(self.credential, PendingCredential)

    @property
    def credential_id(self) -> str:
        if isinstance(self.credential, ExistingCredential):
            return self.credential.credential_id
        return NEW_CREDENTIAL


def credential_ref(credential_id: Optional[str], seed: Optional[CredentialSeed]) -> CredentialRef:
    """Build the tagged reference from a raw id (or ``"new"`` / nothing)."""
    if not credential_id or credential_id == NEW_CREDENTIAL:
        if seed is None:
            raise InvalidState("A new credential flow requires credential data")
        return PendingCredential(seed)
    return ExistingCredential(credential_id)


# ── Encode ─────────────────────────────────────────────────────────────


def _to_wire(state: CorrelationState) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "nodeId": state.node_id,
        "credentialId": state.credential_id,
        "providerKey": state.provider_key,
    }
    if isinstance(state.credential, PendingCredential):
        payload["credentialData"] = state.credential.seed.as_fields()
    # Fresh per encoding, ignored on decode.
    payload["nonce"] = secrets.token_urlsafe(8)
    return payload


def encode_state(state: CorrelationState) -> str:
    raw = json.dumps(_to_wire(state), separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


# ── Decode ─────────────────────────────────────────────────────────────


def _b64decode(value: str) -> bytes:
    text = value.strip().replace("-", "+").replace("_", "/").replace(" ", "+")
    text += "=" * (-len(text) % 4)
    return base64.b64decode(text, validate=True)


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidState(f"Invalid state parameter: '{key}' must be a string")
    return value


def decode_state(value: Optional[str]) -> CorrelationState:
    """Decode a ``state`` parameter.  Any defect raises ``InvalidState``."""
    if not value:
        raise InvalidState("Missing state parameter")
    try:
        payload = json.loads(_b64decode(value).decode("utf-8"))
    except (binascii.Error, ValueError, RecursionError) as exc:
        raise InvalidState("Invalid state parameter", detail=str(exc)) from exc

    if not isinstance(payload, dict):
        raise InvalidState("Invalid state parameter: expected a JSON object")

    credential_id = _optional_str(payload, "credentialId")
    if credential_id is None:
        raise InvalidState("Invalid state parameter: missing credentialId")

    seed = None
    raw_seed = payload.get("credentialData")
    if credential_id == NEW_CREDENTIAL:
        if not isinstance(raw_seed, dict):
            raise InvalidState("Missing credential data for new OAuth credential")
        try:
            seed = CredentialSeed.model_validate(raw_seed)
        except ValidationError as exc:
            raise InvalidState("Invalid credential data in state parameter", detail=str(exc)) from exc

    return CorrelationState(
        credential=credential_ref(credential_id, seed),
        provider_key=_optional_str(payload, "providerKey"),
        node_id=_optional_str(payload, "nodeId"),
    )

"""
Pydantic models shared by the OAuth providers, callback handler and routes.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthStatus(str, Enum):
    AUTHENTICATED = "authenticated"
    NOT_AUTHENTICATED = "notAuthenticated"


# Field names of a stored OAuth credential record.
CLIENT_ID = "clientId"
CLIENT_SECRET = "clientSecret"
REDIRECT_URI = "redirectUri"
ACCESS_TOKEN = "accessToken"
REFRESH_TOKEN = "refreshToken"
TOKEN_EXPIRY = "tokenExpiry"
AUTH_STATUS = "authStatus"


class TokenResult(BaseModel):
    """Outcome of a code-for-token exchange (or a refresh)."""

    authenticated: bool
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expiry: Optional[datetime] = None
    identity_hint: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "TokenResult":
        return cls(authenticated=False, error=error)

    def token_fields(self) -> Dict[str, Any]:
        """Credential-record fields for the tokens in this result."""
        return {
            ACCESS_TOKEN: self.access_token,
            REFRESH_TOKEN: self.refresh_token,
            TOKEN_EXPIRY: self.token_expiry.isoformat() if self.token_expiry else None,
        }


# ── HTTP bodies ────────────────────────────────────────────────────────


class CredentialSeedBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: Optional[str] = Field(default=None, alias="clientId")
    client_secret: Optional[str] = Field(default=None, alias="clientSecret")
    redirect_uri: Optional[str] = Field(default=None, alias="redirectUri")


class StartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    node_id: Optional[str] = Field(default=None, alias="nodeId")
    credential_id: Optional[str] = Field(default=None, alias="credentialId")
    credential_data: Optional[CredentialSeedBody] = Field(default=None, alias="credentialData")


class StartAuthRequest(BaseModel):
    """Body of the credential-centric ``/credentials/startauth`` route."""

    model_config = ConfigDict(populate_by_name=True)

    credential_id: Optional[str] = Field(default=None, alias="credentialId")
    credential_name: str = Field(..., alias="credentialName")
    credential_data: Optional[CredentialSeedBody] = Field(default=None, alias="credentialData")

"""
GoogleProvider — shared OAuth2 web flow for Google APIs.

Gmail and Google Calendar use the same consent screen, token endpoint and
revocation endpoint; they differ only in scopes, credential type and the
probe call used to check the granted tokens.
"""

from __future__ import annotations

import logging

import httpx

from oauth.base import BaseProvider
from oauth.context import CredentialContext

logger = logging.getLogger(__name__)

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"


class GoogleProvider(BaseProvider):
    """Base for providers that authenticate against Google accounts."""

    @property
    def authorization_endpoint(self) -> str:
        return _GOOGLE_AUTH_URL

    @property
    def token_endpoint(self) -> str:
        return _GOOGLE_TOKEN_URL

    async def revoke_token(self, token: str, context: CredentialContext) -> bool:
        """Revoke the token at Google."""
        try:
            async with self._client() as client:
                resp = await client.post(_GOOGLE_REVOKE_URL, params={"token": token})
                return resp.status_code == 200
        except httpx.HTTPError:
            logger.warning("%s token revocation failed", self.display_name, exc_info=True)
            return False

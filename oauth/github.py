"""
GitHubProvider — OAuth2 for GitHub API access.

GitHub ignores ``access_type`` / ``prompt``; refresh tokens are only issued
to GitHub Apps with "Expire user authorization tokens" enabled.  Classic
OAuth tokens don't expire, so ``token_expiry`` may be None.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import httpx

from oauth.base import BaseProvider
from oauth.context import CredentialContext

logger = logging.getLogger(__name__)

# GitHub OAuth2 endpoints
_GH_AUTH_URL = "https://github.com/login/oauth/authorize"
_GH_TOKEN_URL = "https://github.com/login/oauth/access_token"
_GH_API = "https://api.github.com"


class GitHubProvider(BaseProvider):
    """OAuth2 provider for GitHub."""

    @property
    def provider_key(self) -> str:
        return "github"

    @property
    def display_name(self) -> str:
        return "GitHub"

    @property
    def credential_type(self) -> str:
        return "githubOAuth"

    @property
    def scopes(self) -> Tuple[str, ...]:
        return ("repo", "read:user", "user:email")

    @property
    def authorization_endpoint(self) -> str:
        return _GH_AUTH_URL

    @property
    def token_endpoint(self) -> str:
        return _GH_TOKEN_URL

    def extra_authorization_params(self) -> Dict[str, str]:
        return {"allow_signup": "false"}

    async def probe(self, client: httpx.AsyncClient, access_token: str) -> Optional[str]:
        """Fetch the authenticated user; returns the login."""
        resp = await client.get(
            f"{_GH_API}/user",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/vnd.github+json",
            },
        )
        return self._hint(self._json_object(resp).get("login"))

    async def revoke_token(self, token: str, context: CredentialContext) -> bool:
        """Revoke the token via GitHub's OAuth application API."""
        try:
            async with self._client() as client:
                resp = await client.request(
                    "DELETE",
                    f"{_GH_API}/applications/{context.client_id}/token",
                    auth=(context.client_id or "", context.client_secret or ""),
                    json={"access_token": token},
                )
                return resp.status_code == 204
        except httpx.HTTPError:
            logger.warning("GitHub token revocation failed", exc_info=True)
            return False

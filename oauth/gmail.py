"""
GmailProvider — OAuth2 web flow for Gmail.

Uses Google's OAuth2 to get per-credential Gmail access without the user
sharing their password with the application.
"""

from __future__ import annotations

from typing import Optional, Tuple

import httpx

from oauth.google import GoogleProvider

_GMAIL_PROFILE_URL = "https://gmail.googleapis.com/gmail/v1/users/me/profile"


class GmailProvider(GoogleProvider):
    """OAuth2 provider for Gmail."""

    @property
    def provider_key(self) -> str:
        return "gmail"

    @property
    def display_name(self) -> str:
        return "Gmail"

    @property
    def credential_type(self) -> str:
        return "gmailOAuth"

    @property
    def scopes(self) -> Tuple[str, ...]:
        return (
            "https://mail.google.com/",
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/gmail.send",
            "https://www.googleapis.com/auth/gmail.compose",
            "https://www.googleapis.com/auth/gmail.modify",
            "https://www.googleapis.com/auth/gmail.labels",
            "https://www.googleapis.com/auth/gmail.settings.basic",
        )

    async def probe(self, client: httpx.AsyncClient, access_token: str) -> Optional[str]:
        """Fetch the mailbox profile; returns the account's email address."""
        resp = await client.get(
            _GMAIL_PROFILE_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return self._hint(self._json_object(resp).get("emailAddress"))

"""
OAuth error taxonomy and the provider-error → friendly-message table.

Caller errors (``BadRequest`` / ``NotFound``) are terminal and never retried.
Provider-side authentication failures are *data* (``TokenResult`` with
``authenticated=False``); ``TokenExchangeError`` only carries them from a
provider up to the callback handler, which converts it.
"""

from __future__ import annotations

from typing import List, Optional, Tuple


class OAuthError(Exception):
    """Base class for every error raised by the OAuth core."""

    status_code: int = 500

    def __init__(self, message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


# ── 4xx: caller errors ─────────────────────────────────────────────────


class BadRequest(OAuthError):
    status_code = 400


class InvalidState(BadRequest):
    """The OAuth ``state`` parameter could not be decoded."""


class MissingCredentials(BadRequest):
    """clientId / clientSecret / redirectUri blank after resolution."""

    def __init__(self, missing: List[str], display_name: str = "OAuth") -> None:
        self.missing = list(missing)
        super().__init__(
            f"Missing required credentials for {display_name}: "
            f"{', '.join(self.missing)}. Please configure the OAuth credentials first."
        )


class NotFound(OAuthError):
    status_code = 404


class ProviderNotFound(NotFound):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"OAuth provider not found: {key}")


class CredentialNotFound(NotFound):
    def __init__(self, credential_id: str) -> None:
        self.credential_id = credential_id
        super().__init__(f"Credential not found: {credential_id}")


# ── 5xx ────────────────────────────────────────────────────────────────


class Internal(OAuthError):
    status_code = 500


class TokenExchangeError(OAuthError):
    """The provider rejected (or never answered) a token-endpoint call."""

    status_code = 502


# ── Friendly messages ──────────────────────────────────────────────────

# Ordered: first matching provider error code wins.
FRIENDLY_ERRORS: Tuple[Tuple[str, str], ...] = (
    (
        "invalid_client",
        "Invalid client credentials. Please verify your Client ID and Client Secret are correct.",
    ),
    (
        "redirect_uri_mismatch",
        "Redirect URI mismatch. Please ensure the redirect URI matches what is "
        "configured in your OAuth settings.",
    ),
    (
        "access_denied",
        "Access was denied. The user may have declined authorization, or the "
        "request may be missing required parameters.",
    ),
    (
        "invalid_grant",
        "The authorization code is invalid or has expired. Please start the "
        "authentication again.",
    ),
    (
        "unauthorized_client",
        "This client is not allowed to use the authorization-code flow. Please "
        "check the OAuth client type in the provider console.",
    ),
    (
        "invalid_scope",
        "The provider rejected the requested permissions. Please check the "
        "scopes enabled for this OAuth client.",
    ),
    (
        "insufficient",
        "The granted permissions are not sufficient. Please accept all "
        "requested permissions on the consent screen.",
    ),
    (
        "timed out",
        "The provider did not respond in time. Please try again.",
    ),
    (
        "timeout",
        "The provider did not respond in time. Please try again.",
    ),
)


def friendly_message(
    raw: Optional[str], display_name: str = "OAuth", default: Optional[str] = None
) -> str:
    """Map a raw provider error onto end-user guidance.

    Raw text is matched case-insensitively against ``FRIENDLY_ERRORS``;
    unknown errors get ``default``, or a generic message rather than the
    raw string.
    """
    text = (raw or "").lower()
    for code, message in FRIENDLY_ERRORS:
        if code in text:
            return message
    if default is not None:
        return default
    return f"{display_name} authentication failed. Please try again."

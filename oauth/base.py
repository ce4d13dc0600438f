"""
BaseProvider — abstract interface for all OAuth2 identity providers.

Every provider (Gmail, Google Calendar, GitHub, …) subclasses this and
declares its identity, its fixed scope list and its endpoints.  The two
flow operations are the same for every provider:

  • ``start_oauth``      — build the consent URL (no network I/O)
  • ``handle_callback``  — one token exchange, then one probe call
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from config.settings import config
from oauth.context import CredentialContext
from oauth.errors import TokenExchangeError
from oauth.models import TokenResult
from oauth.state import CorrelationState, encode_state

logger = logging.getLogger(__name__)


class BaseProvider(ABC):
    """Abstract base for all OAuth2 providers."""

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout if timeout is not None else config.oauth_http_timeout
        self._transport = transport

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider_key(self) -> str:
        """Unique slug used in URLs and state payloads: 'gmail', 'calendar'."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @property
    @abstractmethod
    def credential_type(self) -> str:
        """Credential-store schema name: 'gmailOAuth', 'googleCalendarOAuth'."""
        ...

    @property
    @abstractmethod
    def scopes(self) -> Tuple[str, ...]:
        ...

    # ── Endpoints ───────────────────────────────────────────────────────
    @property
    @abstractmethod
    def authorization_endpoint(self) -> str:
        ...

    @property
    @abstractmethod
    def token_endpoint(self) -> str:
        ...

    def describe(self) -> Dict[str, Any]:
        return {
            "providerKey": self.provider_key,
            "displayName": self.display_name,
            "credentialType": self.credential_type,
            "scopes": list(self.scopes),
        }

    # ── OAuth flow ──────────────────────────────────────────────────────

    def start_oauth(self, context: CredentialContext, correlation: CorrelationState) -> str:
        """
        Build the provider's authorization URL.

        Parameters
        ----------
        context : CredentialContext
            Resolved client credentials.  All three fields must be present.
        correlation : CorrelationState
            Encoded into the ``state`` parameter.

        Raises
        ------
        MissingCredentials
            clientId, clientSecret or redirectUri is blank.
        """
        context.require(self.display_name)
        params = {
            "client_id": context.client_id,
            "redirect_uri": context.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",   # gets refresh_token
            "prompt": "consent",        # force consent to always get refresh_token
            "state": encode_state(correlation),
        }
        params.update(self.extra_authorization_params())
        logger.info("%s authorization URL generated", self.display_name)
        return f"{self.authorization_endpoint}?{urlencode(params)}"

    def extra_authorization_params(self) -> Dict[str, str]:
        return {}

    async def handle_callback(self, code: str, context: CredentialContext) -> TokenResult:
        """
        Exchange the authorization code for tokens, then probe them.

        Raises ``TokenExchangeError`` when the exchange itself fails.  A
        failing probe is returned as ``TokenResult(authenticated=False)``.
        """
        context.require(self.display_name)
        async with self._client() as client:
            token_data = await self._token_request(
                client,
                {
                    "code": code,
                    "client_id": context.client_id,
                    "client_secret": context.client_secret,
                    "redirect_uri": context.redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            access_token = token_data.get("access_token")
            if not access_token:
                raise TokenExchangeError(
                    f"{self.display_name} token response carried no access_token",
                    detail=str(token_data.get("error") or "missing access_token"),
                )

            try:
                identity = await self.probe(client, access_token)
            except (httpx.HTTPError, KeyError, ValueError) as exc:
                logger.warning("%s probe call failed: %s", self.display_name, exc)
                return TokenResult.failed(
                    f"Authentication failed: Unable to access {self.display_name} "
                    "with provided credentials"
                )

        return TokenResult(
            authenticated=True,
            access_token=access_token,
            refresh_token=token_data.get("refresh_token"),
            token_expiry=self._expiry(token_data),
            identity_hint=identity,
        )

    @abstractmethod
    async def probe(self, client: httpx.AsyncClient, access_token: str) -> Optional[str]:
        """
        Make one lightweight authenticated API call.

        Returns an identity hint (e.g. the account address).  Any HTTP error
        means the tokens are not usable.
        """
        ...

    async def refresh_access_token(
        self, refresh_token: str, context: CredentialContext
    ) -> TokenResult:
        """Use a refresh token to get a new access token."""
        context.require(self.display_name)
        async with self._client() as client:
            data = await self._token_request(
                client,
                {
                    "client_id": context.client_id,
                    "client_secret": context.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        if not data.get("access_token"):
            raise TokenExchangeError(
                f"{self.display_name} refresh response carried no access_token",
                detail=str(data.get("error") or "missing access_token"),
            )
        return TokenResult(
            authenticated=True,
            access_token=data["access_token"],
            # Some providers rotate refresh tokens
            refresh_token=data.get("refresh_token") or refresh_token,
            token_expiry=self._expiry(data),
        )

    async def revoke_token(self, token: str, context: CredentialContext) -> bool:
        """
        Revoke the token at the provider (optional).
        Returns True on success, False if provider doesn't support revocation.
        """
        return False

    # ── Helpers ─────────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _token_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def _token_request(self, client: httpx.AsyncClient, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = await client.post(self.token_endpoint, data=data, headers=self._token_headers())
        except httpx.HTTPError as exc:
            raise TokenExchangeError(
                f"{self.display_name} token endpoint unreachable", detail=repr(exc)
            ) from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.is_error or "error" in body:
            error = body.get("error") or f"HTTP {resp.status_code}"
            description = body.get("error_description")
            raw = f"{error}: {description}" if description else str(error)
            raise TokenExchangeError(f"{self.display_name} token request failed", detail=raw)
        return body

    @staticmethod
    def _json_object(resp: httpx.Response) -> Dict[str, Any]:
        """Body of a successful probe response.  Anything but a JSON object is a ValueError."""
        resp.raise_for_status()
        body = resp.json()
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")
        return body

    @staticmethod
    def _hint(value: Any) -> Optional[str]:
        return value if isinstance(value, str) and value else None

    def _expiry(self, token_data: Dict[str, Any]) -> Optional[datetime]:
        expires_in = token_data.get("expires_in")
        if expires_in in (None, ""):
            return None
        try:
            seconds = int(expires_in)
        except (TypeError, ValueError):
            return None
        return datetime.now(timezone.utc) + timedelta(seconds=seconds)

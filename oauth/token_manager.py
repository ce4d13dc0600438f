"""
Token manager — get / refresh / revoke the tokens of a stored credential.

This is the single interface that tools use to get an active token for a
credential id.  The provider is found through the credential's type.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import httpx

from config.settings import config
from credentials.store import CredentialRecord, CredentialStore, CredentialStoreError
from oauth.base import BaseProvider
from oauth.context import CredentialSources, resolve_credential_context
from oauth.errors import CredentialNotFound, Internal, TokenExchangeError, friendly_message
from oauth.models import (
    ACCESS_TOKEN,
    AUTH_STATUS,
    REFRESH_TOKEN,
    TOKEN_EXPIRY,
    AuthStatus,
    TokenResult,
)
from oauth.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def _parse_expiry(value: object) -> Optional[datetime]:
    if not value:
        return None
    try:
        if isinstance(value, (int, float)):
            # epoch milliseconds, as written by older clients
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        parsed = datetime.fromisoformat(str(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class TokenManager:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: CredentialStore,
        *,
        refresh_buffer: Optional[int] = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._buffer = timedelta(
            seconds=config.oauth_refresh_buffer_seconds if refresh_buffer is None else refresh_buffer
        )

    async def _load(self, credential_id: str) -> Tuple[CredentialRecord, BaseProvider]:
        try:
            record = await self._store.load(credential_id)
        except CredentialStoreError as exc:
            raise Internal("Failed to load credential", detail=str(exc)) from exc
        if record is None:
            raise CredentialNotFound(credential_id)
        return record, self._registry.find_by_credential_type(record.credential_type)

    async def get_active_token(self, credential_id: str) -> Optional[str]:
        """
        Get a valid access token for the credential.

        1. Load the credential; not authenticated → None.
        2. If the token is (nearly) expired, refresh it.
        3. Return the access token, or None if it cannot be refreshed.
        """
        record, provider = await self._load(credential_id)
        fields = record.fields
        if fields.get(AUTH_STATUS) != AuthStatus.AUTHENTICATED.value or not fields.get(ACCESS_TOKEN):
            return None

        expiry = _parse_expiry(fields.get(TOKEN_EXPIRY))
        if expiry is None or expiry > datetime.now(timezone.utc) + self._buffer:
            return fields[ACCESS_TOKEN]

        result = await self._refresh(record, provider)
        return result.access_token if result.authenticated else None

    async def refresh(self, credential_id: str) -> TokenResult:
        """Force a refresh regardless of the stored expiry."""
        record, provider = await self._load(credential_id)
        return await self._refresh(record, provider)

    async def _refresh(self, record: CredentialRecord, provider: BaseProvider) -> TokenResult:
        refresh_token = record.fields.get(REFRESH_TOKEN)
        if not refresh_token:
            result = TokenResult.failed("Token expired and no refresh token available")
        else:
            context = resolve_credential_context(CredentialSources(stored=record.fields))
            try:
                result = await provider.refresh_access_token(refresh_token, context)
            except TokenExchangeError as exc:
                logger.warning("Token refresh failed for %s/%s: %s", provider.provider_key, record.id, exc.detail)
                result = TokenResult.failed(friendly_message(exc.detail, provider.display_name))
            except httpx.HTTPError as exc:
                logger.warning("Token refresh failed for %s/%s: %r", provider.provider_key, record.id, exc)
                result = TokenResult.failed(friendly_message(str(exc), provider.display_name))

        if result.authenticated:
            fields = result.token_fields()
            fields[AUTH_STATUS] = AuthStatus.AUTHENTICATED.value
            logger.info("Refreshed %s token for credential %s", provider.provider_key, record.id)
        else:
            fields = {AUTH_STATUS: AuthStatus.NOT_AUTHENTICATED.value}
        try:
            await self._store.update(record.id, fields)
        except CredentialStoreError:
            logger.exception("Failed to store refreshed tokens for credential %s", record.id)
        return result

    async def revoke(self, credential_id: str) -> bool:
        """
        Revoke the credential's tokens at the provider (best-effort) and
        clear them locally.  Returns whether the provider confirmed.
        """
        record, provider = await self._load(credential_id)
        token = record.fields.get(REFRESH_TOKEN) or record.fields.get(ACCESS_TOKEN)
        revoked = False
        if token:
            context = resolve_credential_context(CredentialSources(stored=record.fields))
            revoked = await provider.revoke_token(token, context)

        try:
            await self._store.update(
                record.id,
                {
                    ACCESS_TOKEN: None,
                    REFRESH_TOKEN: None,
                    TOKEN_EXPIRY: None,
                    AUTH_STATUS: AuthStatus.NOT_AUTHENTICATED.value,
                },
            )
        except CredentialStoreError as exc:
            raise Internal("Failed to clear credential tokens", detail=str(exc)) from exc
        logger.info("Disconnected %s credential %s (revoked=%s)", provider.provider_key, record.id, revoked)
        return revoked

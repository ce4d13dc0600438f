"""
AuthorizationInitiator — entry point for "start auth".

Resolves which provider handles the flow and where the client credentials
come from, builds the correlation state and asks the provider for its
consent URL.  Holds no per-flow state.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from credentials.store import CredentialStore, CredentialStoreError
from oauth.context import CredentialSources, resolve_credential_context
from oauth.errors import CredentialNotFound, Internal
from oauth.registry import ProviderRegistry
from oauth.state import (
    NEW_CREDENTIAL,
    CorrelationState,
    ExistingCredential,
    PendingCredential,
)

logger = logging.getLogger(__name__)


class AuthorizationInitiator:
    def __init__(self, registry: ProviderRegistry, store: CredentialStore) -> None:
        self._registry = registry
        self._store = store

    async def start_flow(
        self,
        provider_key: str,
        credential_id: Optional[str] = None,
        seed: Optional[Mapping[str, Any]] = None,
        *,
        node_id: Optional[str] = None,
        override: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Return the provider's authorization URL.

        Parameters
        ----------
        provider_key : str
            Registered provider key (``ProviderNotFound`` otherwise).
        credential_id : str, optional
            Existing credential to attach tokens to; absent or ``"new"``
            means a credential is created after successful auth.
        seed : mapping, optional
            Caller-supplied ``clientId`` / ``clientSecret`` / ``redirectUri``.
        override : mapping, optional
            Per-call values that win over every other source.
        """
        provider = self._registry.get(provider_key)
        logger.info(
            "Starting OAuth flow for provider %s (credential=%s)",
            provider.provider_key,
            credential_id or NEW_CREDENTIAL,
        )

        if not credential_id or credential_id == NEW_CREDENTIAL:
            context = resolve_credential_context(
                CredentialSources(override=override, caller=seed)
            )
            credential = PendingCredential(context.require(provider.display_name).to_seed())
        else:
            try:
                record = await self._store.load(credential_id)
            except CredentialStoreError as exc:
                logger.exception("Failed to load credential %s", credential_id)
                raise Internal("Failed to load credential", detail=str(exc)) from exc
            if record is None:
                raise CredentialNotFound(credential_id)
            context = resolve_credential_context(
                CredentialSources(override=override, caller=seed, stored=record.fields)
            )
            credential = ExistingCredential(credential_id)

        correlation = CorrelationState(
            credential=credential,
            provider_key=provider.provider_key,
            node_id=node_id,
        )
        return provider.start_oauth(context, correlation)

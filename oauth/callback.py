"""
CallbackHandler — receives the provider's redirect and finishes the flow.

Stages, in order::

    AWAITING_PARAMETERS → PARAMETERS_VALIDATED → STATE_DECODED
      → PROVIDER_RESOLVED → CREDENTIAL_CONTEXT_RESOLVED → TOKEN_EXCHANGED
      → CREDENTIAL_RECONCILED → RESPONSE_RENDERED

Every exit produces a ``CallbackOutcome``; nothing raised inside the
handler reaches the browser.  Parameter, state and lookup defects are
terminal caller errors.  Provider-side authentication failures are data
(``TokenResult.authenticated = False``).  Storage failures while writing
the result are logged and do not change the outcome.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from credentials.store import CredentialStore, CredentialStoreError
from oauth.base import BaseProvider
from oauth.context import CredentialContext, CredentialSources, resolve_credential_context
from oauth.errors import (
    BadRequest,
    CredentialNotFound,
    Internal,
    OAuthError,
    TokenExchangeError,
    friendly_message,
)
from oauth.models import AUTH_STATUS, REFRESH_TOKEN, AuthStatus, TokenResult
from oauth.registry import ProviderRegistry
from oauth.state import CorrelationState, ExistingCredential, PendingCredential, decode_state

logger = logging.getLogger(__name__)


class CallbackStage(str, Enum):
    AWAITING_PARAMETERS = "AwaitingParameters"
    PARAMETERS_VALIDATED = "ParametersValidated"
    STATE_DECODED = "StateDecoded"
    PROVIDER_RESOLVED = "ProviderResolved"
    CREDENTIAL_CONTEXT_RESOLVED = "CredentialContextResolved"
    TOKEN_EXCHANGED = "TokenExchanged"
    CREDENTIAL_RECONCILED = "CredentialReconciled"
    RESPONSE_RENDERED = "ResponseRendered"


# Page text for terminal failures; never the raw exception text.
_STAGE_FAILURE_MESSAGES = {
    CallbackStage.AWAITING_PARAMETERS: "Missing required parameters.",
    CallbackStage.PARAMETERS_VALIDATED: "Invalid state parameter.",
    CallbackStage.PROVIDER_RESOLVED: "Credential not found.",
}
_UNEXPECTED_MESSAGE = "An unexpected error occurred."


class _Progress:
    """Last stage reached by one callback run."""

    def __init__(self) -> None:
        self.stage = CallbackStage.AWAITING_PARAMETERS

    def advance(self, stage: CallbackStage) -> CallbackStage:
        logger.debug("OAuth callback → %s", stage.value)
        self.stage = stage
        return stage


@dataclass(frozen=True)
class CallbackOutcome:
    success: bool
    status_code: int
    stage: CallbackStage
    message: str
    provider_key: Optional[str] = None
    display_name: Optional[str] = None
    credential_id: Optional[str] = None
    result: Optional[TokenResult] = None


class CallbackHandler:
    def __init__(self, registry: ProviderRegistry, store: CredentialStore) -> None:
        self._registry = registry
        self._store = store

    async def handle(
        self,
        code: Optional[str],
        state: Optional[str],
        path_provider_key: Optional[str] = None,
    ) -> CallbackOutcome:
        """
        Run the callback state machine.

        Parameters
        ----------
        code, state : str
            Query parameters from the provider redirect.
        path_provider_key : str, optional
            Provider key from the route path.  The key inside ``state``
            takes precedence; legacy routes pass None.
        """
        progress = _Progress()
        try:
            return await self._run(progress, code, state, path_provider_key)
        except Exception:
            logger.exception("Unexpected error in OAuth callback after %s", progress.stage.value)
            return CallbackOutcome(
                success=False,
                status_code=500,
                stage=progress.stage,
                message=_UNEXPECTED_MESSAGE,
                provider_key=path_provider_key,
            )

    async def _run(
        self,
        progress: _Progress,
        code: Optional[str],
        state: Optional[str],
        path_provider_key: Optional[str],
    ) -> CallbackOutcome:
        stage = progress.stage
        if not (code or "").strip() or not (state or "").strip():
            return self._terminal(stage, BadRequest("Missing code or state parameter"), path_provider_key)

        stage = progress.advance(CallbackStage.PARAMETERS_VALIDATED)
        try:
            correlation = decode_state(state)
        except BadRequest as exc:
            return self._terminal(stage, exc, path_provider_key)

        stage = progress.advance(CallbackStage.STATE_DECODED)
        key = correlation.provider_key or path_provider_key
        if correlation.provider_key and path_provider_key and correlation.provider_key != path_provider_key:
            logger.warning(
                "Callback path provider %s differs from state provider %s; using state",
                path_provider_key,
                correlation.provider_key,
            )
        if not key:
            return self._terminal(stage, BadRequest("OAuth provider is required"), None)
        try:
            provider = self._registry.get(key)
        except OAuthError as exc:
            return self._terminal(stage, exc, key)
        logger.info("Using OAuth provider: %s (%s)", provider.display_name, provider.provider_key)

        stage = progress.advance(CallbackStage.PROVIDER_RESOLVED)
        try:
            context = await self._resolve_context(provider, correlation)
        except OAuthError as exc:
            return self._terminal(stage, exc, provider.provider_key, provider)

        stage = progress.advance(CallbackStage.CREDENTIAL_CONTEXT_RESOLVED)
        try:
            # Shielded: a disconnecting browser must not cancel reconciliation.
            return await asyncio.shield(self._complete(progress, provider, correlation, context, code))
        except OAuthError as exc:
            return self._terminal(stage, exc, provider.provider_key, provider)

    # ── Stages ─────────────────────────────────────────────────────────

    async def _resolve_context(
        self, provider: BaseProvider, correlation: CorrelationState
    ) -> CredentialContext:
        credential = correlation.credential
        if isinstance(credential, PendingCredential):
            logger.info("New credential is being created during OAuth flow")
            return CredentialContext.from_seed(credential.seed).require(provider.display_name)

        try:
            record = await self._store.load(credential.credential_id)
        except CredentialStoreError as exc:
            logger.exception("Failed to load credential %s", credential.credential_id)
            raise Internal("Failed to load credential", detail=str(exc)) from exc
        if record is None:
            raise CredentialNotFound(credential.credential_id)
        if record.credential_type != provider.credential_type:
            logger.warning(
                "Credential %s has type %s, provider %s expects %s",
                record.id,
                record.credential_type,
                provider.provider_key,
                provider.credential_type,
            )
        context = resolve_credential_context(CredentialSources(stored=record.fields))
        return context.require(provider.display_name)

    async def _complete(
        self,
        progress: _Progress,
        provider: BaseProvider,
        correlation: CorrelationState,
        context: CredentialContext,
        code: str,
    ) -> CallbackOutcome:
        result = await self._exchange(provider, context, code)
        progress.advance(CallbackStage.TOKEN_EXCHANGED)

        credential_id = await self._reconcile(provider, correlation, result)
        progress.advance(CallbackStage.CREDENTIAL_RECONCILED)

        if result.authenticated:
            account = f" ({result.identity_hint})" if result.identity_hint else ""
            message = f"Your {provider.display_name} account{account} has been successfully connected."
            logger.info(
                "OAuth connected: provider=%s credential=%s",
                provider.provider_key,
                credential_id,
            )
        else:
            message = result.error or friendly_message(None, provider.display_name)
            logger.info(
                "OAuth authentication failed: provider=%s credential=%s",
                provider.provider_key,
                correlation.credential_id,
            )

        return CallbackOutcome(
            success=result.authenticated,
            status_code=200 if result.authenticated else 400,
            stage=progress.advance(CallbackStage.RESPONSE_RENDERED),
            message=message,
            provider_key=provider.provider_key,
            display_name=provider.display_name,
            credential_id=credential_id,
            result=result,
        )

    async def _exchange(
        self, provider: BaseProvider, context: CredentialContext, code: str
    ) -> TokenResult:
        try:
            return await provider.handle_callback(code, context)
        except TokenExchangeError as exc:
            logger.warning(
                "%s token exchange failed: %s (%s)", provider.display_name, exc.message, exc.detail
            )
            return TokenResult.failed(friendly_message(exc.detail, provider.display_name))
        except httpx.HTTPError as exc:
            logger.warning("%s token exchange failed: %r", provider.display_name, exc)
            return TokenResult.failed(friendly_message(str(exc) or repr(exc), provider.display_name))
        except OAuthError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error during %s token exchange", provider.display_name)
            raise Internal(_UNEXPECTED_MESSAGE, detail=repr(exc)) from exc

    async def _reconcile(
        self, provider: BaseProvider, correlation: CorrelationState, result: TokenResult
    ) -> Optional[str]:
        """Write the outcome to the store.  Best-effort."""
        credential = correlation.credential
        try:
            if result.authenticated:
                fields = result.token_fields()
                fields[AUTH_STATUS] = AuthStatus.AUTHENTICATED.value
                if isinstance(credential, PendingCredential):
                    return await self._store.create(
                        provider.credential_type,
                        {**credential.seed.as_fields(), **fields},
                        name=provider.display_name,
                    )
                # Providers omit refresh_token on some re-consents; keep the stored one.
                if not result.refresh_token:
                    fields.pop(REFRESH_TOKEN)
                await self._store.update(credential.credential_id, fields)
                return credential.credential_id

            if isinstance(credential, ExistingCredential):
                await self._store.update(
                    credential.credential_id,
                    {AUTH_STATUS: AuthStatus.NOT_AUTHENTICATED.value},
                )
                return credential.credential_id
            logger.info("Authentication failed for new %s credential; nothing stored", provider.display_name)
            return None
        except Exception:
            logger.exception(
                "Error reconciling %s credential %s", provider.display_name, correlation.credential_id
            )
            return None

    # ── Helpers ────────────────────────────────────────────────────────

    @staticmethod
    def _terminal(
        stage: CallbackStage,
        exc: OAuthError,
        provider_key: Optional[str],
        provider: Optional[BaseProvider] = None,
    ) -> CallbackOutcome:
        if isinstance(exc, Internal):
            message = _UNEXPECTED_MESSAGE
        elif stage is CallbackStage.STATE_DECODED:
            message = exc.message
        elif stage is CallbackStage.PROVIDER_RESOLVED and not isinstance(exc, CredentialNotFound):
            message = exc.message
        else:
            message = _STAGE_FAILURE_MESSAGES.get(stage, _UNEXPECTED_MESSAGE)
        logger.warning(
            "OAuth callback failed at %s: %s%s",
            stage.value,
            exc.message,
            f" ({exc.detail})" if exc.detail else "",
        )
        return CallbackOutcome(
            success=False,
            status_code=exc.status_code,
            stage=stage,
            message=message,
            provider_key=provider_key,
            display_name=provider.display_name if provider else None,
        )

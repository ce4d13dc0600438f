"""
OAuth API routes — start flow, provider callback, token lifecycle.

Route prefixes: /api/v1/oauth and /api/v1/credentials
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse

from oauth.callback import CallbackHandler
from oauth.errors import OAuthError, friendly_message
from oauth.initiator import AuthorizationInitiator
from oauth.models import CredentialSeedBody, StartAuthRequest, StartRequest
from oauth.pages import render_callback_page
from oauth.registry import ProviderRegistry
from oauth.token_manager import TokenManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])
credentials_router = APIRouter(tags=["credentials"])


# ── Dependencies ───────────────────────────────────────────────────────
# Instances are built once by main.create_app and kept on app.state.


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.oauth_registry


def get_initiator(request: Request) -> AuthorizationInitiator:
    return request.app.state.oauth_initiator


def get_callback_handler(request: Request) -> CallbackHandler:
    return request.app.state.oauth_callback_handler


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.oauth_token_manager


# ── Error helpers ──────────────────────────────────────────────────────


def _error_response(exc: Exception, fallback: str) -> JSONResponse:
    """JSON error body for programmatic callers; raw detail included."""
    if isinstance(exc, OAuthError):
        status_code = exc.status_code
        message = friendly_message(exc.message, default=exc.message)
        details = exc.detail or exc.message
    else:
        logger.exception("Unexpected error: %s", fallback)
        status_code = 500
        message = friendly_message(str(exc), default=str(exc) or fallback)
        details = repr(exc)
    return JSONResponse(
        status_code=status_code,
        content={"message": message or fallback, "details": details},
    )


def _seed(body: Optional[CredentialSeedBody]) -> Optional[Dict[str, Any]]:
    if body is None:
        return None
    return body.model_dump(by_alias=True, exclude_none=True)


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/providers")
async def list_providers(registry: ProviderRegistry = Depends(get_registry)) -> list[dict]:
    """List all registered OAuth providers."""
    return [provider.describe() for provider in registry.all()]


@router.post("/start/{provider_key}")
async def start_oauth(
    provider_key: str,
    body: StartRequest,
    initiator: AuthorizationInitiator = Depends(get_initiator),
):
    """
    Start the OAuth flow for a provider.

    Frontend should open the returned ``authUrl`` in a popup window.
    """
    try:
        auth_url = await initiator.start_flow(
            provider_key,
            body.credential_id,
            _seed(body.credential_data),
            node_id=body.node_id,
        )
    except Exception as exc:
        logger.warning("Error starting OAuth flow for %s: %s", provider_key, exc)
        return _error_response(exc, "Failed to start OAuth flow")
    return {"authUrl": auth_url}


async def _callback(
    handler: CallbackHandler,
    code: Optional[str],
    state: Optional[str],
    provider_key: Optional[str],
) -> HTMLResponse:
    outcome = await handler.handle(code, state, provider_key)
    return HTMLResponse(content=render_callback_page(outcome), status_code=outcome.status_code)


@router.get("/callback/{provider_key}")
async def oauth_callback(
    provider_key: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    handler: CallbackHandler = Depends(get_callback_handler),
) -> HTMLResponse:
    """
    OAuth callback — the provider redirects here after consent.

    Always answers with an HTML page, success or failure.
    """
    return await _callback(handler, code, state, provider_key)


@router.get("/callback")
async def oauth_callback_legacy(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    handler: CallbackHandler = Depends(get_callback_handler),
) -> HTMLResponse:
    """Single fixed callback path; the provider comes from ``state``."""
    return await _callback(handler, code, state, None)


@router.post("/credentials/{credential_id}/refresh")
async def refresh_credential(
    credential_id: str,
    tokens: TokenManager = Depends(get_token_manager),
):
    try:
        result = await tokens.refresh(credential_id)
    except Exception as exc:
        logger.warning("Error refreshing credential %s: %s", credential_id, exc)
        return _error_response(exc, "Failed to refresh credential")
    return {
        "authenticated": result.authenticated,
        "tokenExpiry": result.token_expiry.isoformat() if result.token_expiry else None,
        "error": result.error,
    }


@router.post("/credentials/{credential_id}/revoke")
async def revoke_credential(
    credential_id: str,
    tokens: TokenManager = Depends(get_token_manager),
):
    try:
        revoked = await tokens.revoke(credential_id)
    except Exception as exc:
        logger.warning("Error revoking credential %s: %s", credential_id, exc)
        return _error_response(exc, "Failed to revoke credential")
    return {"revoked": revoked, "credentialId": credential_id}


@credentials_router.post("/startauth")
async def start_auth_for_credential(
    body: StartAuthRequest,
    registry: ProviderRegistry = Depends(get_registry),
    initiator: AuthorizationInitiator = Depends(get_initiator),
):
    """Start OAuth for a credential type (e.g. ``gmailOAuth``)."""
    try:
        provider = registry.find_by_credential_type(body.credential_name)
        auth_url = await initiator.start_flow(
            provider.provider_key,
            body.credential_id,
            _seed(body.credential_data),
        )
    except Exception as exc:
        logger.warning("Error starting OAuth authentication for %s: %s", body.credential_name, exc)
        return _error_response(exc, "Failed to start authentication process")
    return {"authUrl": auth_url}

"""
ProviderRegistry — lookup table from provider key to provider.

One instance is built by the application's composition root, filled once
at startup and then only read.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import httpx

from oauth.base import BaseProvider
from oauth.errors import ProviderNotFound
from oauth.github import GitHubProvider
from oauth.gmail import GmailProvider
from oauth.google_calendar import GoogleCalendarProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry for OAuth providers.  Append-only."""

    def __init__(self, providers: Iterable[BaseProvider] = ()) -> None:
        self._providers: Dict[str, BaseProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: BaseProvider) -> None:
        """Register a provider; a later provider with the same key replaces it."""
        self._providers[provider.provider_key] = provider
        logger.info(
            "OAuth provider registered: %s (%s)",
            provider.display_name,
            provider.provider_key,
        )

    def get(self, key: str) -> BaseProvider:
        provider = self._providers.get(key)
        if provider is None:
            raise ProviderNotFound(key)
        return provider

    def has(self, key: str) -> bool:
        return key in self._providers

    def all(self) -> List[BaseProvider]:
        """Snapshot of all registered providers."""
        return list(self._providers.values())

    def find_by_credential_type(self, credential_type: str) -> BaseProvider:
        for provider in self._providers.values():
            if provider.credential_type == credential_type:
                return provider
        raise ProviderNotFound(credential_type)

    def __len__(self) -> int:
        return len(self._providers)


def build_default_registry(
    *,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderRegistry:
    """Register all known OAuth providers — add new ones here."""
    registry = ProviderRegistry(
        [
            GmailProvider(timeout=timeout, transport=transport),
            GoogleCalendarProvider(timeout=timeout, transport=transport),
            GitHubProvider(timeout=timeout, transport=transport),
        ]
    )
    logger.info("Registered %d OAuth providers", len(registry))
    return registry

"""
oauth — OAuth 2.0 authorization-code flow coordinator.

Provides a provider framework that handles:
  • consent-URL generation with a correlation ``state``
  • callback handling (code → token exchange → probe)
  • attaching tokens to a stored credential, or creating one
  • token refresh / revocation for stored credentials

Each identity provider (Gmail, Google Calendar, GitHub, …) is a subclass
of BaseProvider and is registered in a ProviderRegistry.
"""

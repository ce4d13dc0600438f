"""
Credential context resolution.

Client credentials for a flow can come from several places: an explicit
per-call override, the values the caller typed in, or the stored
credential record.  ``resolve_credential_context`` walks those sources in
``RESOLUTION_ORDER`` and takes the first non-blank value per field.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from oauth.errors import MissingCredentials
from oauth.models import CLIENT_ID, CLIENT_SECRET, REDIRECT_URI

RESOLUTION_ORDER: Tuple[str, ...] = ("override", "caller", "stored")

_REQUIRED_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("client_id", CLIENT_ID),
    ("client_secret", CLIENT_SECRET),
    ("redirect_uri", REDIRECT_URI),
)


class CredentialSeed(BaseModel):
    """clientId / clientSecret / redirectUri for a credential that does not exist yet."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    client_id: str = Field(alias="clientId")
    client_secret: str = Field(alias="clientSecret")
    redirect_uri: str = Field(alias="redirectUri")

    def as_fields(self) -> dict:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class CredentialContext:
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None

    def missing_fields(self) -> List[str]:
        return [wire for attr, wire in _REQUIRED_FIELDS if _blank(getattr(self, attr))]

    def require(self, display_name: str = "OAuth") -> "CredentialContext":
        missing = self.missing_fields()
        if missing:
            raise MissingCredentials(missing, display_name)
        return self

    def to_seed(self) -> CredentialSeed:
        self.require()
        return CredentialSeed(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
        )

    @classmethod
    def from_seed(cls, seed: CredentialSeed) -> "CredentialContext":
        return cls(
            client_id=seed.client_id,
            client_secret=seed.client_secret,
            redirect_uri=seed.redirect_uri,
        )


@dataclass(frozen=True)
class CredentialSources:
    """Candidate field sources, keyed by wire name (``clientId`` …)."""

    override: Optional[Mapping[str, object]] = None
    caller: Optional[Mapping[str, object]] = None
    stored: Optional[Mapping[str, object]] = None


def _blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def resolve_credential_context(sources: CredentialSources) -> CredentialContext:
    """Return the first non-blank value per field, in ``RESOLUTION_ORDER``."""
    resolved = {}
    for attr, wire in _REQUIRED_FIELDS:
        for source_name in RESOLUTION_ORDER:
            source = getattr(sources, source_name) or {}
            value = source.get(wire)
            if not _blank(value):
                resolved[attr] = str(value)
                break
    return CredentialContext(**resolved)

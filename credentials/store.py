"""
Credential store — the narrow contract the OAuth core persists through.

The core only ever calls ``load``, ``create`` and ``update``.
``SqlCredentialStore`` is the shipped implementation: one row per
credential, the field dict JSON-serialised and Fernet-encrypted.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from credentials.encryption import CredentialCipher
from database.models import Credential

logger = logging.getLogger(__name__)


class CredentialStoreError(Exception):
    """The backing store failed (I/O, driver, corrupt row)."""


class CredentialRecord(BaseModel):
    id: str
    name: str = ""
    credential_type: str
    fields: Dict[str, Any] = Field(default_factory=dict)


class CredentialStore(Protocol):
    async def load(self, credential_id: str) -> Optional[CredentialRecord]:
        ...

    async def create(
        self, credential_type: str, fields: Dict[str, Any], *, name: Optional[str] = None
    ) -> str:
        ...

    async def update(self, credential_id: str, fields: Dict[str, Any]) -> None:
        """Merge ``fields`` into the stored record."""
        ...


def _to_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(value)
    except (TypeError, ValueError):
        return None


class SqlCredentialStore:
    """Credential store backed by the ``credentials`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: Optional[CredentialCipher] = None,
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher or CredentialCipher()

    def _encode(self, fields: Dict[str, Any]) -> str:
        return self._cipher.encrypt(json.dumps(fields))

    def _decode(self, row: Credential) -> Dict[str, Any]:
        try:
            return json.loads(self._cipher.decrypt(row.encrypted_data))
        except ValueError as exc:
            raise CredentialStoreError(f"Credential {row.id} could not be decoded") from exc

    async def load(self, credential_id: str) -> Optional[CredentialRecord]:
        cid = _to_uuid(credential_id)
        if cid is None:
            return None
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(select(Credential).where(Credential.id == cid))
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise CredentialStoreError(f"Failed to load credential {credential_id}") from exc
        if row is None:
            return None
        return CredentialRecord(
            id=str(row.id),
            name=row.name or "",
            credential_type=row.credential_type,
            fields=self._decode(row),
        )

    async def create(
        self, credential_type: str, fields: Dict[str, Any], *, name: Optional[str] = None
    ) -> str:
        row = Credential(
            id=uuid.uuid4(),
            name=name or credential_type,
            credential_type=credential_type,
            encrypted_data=self._encode(fields),
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError("Failed to create credential") from exc
        logger.info("Created %s credential %s", credential_type, row.id)
        return str(row.id)

    async def update(self, credential_id: str, fields: Dict[str, Any]) -> None:
        cid = _to_uuid(credential_id)
        if cid is None:
            raise CredentialStoreError(f"Credential {credential_id} not found")
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(select(Credential).where(Credential.id == cid))
                ).scalar_one_or_none()
                if row is None:
                    raise CredentialStoreError(f"Credential {credential_id} not found")
                merged = self._decode(row)
                merged.update(fields)
                row.encrypted_data = self._encode(merged)
                row.updated_at = datetime.now(timezone.utc)
                await session.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError(f"Failed to update credential {credential_id}") from exc
        logger.info("Updated credential %s (%s)", credential_id, ", ".join(sorted(fields)))

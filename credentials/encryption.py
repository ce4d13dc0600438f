"""
Credential encryption — encrypt / decrypt credential records at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The encryption key is loaded from ``config.credential_encryption_key``
(env var: ``CREDENTIAL_ENCRYPTION_KEY``).

If no key is configured, encryption is **disabled** and records are stored
as plaintext (with a startup warning).  Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import config

logger = logging.getLogger(__name__)


class CredentialCipher:
    """Fernet wrapper; a no-op when no key is configured."""

    def __init__(self, key: Optional[str] = None) -> None:
        key = config.credential_encryption_key if key is None else key
        self._fernet: Optional[Fernet] = None
        if not key:
            logger.warning(
                "CREDENTIAL_ENCRYPTION_KEY not set — credentials will be stored as plaintext."
            )
            return
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        logger.info("Credential encryption enabled (Fernet/AES-128-CBC)")

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string for database storage.

        Returns the Fernet ciphertext (URL-safe base64).
        If encryption is disabled, returns the plaintext unchanged.
        """
        if self._fernet is None:
            return plaintext
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a string read from the database.

        Rows written before encryption was enabled are not valid Fernet
        tokens and are returned as-is.
        """
        if self._fernet is None:
            return ciphertext
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            return ciphertext

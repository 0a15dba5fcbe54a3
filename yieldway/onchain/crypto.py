"""At-rest protection for custodial private keys.

Uses Fernet (AES-128-CBC with HMAC) for symmetric encryption. Orchestration
code only depends on the ``SecretCipher`` protocol so a KMS-backed
implementation can be dropped in without touching it.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken

from yieldway.config import settings
from yieldway.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SecretCipher(Protocol):
    def encrypt(self, secret: str) -> str: ...

    def decrypt(self, ciphertext: str) -> str: ...


def generate_encryption_key() -> str:
    """Generate a new key suitable for WALLET_ENCRYPTION_KEY."""
    return Fernet.generate_key().decode()


class FernetSecretCipher:
    """Encrypts and decrypts custodial keys using Fernet.

    Usage:
        cipher = FernetSecretCipher(key)
        ciphertext = cipher.encrypt("0x...")
        secret = cipher.decrypt(ciphertext)
    """

    def __init__(self, key: str):
        if not key:
            raise ConfigurationError("WALLET_ENCRYPTION_KEY is not set")
        try:
            self._fernet = Fernet(key.encode())
        except (ValueError, TypeError) as exc:
            raise ConfigurationError(
                "WALLET_ENCRYPTION_KEY must be a urlsafe base64-encoded 32-byte key"
            ) from exc

    def __repr__(self) -> str:
        return "FernetSecretCipher(<redacted>)"

    def encrypt(self, secret: str) -> str:
        return self._fernet.encrypt(secret.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored secret.

        Raises:
            ConfigurationError: the ciphertext was produced under another key
        """
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as exc:
            logger.error("Custodial key decryption failed; encryption key mismatch or corrupt data")
            raise ConfigurationError("Unable to decrypt custodial key with configured key") from exc


def get_cipher(key: Optional[str] = None) -> FernetSecretCipher:
    return FernetSecretCipher(key if key is not None else settings.wallet_encryption_key)

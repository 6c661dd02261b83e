"""Encryption helpers for stored OAuth tokens."""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken

from galleria.core.config import settings
from galleria.core.logging import get_logger

logger = get_logger(__name__)

_encryption_key: bytes | None = None


class TokenDecryptionError(Exception):
    """Raised when a stored token cannot be decrypted with the current key."""

    pass


def get_encryption_key() -> bytes:
    """Get or generate the Fernet encryption key."""
    global _encryption_key
    if _encryption_key:
        return _encryption_key

    if settings.encryption_key:
        # Fernet expects the key as base64-encoded bytes (not decoded)
        _encryption_key = settings.encryption_key.encode()
    else:
        _encryption_key = Fernet.generate_key()
        logger.warning(
            "encryption_key_generated",
            message="Using auto-generated encryption key. Set GALLERIA_ENCRYPTION_KEY for persistence.",
        )

    return _encryption_key


def reset_encryption_key() -> None:
    """Forget the cached key (for testing)."""
    global _encryption_key
    _encryption_key = None


def encrypt(data: str) -> str:
    """Encrypt a string using Fernet."""
    return Fernet(get_encryption_key()).encrypt(data.encode()).decode()


def decrypt(encrypted_data: str) -> str:
    """Decrypt a Fernet-encrypted string.

    Raises:
        TokenDecryptionError: If the ciphertext was produced with another key
            or is corrupt.
    """
    try:
        return Fernet(get_encryption_key()).decrypt(encrypted_data.encode()).decode()
    except InvalidToken as e:
        raise TokenDecryptionError("Stored token could not be decrypted") from e

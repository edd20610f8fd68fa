"""Symmetric encryption for stored customer-database credentials."""

import hashlib
from base64 import urlsafe_b64encode

from cryptography.fernet import Fernet, InvalidToken

from orgpulse.core.config import settings
from orgpulse.core.errors import AuthenticationError

MIN_KEY_LENGTH = 32


def _build_fernet(key: str | None = None) -> Fernet:
    source = (key if key is not None else settings.ENCRYPTION_KEY).strip()
    if len(source) < MIN_KEY_LENGTH:
        raise ValueError(f"ENCRYPTION_KEY must be at least {MIN_KEY_LENGTH} characters")
    digest = hashlib.sha256(source.encode("utf-8")).digest()
    return Fernet(urlsafe_b64encode(digest))


def encrypt(plaintext: str, key: str | None = None) -> str:
    """Encrypt a secret for storage."""
    token = _build_fernet(key).encrypt(plaintext.encode("utf-8"))
    return token.decode("utf-8")


def decrypt(ciphertext: str, key: str | None = None) -> str:
    """Decrypt a stored secret.

    Raises:
        AuthenticationError: If the token cannot be decrypted with the configured key.
    """
    try:
        plaintext = _build_fernet(key).decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except (InvalidToken, ValueError):
        raise AuthenticationError("Failed to decrypt credentials") from None
    if not plaintext:
        raise AuthenticationError("Failed to decrypt credentials")
    return plaintext

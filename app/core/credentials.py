"""Encryption of secrets at rest (Voiceflow API keys, Meta access tokens)."""

from __future__ import annotations

from cryptography.fernet import Fernet

from app.config import get_settings


def _get_fernet() -> Fernet:
    """Get a Fernet instance with the credential master key."""
    settings = get_settings()
    key = settings.credential_master_key or settings.fernet_key
    if not key:
        raise ValueError(
            "CREDENTIAL_MASTER_KEY or FERNET_KEY must be set for credential encryption"
        )
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_secret(value: str) -> bytes:
    """Encrypt a secret string using the master key."""
    return _get_fernet().encrypt(value.encode())


def decrypt_secret(encrypted: bytes) -> str:
    """
    Decrypt a secret previously stored with encrypt_secret.

    Raises cryptography.fernet.InvalidToken when the master key does not match.
    """
    return _get_fernet().decrypt(encrypted).decode()

"""Fernet-based field encryption for free-text intake notes at rest.

Only the ``notes`` column of ``user_profiles`` holds free text a patient may
fill with anything; it is encrypted before writing to SQLite. The other
columns stay in the clear so history can be ordered and filtered.
"""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken

_TOKEN_PREFIX = "enc:"


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts and decrypts text fields using Fernet symmetric encryption.

    Usage::

        encryptor = FieldEncryptor(key="...")
        stored = encryptor.encrypt("recurring headaches since May")
        encryptor.decrypt(stored)  # "recurring headaches since May"
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Args:
            key: A valid Fernet key string. Generate with
                 ``FieldEncryptor.generate_key()``.

        Raises:
            EncryptionError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode())
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, value: str) -> str:
        """Encrypt a string to a prefixed Fernet token."""
        if not value:
            return ""
        return _TOKEN_PREFIX + self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")

    def decrypt(self, stored: str) -> str:
        """Decrypt a stored value. Values without the token prefix pass through.

        Raises:
            EncryptionError: If the token is invalid or the key is wrong.
        """
        if not stored or not stored.startswith(_TOKEN_PREFIX):
            return stored
        try:
            return self._fernet.decrypt(stored[len(_TOKEN_PREFIX):].encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key."""
        return Fernet.generate_key().decode("utf-8")
